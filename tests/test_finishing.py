import unittest
from datetime import timedelta
from portal.models import FinishingActual
from tests.base import PortalTestCase, factory_today


class FinishingTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.line_id = self.make_line('L1')
        self.work_order_id = self.make_work_order('PO-2001', order_qty=1200)

    def actual_payload(self, **overrides):
        payload = {
            'line_id': self.line_id,
            'work_order_id': self.work_order_id,
            'day_qc_pass': 200,
            'day_poly': 180,
            'day_carton': 10,
            'm_power_actual': 12,
            'day_hour_actual': 8,
            'day_over_time_actual': 2,
        }
        payload.update(overrides)
        return payload

    def add_previous(self, days_ago, **values):
        return self.add_row(FinishingActual, line_id=self.line_id, work_order_id=self.work_order_id,
                            production_date=factory_today() - timedelta(days=days_ago), **values)

    def target_payload(self, **overrides):
        payload = {
            'line_id': self.line_id,
            'work_order_id': self.work_order_id,
            'per_hour_target': 25,
            'm_power_planned': 12,
            'day_hour_planned': 8,
            'day_over_time_planned': 1,
        }
        payload.update(overrides)
        return payload

    def test_submit_target(self):
        response = self.owner.post('/finishing/targets', json=self.target_payload())
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['day_target'], 200)

    def test_target_requires_positive_rate(self):
        response = self.owner.post('/finishing/targets', json=self.target_payload(per_hour_target=0))
        self.assertEqual(response.status_code, 400)
        self.assertIn('per_hour_target', response.get_json()['errors'])

    def test_actual_totals_from_previous_days(self):
        self.add_previous(2, day_qc_pass=100, day_poly=90, day_carton=5, day_hour_actual=8, day_over_time_actual=1)
        self.add_previous(1, day_qc_pass=150, day_poly=140, day_carton=7, day_hour_actual=8, day_over_time_actual=0)

        response = self.owner.post('/finishing/actuals', json=self.actual_payload())
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertEqual(data['total_qc_pass'], 450)
        self.assertEqual(data['total_poly'], 410)
        self.assertEqual(data['total_carton'], 22)
        self.assertEqual(data['total_hour'], 24)
        self.assertEqual(data['total_over_time'], 3)
        self.assertEqual(data['average_production'], 18)

    def test_preview_matches_submission(self):
        self.add_previous(1, day_qc_pass=100, day_poly=100, day_carton=4)
        query = f'work_order_id={self.work_order_id}&day_qc_pass=50&day_poly=40&day_carton=2&day_hour=4'
        preview = self.owner.get(f'/finishing/actuals/preview?{query}').get_json()
        self.assertEqual(preview['total_qc_pass'], 150)
        self.assertEqual(preview['total_carton'], 6)
        self.assertEqual(preview['average_production'], 10)

    def test_deleting_earlier_day_rebuilds_later_totals(self):
        earlier = self.add_previous(1, day_qc_pass=100, day_poly=100, day_carton=4,
                                    total_qc_pass=100, total_poly=100, total_carton=4)
        today_id = self.owner.post('/finishing/actuals', json=self.actual_payload()).get_json()['id']
        self.assertEqual(self.fetch(FinishingActual, today_id)['total_carton'], 14)

        self.assertEqual(self.owner.delete(f'/finishing/actuals/{earlier}').status_code, 200)
        rebuilt = self.fetch(FinishingActual, today_id)
        self.assertEqual(rebuilt['total_carton'], 10)
        self.assertEqual(rebuilt['total_qc_pass'], 200)

    def test_sewing_worker_cannot_submit(self):
        self.make_user('sew@acme.test', department='sewing')
        response = self.login('sew@acme.test').post('/finishing/actuals', json=self.actual_payload())
        self.assertEqual(response.status_code, 403)


if __name__ == '__main__':
    unittest.main()
