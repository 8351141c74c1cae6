import unittest
from datetime import timedelta
from portal.models import CuttingActual
from tests.base import PortalTestCase, factory_today


class CuttingTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.make_user('cut@acme.test', role='cutting')
        self.line_id = self.make_line('L1')
        self.work_order_id = self.make_work_order('PO-3001', order_qty=1000, color='Red')
        self.cutting = self.login('cut@acme.test')

    def actual_payload(self, **overrides):
        payload = {'line_id': self.line_id, 'work_order_id': self.work_order_id, 'day_cutting': 300, 'day_input': 250}
        payload.update(overrides)
        return payload

    def test_target_copies_colour(self):
        response = self.cutting.post('/cutting/targets', json={
            'line_id': self.line_id,
            'work_order_id': self.work_order_id,
            'cutting_capacity': 400,
            'lay_capacity': 350,
        })
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertEqual(data['colour'], 'Red')
        self.assertEqual(data['under_qty'], 0)
        self.assertEqual(data['order_qty'], 1000)

    def test_actual_balance(self):
        self.add_row(CuttingActual, line_id=self.line_id, work_order_id=self.work_order_id,
                     day_cutting=200, day_input=150, production_date=factory_today() - timedelta(days=1))

        response = self.cutting.post('/cutting/actuals', json=self.actual_payload())
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertEqual(data['total_cutting'], 500)
        self.assertEqual(data['total_input'], 400)
        self.assertEqual(data['balance'], 600)
        self.assertFalse(data['acknowledged'])

    def test_day_values_validated(self):
        response = self.cutting.post('/cutting/actuals', json=self.actual_payload(day_input=-1))
        self.assertEqual(response.status_code, 400)
        self.assertIn('day_input', response.get_json()['errors'])

    def test_sewing_worker_cannot_submit(self):
        self.make_user('sew@acme.test', department='sewing')
        response = self.login('sew@acme.test').post('/cutting/actuals', json=self.actual_payload())
        self.assertEqual(response.status_code, 403)

    def test_sewing_line_acknowledges_handoff(self):
        actual_id = self.cutting.post('/cutting/actuals', json=self.actual_payload()).get_json()['id']
        self.make_user('sew@acme.test', department='sewing', line_ids=[self.line_id])
        sewing = self.login('sew@acme.test')

        pending = sewing.get('/cutting/handoffs?acknowledged=false').get_json()
        self.assertEqual([row['id'] for row in pending], [actual_id])

        response = sewing.post(f'/cutting/actuals/{actual_id}/acknowledge')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()['acknowledged'])
        self.assertEqual(sewing.get('/cutting/handoffs?acknowledged=false').get_json(), [])

    def test_cutting_user_cannot_acknowledge(self):
        actual_id = self.cutting.post('/cutting/actuals', json=self.actual_payload()).get_json()['id']
        self.assertEqual(self.cutting.post(f'/cutting/actuals/{actual_id}/acknowledge').status_code, 403)


if __name__ == '__main__':
    unittest.main()
