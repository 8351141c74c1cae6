import unittest
from datetime import timedelta
from portal.models import SewingActual
from tests.base import PortalTestCase, factory_today


class DashboardTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.lines = [self.make_line('L1'), self.make_line('L2')]
        self.work_order_id = self.make_work_order('PO-5001', order_qty=2000)
        self.stage_id = self.first_stage_id()

    def post_sewing(self, line_id, with_actual=True, **actual_fields):
        self.owner.post('/sewing/targets', json={
            'line_id': line_id, 'work_order_id': self.work_order_id, 'per_hour_target': 50,
            'manpower_planned': 30, 'ot_hours_planned': 0, 'planned_stage_id': self.stage_id,
            'planned_stage_progress': 50, 'next_milestone': 'Start Finishing',
        })
        if with_actual:
            payload = {'line_id': line_id, 'work_order_id': self.work_order_id, 'good_today': 300,
                       'manpower_actual': 28, 'actual_stage_id': self.stage_id, 'actual_stage_progress': 60}
            payload.update(actual_fields)
            return self.owner.post('/sewing/actuals', json=payload).get_json()

    def test_overview_counts_and_missing_lines(self):
        self.post_sewing(self.lines[0], with_actual=False)
        data = self.owner.get('/dashboard').get_json()
        self.assertEqual(data['counts']['sewing'], {'targets': 1, 'actuals': 0})
        self.assertEqual(data['active_lines'], 2)
        self.assertEqual(data['active_work_orders'], 1)
        self.assertEqual([line['line_id'] for line in data['lines_missing_target']], ['L2'])
        self.assertEqual([line['line_id'] for line in data['lines_missing_actual']], ['L1', 'L2'])
        self.assertEqual(len(data['recent_updates']), 1)

    def test_today_achievement(self):
        self.post_sewing(self.lines[0])
        rows = self.owner.get('/dashboard/today').get_json()['departments']['sewing']
        self.assertEqual(len(rows), 1)
        # 50/hr over 8 hours
        self.assertEqual(rows[0]['target_output'], 400)
        self.assertEqual(rows[0]['actual_output'], 300)
        self.assertEqual(rows[0]['achievement_percent'], 75.0)

    def test_week_series_oldest_first(self):
        today = factory_today()
        self.add_row(SewingActual, line_id=self.lines[0], work_order_id=self.work_order_id,
                     production_date=today - timedelta(days=2), good_today=90, manpower_actual=10)
        series = self.owner.get('/dashboard/week').get_json()
        self.assertEqual(len(series), 7)
        self.assertEqual(series[-1]['date'], today.isoformat())
        self.assertEqual(series[4]['sewing']['output'], 90)

    def test_blocker_resolution(self):
        actual = self.post_sewing(self.lines[0], has_blocker=True,
                                  blocker_description='Thread shortage', blocker_impact='medium')
        blockers = self.owner.get('/dashboard/blockers').get_json()
        self.assertEqual([b['id'] for b in blockers], [actual['id']])

        url = f'/dashboard/blockers/sewing/{actual["id"]}'
        response = self.owner.patch(url, json={'blocker_status': 'resolved'})
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.get_json()['blocker_resolution_date'])
        self.assertEqual(self.owner.get('/dashboard/blockers').get_json(), [])

        self.assertEqual(self.owner.patch(url, json={'blocker_status': 'closed'}).status_code, 400)

    def test_submissions_filtered_by_line(self):
        self.post_sewing(self.lines[0])
        self.post_sewing(self.lines[1], with_actual=False)
        rows = self.owner.get(f'/dashboard/submissions?department=sewing&line_id={self.lines[1]}').get_json()
        self.assertEqual([r['type'] for r in rows], ['sewing_target'])
        self.assertEqual(self.owner.get('/dashboard/submissions?department=shipping').status_code, 400)

    def test_csv_export(self):
        self.assertEqual(self.owner.get('/dashboard/export?departments=sewing').status_code, 404)

        self.post_sewing(self.lines[0])
        response = self.owner.get('/dashboard/export?departments=sewing,finishing&days=7')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, 'text/csv')
        disposition = response.headers['Content-Disposition']
        self.assertEqual(disposition,
                         f'attachment; filename=submissions_sewing_finishing_7days_{factory_today():%Y-%m-%d}.csv')

        body = response.get_data(as_text=True)
        self.assertTrue(body.startswith('"Submissions Report - Sewing, Finishing"'))
        self.assertIn('"=== SEWING TARGETS ==="', body)
        self.assertIn('"=== SEWING END OF DAY ==="', body)
        self.assertNotIn('FINISHING', body.split('\n', 1)[1])

    def test_export_is_admin_only(self):
        self.make_user('w@acme.test', department='sewing')
        self.assertEqual(self.login('w@acme.test').get('/dashboard/export').status_code, 403)


if __name__ == '__main__':
    unittest.main()
