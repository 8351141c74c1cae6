import unittest
from datetime import date, datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo
from portal.utils import csv_export


def sewing_actual(**overrides):
    fields = dict(
        production_date=date(2026, 1, 5),
        submitted_at=datetime(2026, 1, 5, 11, 30),
        line=SimpleNamespace(display_name='Line 3'),
        po_number='PO-77', buyer_name='Northwind', style_code='ST-1',
        good_today=120, reject_today=None, rework_today=2, cumulative_good_total=480,
        manpower_actual=30, ot_hours_actual=2.0, actual_stage_progress=40,
        has_blocker=True, blocker_type=None, blocker_description='Needle shortage',
        blocker_impact='high', remarks='Said "urgent"',
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class FormatterTests(unittest.TestCase):

    def test_cell_formatters(self):
        self.assertEqual(csv_export.format_date(date(2026, 1, 5)), 'Jan 5, 2026')
        self.assertEqual(csv_export.format_date(None), '-')
        self.assertEqual(csv_export.text(''), '-')
        self.assertEqual(csv_export.number(None), '0')
        self.assertEqual(csv_export.number(8.0), '8')
        self.assertEqual(csv_export.number(7.5), '7.5')
        self.assertEqual(csv_export.yes_no(False), 'No')

    def test_format_time_converts_utc_to_factory_zone(self):
        value = datetime(2026, 1, 5, 11, 30)
        self.assertEqual(csv_export.format_time(value), '11:30 AM')
        self.assertEqual(csv_export.format_time(value, ZoneInfo('Asia/Dhaka')), '05:30 PM')

    def test_sewing_actual_row_uses_description_when_no_blocker_type(self):
        row = csv_export.sewing_actual_row(sewing_actual())
        self.assertEqual(len(row), len(csv_export.SEWING_ACTUAL_HEADERS))
        self.assertEqual(row[:6], ['Jan 5, 2026', '11:30 AM', 'Line 3', 'PO-77', 'Northwind', 'ST-1'])
        self.assertEqual(row[7], '0')
        self.assertEqual(row[11], '2')
        self.assertEqual(row[12], '40%')
        self.assertEqual(row[13:16], ['Yes', 'Needle shortage', 'high'])


class ReportTests(unittest.TestCase):

    def test_layout_and_quoting(self):
        data = {'sewing_actuals': [sewing_actual()], 'sewing_targets': []}
        generated_on = datetime(2026, 10, 17, 9, 0)
        rows = csv_export.build_report_rows(data, ['sewing', 'finishing'], 7, generated_on)

        self.assertEqual(rows[0], ['Submissions Report - Sewing, Finishing'])
        self.assertEqual(rows[1], ['Generated: Saturday, October 17, 2026'])
        self.assertEqual(rows[2], ['Date Range: Last 7 days'])
        self.assertEqual(rows[3], [''])
        # empty sections are skipped
        self.assertEqual(rows[4], ['=== SEWING END OF DAY ==='])
        self.assertEqual(rows[5], csv_export.SEWING_ACTUAL_HEADERS)
        self.assertEqual(rows[-1], [''])

        output = csv_export.rows_to_csv(rows)
        lines = output.split('\n')
        self.assertEqual(lines[0], '"Submissions Report - Sewing, Finishing"')
        self.assertIn('"Said ""urgent"""', lines[6])
        self.assertFalse(output.endswith('\n'))

    def test_selected_departments_and_filename(self):
        self.assertEqual(csv_export.selected_departments(['storage', 'Sewing', 'bogus']), ['sewing', 'storage'])
        filename = csv_export.export_filename(['finishing', 'sewing'], 7, date(2026, 10, 17))
        self.assertEqual(filename, 'submissions_sewing_finishing_7days_2026-10-17.csv')

    def test_count_records_only_counts_selected(self):
        data = {'sewing_targets': [1, 2], 'cutting_actuals': [1]}
        self.assertEqual(csv_export.count_records(data, ['sewing']), 2)
        self.assertEqual(csv_export.count_records(data, ['sewing', 'cutting']), 3)


if __name__ == '__main__':
    unittest.main()
