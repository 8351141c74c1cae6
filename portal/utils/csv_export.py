"""
Submissions CSV report.

One file holds a short preamble followed by one section per selected export
type. Every cell is quoted so spreadsheet tools never reinterpret PO numbers
or remarks.
"""
import csv
import io
from datetime import timezone

DEPARTMENTS = ('sewing', 'finishing', 'cutting', 'storage')

SEWING_TARGET_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Target/hr', 'Manpower',
                         'OT Hours', 'Progress %', 'Next Milestone', 'Late', 'Remarks']

SEWING_ACTUAL_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Good Today', 'Reject',
                         'Rework', 'Cumulative Total', 'Manpower', 'OT Hours', 'Progress %', 'Has Blocker',
                         'Blocker Type', 'Blocker Impact', 'Remarks']

FINISHING_TARGET_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Target/hr', 'Manpower',
                            'Day Hours', 'OT Hours', 'Late', 'Remarks']

FINISHING_ACTUAL_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Day QC Pass',
                            'Total QC Pass', 'Day Poly', 'Total Poly', 'Day Carton', 'Total Carton',
                            'Manpower', 'Day Hours', 'OT Hours', 'Avg Production', 'Has Blocker', 'Remarks']

CUTTING_TARGET_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Colour', 'Order Qty',
                          'Marker Capacity', 'Lay Capacity', 'Cutting Capacity', 'Manpower', 'Under Qty',
                          'Late']

CUTTING_ACTUAL_HEADERS = ['Date', 'Time', 'Line', 'PO Number', 'Buyer', 'Style', 'Colour', 'Order Qty',
                          'Day Cutting', 'Total Cutting', 'Day Input', 'Total Input', 'Balance', 'Late',
                          'Acknowledged']

STORAGE_HEADERS = ['Date', 'PO Number', 'Buyer', 'Style', 'Color', 'Supplier', 'Description',
                   'Total Received', 'Total Issued', 'Balance']


def format_date(value):
    """date -> 'Jan 5, 2026'"""
    if value is None:
        return '-'
    return f'{value:%b} {value.day}, {value.year}'


def format_time(value, tz=None):
    """Stored UTC timestamp -> '09:30 AM' in the factory timezone"""
    if value is None:
        return '-'
    if tz is not None:
        value = value.replace(tzinfo=timezone.utc).astimezone(tz)
    return value.strftime('%I:%M %p')


def text(value):
    return '-' if value in (None, '') else str(value)


def number(value):
    return '0' if value is None else _plain_number(value)


def yes_no(value):
    return 'Yes' if value else 'No'


def _plain_number(value):
    # 8.0 hours exports as "8"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _line_label(row):
    return row.line.display_name if row.line else '-'


def _lead(row, tz):
    return [format_date(row.production_date), format_time(row.submitted_at, tz), _line_label(row),
            text(row.po_number), text(row.buyer_name), text(row.style_code)]


def sewing_target_row(t, tz=None):
    return _lead(t, tz) + [
        number(t.per_hour_target),
        number(t.manpower_planned),
        number(t.ot_hours_planned),
        f'{t.planned_stage_progress or 0}%',
        text(t.next_milestone),
        yes_no(t.is_late),
        text(t.remarks),
    ]


def sewing_actual_row(a, tz=None):
    blocker_type = a.blocker_type.name if a.blocker_type else a.blocker_description
    return _lead(a, tz) + [
        number(a.good_today),
        number(a.reject_today),
        number(a.rework_today),
        number(a.cumulative_good_total),
        number(a.manpower_actual),
        number(a.ot_hours_actual),
        f'{a.actual_stage_progress or 0}%',
        yes_no(a.has_blocker),
        text(blocker_type),
        text(a.blocker_impact),
        text(a.remarks),
    ]


def finishing_target_row(t, tz=None):
    return _lead(t, tz) + [
        number(t.per_hour_target),
        number(t.m_power_planned),
        number(t.day_hour_planned),
        number(t.day_over_time_planned),
        yes_no(t.is_late),
        text(t.remarks),
    ]


def finishing_actual_row(a, tz=None):
    return _lead(a, tz) + [
        number(a.day_qc_pass),
        number(a.total_qc_pass),
        number(a.day_poly),
        number(a.total_poly),
        number(a.day_carton),
        number(a.total_carton),
        number(a.m_power_actual),
        number(a.day_hour_actual),
        number(a.day_over_time_actual),
        text(a.average_production),
        yes_no(a.has_blocker),
        text(a.remarks),
    ]


def cutting_target_row(t, tz=None):
    return _lead(t, tz) + [
        text(t.colour),
        number(t.order_qty),
        number(t.marker_capacity),
        number(t.lay_capacity),
        number(t.cutting_capacity),
        number(t.man_power),
        number(t.under_qty),
        yes_no(t.is_late),
    ]


def cutting_actual_row(a, tz=None):
    return _lead(a, tz) + [
        text(a.colour),
        number(a.order_qty),
        number(a.day_cutting),
        number(a.total_cutting),
        number(a.day_input),
        number(a.total_input),
        number(a.balance),
        yes_no(a.is_late),
        yes_no(a.acknowledged),
    ]


def storage_row(card, tz=None):
    return [
        format_date(card.created_at),
        text(card.work_order.po_number if card.work_order else None),
        text(card.buyer),
        text(card.style),
        text(card.color),
        text(card.supplier_name),
        text(card.description),
        number(card.total_received),
        number(card.total_issued),
        number(card.current_balance),
    ]


# (department, data key, section title, headers, row builder)
SECTIONS = [
    ('sewing', 'sewing_targets', 'SEWING TARGETS', SEWING_TARGET_HEADERS, sewing_target_row),
    ('sewing', 'sewing_actuals', 'SEWING END OF DAY', SEWING_ACTUAL_HEADERS, sewing_actual_row),
    ('finishing', 'finishing_targets', 'FINISHING TARGETS', FINISHING_TARGET_HEADERS, finishing_target_row),
    ('finishing', 'finishing_actuals', 'FINISHING END OF DAY', FINISHING_ACTUAL_HEADERS, finishing_actual_row),
    ('cutting', 'cutting_targets', 'CUTTING TARGETS', CUTTING_TARGET_HEADERS, cutting_target_row),
    ('cutting', 'cutting_actuals', 'CUTTING ACTUALS', CUTTING_ACTUAL_HEADERS, cutting_actual_row),
    ('storage', 'storage_bin_cards', 'STORAGE BIN CARDS', STORAGE_HEADERS, storage_row),
]


def selected_departments(departments):
    """Keep known departments in report order"""
    wanted = {d.strip().lower() for d in departments if d}
    return [d for d in DEPARTMENTS if d in wanted]


def count_records(data, departments):
    departments = selected_departments(departments)
    return sum(len(data.get(key) or []) for dept, key, _, _, _ in SECTIONS if dept in departments)


def build_report_rows(data, departments, days, generated_on, tz=None):
    """
    Assemble the report as a list of rows.

    data maps section keys (sewing_targets, storage_bin_cards, ...) to model
    instances. Sections without rows are left out.
    """
    departments = selected_departments(departments)
    titles = ', '.join(d.capitalize() for d in departments)

    rows = [
        [f'Submissions Report - {titles}'],
        [f'Generated: {generated_on:%A}, {generated_on:%B} {generated_on.day}, {generated_on.year}'],
        [f'Date Range: Last {days} days'],
        [''],
    ]

    for dept, key, title, headers, build_row in SECTIONS:
        records = data.get(key) or []
        if dept not in departments or not records:
            continue
        rows.append([f'=== {title} ==='])
        rows.append(headers)
        for record in records:
            rows.append(build_row(record, tz))
        rows.append([''])

    return rows


def rows_to_csv(rows):
    """Quote every field, double embedded quotes, join rows with newlines"""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    for row in rows:
        writer.writerow(['' if cell is None else cell for cell in row])
    return output.getvalue().rstrip('\n')


def export_filename(departments, days, generated_on):
    suffix = '_'.join(selected_departments(departments))
    return f'submissions_{suffix}_{days}days_{generated_on:%Y-%m-%d}.csv'
