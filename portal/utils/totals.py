"""
Cumulative production totals.

Running totals are never trusted from the client: they are re-derived from
the rows of earlier production dates plus the quantity entered today. Callers
must pass only rows dated before the production date being submitted, so that
editing today's row never counts it twice.
"""


def _value(row, column):
    if isinstance(row, dict):
        value = row.get(column)
    else:
        value = getattr(row, column, None)
    return value or 0


def sum_column(rows, column):
    """Sum a column over rows (models or dicts); missing values count as 0"""
    return sum(_value(row, column) for row in rows)


def sewing_cumulative(previous_rows, good_today):
    return sum_column(previous_rows, 'good_today') + (good_today or 0)


def cutting_totals(order_qty, previous_rows, day_cutting, day_input):
    """
    Running cutting and input totals for a work order.

    Balance is what is still to be fed into sewing. It goes negative when
    more pieces were input than ordered; that is reported, not clamped.
    """
    total_cutting = sum_column(previous_rows, 'day_cutting') + (day_cutting or 0)
    total_input = sum_column(previous_rows, 'day_input') + (day_input or 0)
    return {
        'total_cutting': total_cutting,
        'total_input': total_input,
        'balance': (order_qty or 0) - total_input,
    }


def average_production(total_output, total_hours):
    """Output per hour; 0 when no hours were worked"""
    if not total_hours:
        return 0
    return round(total_output / total_hours, 2)


def finishing_totals(previous_rows, day_qc_pass, day_poly, day_carton, day_hour, day_over_time):
    totals = {
        'total_qc_pass': sum_column(previous_rows, 'day_qc_pass') + (day_qc_pass or 0),
        'total_poly': sum_column(previous_rows, 'day_poly') + (day_poly or 0),
        'total_carton': sum_column(previous_rows, 'day_carton') + (day_carton or 0),
        'total_hour': sum_column(previous_rows, 'day_hour_actual') + (day_hour or 0),
        'total_over_time': sum_column(previous_rows, 'day_over_time_actual') + (day_over_time or 0),
    }
    totals['average_production'] = average_production(
        day_poly or 0, (day_hour or 0) + (day_over_time or 0)
    )
    return totals


def bin_card_preview(last_ttl_receive, last_balance, receive_qty, issue_qty):
    """Totals the next bin card transaction would produce"""
    balance = (last_balance or 0) + (receive_qty or 0) - (issue_qty or 0)
    return {
        'ttl_receive': (last_ttl_receive or 0) + (receive_qty or 0),
        'balance_qty': balance,
        'would_go_negative': balance < 0,
    }


def output_extras(po_qty, total_output, ledger_consumed=0):
    """
    Compare finished output against the PO quantity.

    Anything produced beyond the PO is an extra; extras leave the books
    through the extras ledger.
    """
    po_qty = po_qty or 0
    total_output = total_output or 0
    extras = max(total_output - po_qty, 0)
    remaining = max(po_qty - total_output, 0)
    progress = min(total_output / po_qty * 100, 100) if po_qty > 0 else 0

    if extras > 0:
        status = 'overproduced'
    elif po_qty > 0 and total_output >= po_qty:
        status = 'complete'
    elif total_output > 0:
        status = 'in_progress'
    else:
        status = 'not_started'

    return {
        'po_qty': po_qty,
        'total_output': total_output,
        'extras': extras,
        'remaining': remaining,
        'extras_consumed': ledger_consumed or 0,
        'extras_available': extras - (ledger_consumed or 0),
        'progress_percent': round(progress, 1),
        'status': status,
    }
