"""
Submission time windows.

Cutoffs are HH:MM strings in factory local time. All functions take the
factory's local "now" so they stay pure and easy to test.
"""
from datetime import datetime, time

DEFAULT_CUTOFF = '23:59'


def parse_cutoff(value):
    """'18:30' -> time(18, 30); None for empty or malformed values"""
    if not value:
        return None
    try:
        hour, minute = (int(part) for part in str(value).split(':')[:2])
        return time(hour, minute)
    except ValueError:
        return None


def format_time_12h(value):
    """time(18, 5) -> '6:05 PM'"""
    hour = value.hour % 12 or 12
    suffix = 'AM' if value.hour < 12 else 'PM'
    return f'{hour}:{value.minute:02d} {suffix}'


def is_late(now, cutoff):
    """True when now is past today's cutoff; no cutoff means never late"""
    cutoff_time = parse_cutoff(cutoff)
    if cutoff_time is None:
        return False
    return now > datetime.combine(now.date(), cutoff_time)


def can_edit_submission(production_date, now, cutoff=None):
    """
    Whether a submission for production_date may still be changed.

    Returns (can_edit, reason). Only today's rows are editable, and only
    before the factory cutoff. A cutoff of 00:00 keeps editing open all day.
    """
    if production_date != now.date():
        return False, "Can only edit today's submissions"

    cutoff_time = parse_cutoff(cutoff or DEFAULT_CUTOFF) or parse_cutoff(DEFAULT_CUTOFF)
    if cutoff_time == time(0, 0):
        return True, ''

    if now >= datetime.combine(now.date(), cutoff_time):
        return False, f'Editing closed after {format_time_12h(cutoff_time)}'
    return True, ''


def time_until_cutoff(now, cutoff):
    """Human countdown like '2h 15m left'; None once the window has closed"""
    cutoff_time = parse_cutoff(cutoff)
    if cutoff_time is None:
        return None
    if cutoff_time == time(0, 0):
        return 'End of day'

    closes_at = datetime.combine(now.date(), cutoff_time)
    if now >= closes_at:
        return None

    minutes = int((closes_at - now).total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f'{hours}h {minutes}m left'
    return f'{minutes}m left'
