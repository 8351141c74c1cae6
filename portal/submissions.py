"""
Shared workflow for department target/actual submissions.

Each department blueprint parses its own fields and hands the values to the
functions here, which resolve the line and work order, apply the late flag
and edit window, keep one row per line/PO/day and translate uniqueness
violations into a friendly error.
"""
import logging
from datetime import datetime, timedelta
from flask_login import current_user
from sqlalchemy.exc import IntegrityError
from portal import db
from portal.errors import DuplicateSubmission, EditWindowClosed, PermissionDenied, ValidationError
from portal.models import BlockerType, Line, WorkOrder
from portal.models.setup import BLOCKER_IMPACTS, BLOCKER_STATUSES
from portal.utils.cutoffs import can_edit_submission, is_late
from portal.utils.forms import get_owned_or_404, parse_bool, parse_date, parse_int, parse_text

logger = logging.getLogger(__name__)

TARGET_DUPLICATE_MESSAGE = 'Target already submitted for this line and PO today'
ACTUAL_DUPLICATE_MESSAGE = 'Actuals already submitted for this line/PO today'


class SubmissionContext:
    """Who is submitting what, and when, in factory local time"""

    def __init__(self, factory, line, work_order, now):
        self.factory = factory
        self.line = line
        self.work_order = work_order
        self.now = now

    @property
    def today(self):
        return self.now.date()


def require_department(department):
    """Workers assigned to another department cannot submit here"""
    if current_user.is_admin_or_higher():
        return
    if current_user.department and current_user.department != department:
        raise PermissionDenied(f'You are not assigned to {department}')


def resolve_context(data, errors):
    """Look up the line and work order named in the payload"""
    line_id = parse_int(data, 'line_id', errors)
    work_order_id = parse_int(data, 'work_order_id', errors)
    if errors.get('line_id') or errors.get('work_order_id'):
        return None

    line = get_owned_or_404(Line, line_id, 'Line')
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')

    if not line.is_active:
        raise ValidationError('Line is not active')
    if not work_order.is_active:
        raise ValidationError('Work order is not active')
    if not current_user.can_submit_for_line(line.id):
        raise PermissionDenied('You are not assigned to this line')

    factory = current_user.factory
    return SubmissionContext(factory, line, work_order, factory.local_now())


def parse_progress(data, field, errors):
    """Stage progress as an int percentage; accepts 25 or '25%'"""
    value = data.get(field)
    if value is None or str(value).strip() == '':
        errors[field] = 'Required'
        return None
    try:
        progress = int(str(value).strip().rstrip('%'))
    except ValueError:
        errors[field] = 'Must be a percentage'
        return None
    if not 0 <= progress <= 100:
        errors[field] = 'Must be between 0 and 100'
    return progress


def parse_blocker(data, errors):
    """Blocker fields for an actual; all cleared when has_blocker is false"""
    if not parse_bool(data.get('has_blocker', False)):
        return {'has_blocker': False, 'blocker_type_id': None, 'blocker_description': None,
                'blocker_impact': None, 'blocker_owner': None, 'blocker_resolution_date': None,
                'action_taken_today': None, 'blocker_status': None}

    blocker_type_id = parse_int(data, 'blocker_type_id', errors, required=False)
    if blocker_type_id is not None and not errors.get('blocker_type_id'):
        get_owned_or_404(BlockerType, blocker_type_id, 'Blocker type')

    impact = parse_text(data, 'blocker_impact', errors, required=True)
    if impact and impact not in BLOCKER_IMPACTS:
        errors['blocker_impact'] = f'One of {", ".join(BLOCKER_IMPACTS)}'

    status = parse_text(data, 'blocker_status') or 'open'
    if status not in BLOCKER_STATUSES:
        errors['blocker_status'] = f'One of {", ".join(BLOCKER_STATUSES)}'

    return {
        'has_blocker': True,
        'blocker_type_id': blocker_type_id,
        'blocker_description': parse_text(data, 'blocker_description', errors, required=True),
        'blocker_impact': impact,
        'blocker_owner': parse_text(data, 'blocker_owner'),
        'blocker_resolution_date': parse_date(data.get('blocker_resolution_date')),
        'action_taken_today': parse_text(data, 'action_taken_today'),
        'blocker_status': status,
    }


def previous_rows(model, factory_id, work_order_id, before_date):
    """Rows for the work order from production dates strictly before before_date"""
    return model.query.filter(
        model.factory_id == factory_id,
        model.work_order_id == work_order_id,
        model.production_date < before_date
    ).all()


def check_edit_allowed(record, now):
    """Admins may always edit; submitters only within today's edit window"""
    if current_user.is_admin_or_higher():
        return
    if record.submitted_by != current_user.id:
        raise PermissionDenied('You can only edit your own submissions')
    allowed, reason = can_edit_submission(record.production_date, now, current_user.factory.cutoff_time)
    if not allowed:
        raise EditWindowClosed(reason)


def save_submission(model, ctx, values, late_cutoff, duplicate_message, compute=None):
    """
    Insert today's row for the line/PO, or update it when one exists.

    compute(record, previous) fills server-derived totals after values are
    applied. Returns (record, created).
    """
    record = model.query.filter_by(
        factory_id=ctx.factory.id,
        line_id=ctx.line.id,
        work_order_id=ctx.work_order.id,
        production_date=ctx.today
    ).first()

    created = record is None
    if created:
        record = model(
            factory_id=ctx.factory.id,
            line_id=ctx.line.id,
            work_order_id=ctx.work_order.id,
            production_date=ctx.today,
            submitted_by=current_user.id,
            is_late=is_late(ctx.now, late_cutoff),
        )
        db.session.add(record)
    else:
        if not current_user.is_admin_or_higher() and record.submitted_by != current_user.id:
            raise DuplicateSubmission(duplicate_message)
        check_edit_allowed(record, ctx.now)

    record.apply_snapshot(ctx.line, ctx.work_order)
    for field, value in values.items():
        setattr(record, field, value)
    record.submitted_at = datetime.utcnow()

    if compute is not None:
        with db.session.no_autoflush:
            compute(record, previous_rows(model, ctx.factory.id, ctx.work_order.id, ctx.today))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info('Duplicate %s for line %s PO %s on %s', model.__tablename__, ctx.line.id,
                    ctx.work_order.id, ctx.today)
        raise DuplicateSubmission(duplicate_message)

    logger.info('%s %s %s by user %s', model.__tablename__, 'created' if created else 'updated',
                record.id, current_user.id)
    return record, created


def update_submission(record, values, compute=None):
    """Edit an existing row and re-derive totals for it and every later day"""
    check_edit_allowed(record, current_user.factory.local_now())
    for field, value in values.items():
        setattr(record, field, value)
    if compute is not None:
        rebuild_totals(type(record), record.factory_id, record.work_order_id, compute)
    db.session.commit()
    return record


def delete_submission(record, compute=None):
    if not current_user.is_admin_or_higher():
        raise PermissionDenied('Admin access required')
    model, factory_id, work_order_id = type(record), record.factory_id, record.work_order_id
    record_id = record.id
    db.session.delete(record)
    db.session.flush()
    if compute is not None:
        rebuild_totals(model, factory_id, work_order_id, compute)
    db.session.commit()
    logger.info('%s %s deleted by user %s', model.__tablename__, record_id, current_user.id)


def rebuild_totals(model, factory_id, work_order_id, compute):
    """Recompute running totals for every row of a work order in date order"""
    rows = model.query.filter_by(factory_id=factory_id, work_order_id=work_order_id).order_by(
        model.production_date, model.id).all()
    for row in rows:
        compute(row, [r for r in rows if r.production_date < row.production_date])


def recent_submissions(models, days, submitted_by=None, line_id=None):
    """Rows from the last `days` production days across models, newest first"""
    since = current_user.factory.today() - timedelta(days=max(days, 1) - 1)
    results = []
    for kind, model in models.items():
        query = model.query.filter(
            model.factory_id == current_user.factory_id,
            model.production_date >= since
        )
        if submitted_by is not None:
            query = query.filter(model.submitted_by == submitted_by)
        if line_id is not None:
            query = query.filter(model.line_id == line_id)
        for row in query.all():
            data = row.to_dict()
            data['type'] = kind
            results.append(data)
    results.sort(key=lambda r: (r['production_date'], r['submitted_at'] or ''), reverse=True)
    return results
