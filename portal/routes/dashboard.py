"""
Factory dashboard, submission listings and the CSV report
"""
from datetime import datetime, time, timedelta, timezone
from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user
from portal import db
from portal.errors import ValidationError
from portal.models import BinCard, Line, WorkOrder
from portal.models.setup import BLOCKER_STATUSES
from portal.models.submissions import BLOCKER_MODELS, DEPARTMENT_MODELS
from portal.submissions import recent_submissions
from portal.utils import csv_export
from portal.utils.decorators import admin_required, subscription_required
from portal.utils.forms import factory_query, get_owned_or_404, get_payload, parse_text
from portal.utils.totals import sum_column

dashboard_bp = Blueprint('dashboard', __name__)

# department -> (target field, actual output field) for achievement
ACHIEVEMENT_FIELDS = {
    'sewing': ('day_target', 'good_today'),
    'finishing': ('day_target', 'day_qc_pass'),
    'cutting': ('cutting_capacity', 'day_cutting'),
}

WEEK_OUTPUT_FIELDS = {
    'sewing': 'good_today',
    'finishing': 'day_qc_pass',
    'cutting': 'day_cutting',
}


def achievement(target, actual):
    if not target:
        return None
    return round(actual / target * 100, 1)


def rows_for_day(model, day):
    return factory_query(model).filter(model.production_date == day).all()


def open_blockers(since=None):
    blockers = []
    for department, model in BLOCKER_MODELS.items():
        query = factory_query(model).filter(
            model.has_blocker.is_(True),
            model.blocker_status.in_(('open', 'in_progress'))
        )
        if since is not None:
            query = query.filter(model.production_date >= since)
        for row in query.all():
            data = row.to_dict()
            data['department'] = department
            blockers.append(data)
    blockers.sort(key=lambda b: (b['production_date'], b['id']), reverse=True)
    return blockers


def parse_departments(raw, default=('sewing', 'finishing', 'cutting')):
    if not raw:
        return list(default)
    departments = [d for d in raw.split(',') if d]
    unknown = [d for d in departments if d not in DEPARTMENT_MODELS and d != 'storage']
    if unknown:
        raise ValidationError(f'Unknown department: {", ".join(unknown)}')
    return departments


@dashboard_bp.route('')
@subscription_required
def overview():
    """Today's headline numbers for the factory"""
    factory = current_user.factory
    today = factory.today()
    active_lines = factory_query(Line).filter_by(is_active=True).all()
    active_line_ids = {line.id for line in active_lines}

    counts = {}
    lines_with_target = set()
    lines_with_actual = set()
    for department, (target_model, actual_model) in DEPARTMENT_MODELS.items():
        targets = rows_for_day(target_model, today)
        actuals = rows_for_day(actual_model, today)
        counts[department] = {'targets': len(targets), 'actuals': len(actuals)}
        lines_with_target.update(t.line_id for t in targets)
        lines_with_actual.update(a.line_id for a in actuals)

    def missing(line_ids):
        return [line.to_dict() for line in sorted(active_lines, key=lambda line: line.sort_key)
                if line.id in active_line_ids - line_ids]

    return jsonify({
        'date': today.isoformat(),
        'counts': counts,
        'open_blockers': len(open_blockers(since=today)),
        'active_lines': len(active_lines),
        'active_work_orders': factory_query(WorkOrder).filter_by(is_active=True).count(),
        'lines_missing_target': missing(lines_with_target),
        'lines_missing_actual': missing(lines_with_actual),
        'recent_updates': recent_updates(limit=5),
    })


def recent_updates(limit=5):
    models = {}
    for department, (target_model, actual_model) in DEPARTMENT_MODELS.items():
        models[f'{department}_target'] = target_model
        models[f'{department}_actual'] = actual_model
    return recent_submissions(models, 1)[:limit]


@dashboard_bp.route('/today')
@subscription_required
def today_updates():
    """Targets against actuals per line and PO for today"""
    today = current_user.factory.today()
    result = {}
    for department, (target_model, actual_model) in DEPARTMENT_MODELS.items():
        target_field, actual_field = ACHIEVEMENT_FIELDS[department]
        targets = {(t.line_id, t.work_order_id): t for t in rows_for_day(target_model, today)}
        actuals = {(a.line_id, a.work_order_id): a for a in rows_for_day(actual_model, today)}
        rows = []
        for key in sorted(set(targets) | set(actuals), key=lambda k: (k[0], k[1])):
            target, actual = targets.get(key), actuals.get(key)
            target_value = getattr(target, target_field, 0) if target else 0
            actual_value = getattr(actual, actual_field, 0) if actual else 0
            source = actual or target
            rows.append({
                'line_id': key[0],
                'line_name': source.line.display_name if source.line else None,
                'work_order_id': key[1],
                'po_number': source.po_number,
                'target': target.to_dict() if target else None,
                'actual': actual.to_dict() if actual else None,
                'target_output': target_value or 0,
                'actual_output': actual_value or 0,
                'achievement_percent': achievement(target_value, actual_value or 0),
            })
        result[department] = rows
    return jsonify({'date': today.isoformat(), 'departments': result})


@dashboard_bp.route('/week')
@subscription_required
def week():
    """Per-day output for the last 7 days, oldest first"""
    today = current_user.factory.today()
    days = [today - timedelta(days=offset) for offset in range(6, -1, -1)]
    series = []
    for day in days:
        entry = {'date': day.isoformat()}
        for department, (target_model, actual_model) in DEPARTMENT_MODELS.items():
            actuals = rows_for_day(actual_model, day)
            entry[department] = {
                'output': sum_column(actuals, WEEK_OUTPUT_FIELDS[department]),
                'submissions': len(actuals),
                'targets': len(rows_for_day(target_model, day)),
            }
        series.append(entry)
    return jsonify(series)


@dashboard_bp.route('/blockers')
@subscription_required
def blockers():
    return jsonify(open_blockers())


@dashboard_bp.route('/blockers/<department>/<int:record_id>', methods=['PATCH'])
@admin_required
def update_blocker(department, record_id):
    """Move a blocker between open, in progress and resolved"""
    model = BLOCKER_MODELS.get(department)
    if model is None:
        raise ValidationError(f'Unknown department: {department}')
    record = get_owned_or_404(model, record_id, 'Blocker')
    if not record.has_blocker:
        raise ValidationError('Submission has no blocker')

    status = parse_text(get_payload(), 'blocker_status')
    if status not in BLOCKER_STATUSES:
        raise ValidationError('Invalid status', errors={'blocker_status': f'One of {", ".join(BLOCKER_STATUSES)}'})
    record.blocker_status = status
    if status == 'resolved' and record.blocker_resolution_date is None:
        record.blocker_resolution_date = current_user.factory.today()
    db.session.commit()
    current_app.logger.info('Blocker on %s %s set to %s', department, record.id, status)
    return jsonify(record.to_dict())


@dashboard_bp.route('/submissions')
@subscription_required
def all_submissions():
    """Submissions across departments filtered by department, days and line"""
    departments = parse_departments(request.args.get('department'))
    days = request.args.get('days', 7, type=int)
    line_id = request.args.get('line_id', type=int)
    models = {}
    for department in departments:
        if department not in DEPARTMENT_MODELS:
            continue
        target_model, actual_model = DEPARTMENT_MODELS[department]
        models[f'{department}_target'] = target_model
        models[f'{department}_actual'] = actual_model
    return jsonify(recent_submissions(models, days, line_id=line_id))


def export_data(departments, days, tz):
    """Records for each report section within the last `days` production days"""
    since = current_user.factory.today() - timedelta(days=max(days, 1) - 1)
    data = {}
    for department, (target_model, actual_model) in DEPARTMENT_MODELS.items():
        if department not in departments:
            continue
        for suffix, model in (('targets', target_model), ('actuals', actual_model)):
            data[f'{department}_{suffix}'] = factory_query(model).filter(
                model.production_date >= since
            ).order_by(model.production_date.desc(), model.submitted_at.desc()).all()
    if 'storage' in departments:
        # since is a factory-local date; stored timestamps are UTC
        start = datetime.combine(since, time.min, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
        data['storage_bin_cards'] = factory_query(BinCard).filter(
            BinCard.updated_at >= start
        ).order_by(BinCard.updated_at.desc()).all()
    return data


@dashboard_bp.route('/export')
@admin_required
def export_csv():
    """Download the submissions report for the selected departments"""
    factory = current_user.factory
    departments = csv_export.selected_departments(parse_departments(request.args.get('departments')))
    if not departments:
        raise ValidationError('Select at least one department')
    days = request.args.get('days', 7, type=int)
    if days < 1:
        raise ValidationError('Days must be at least 1')

    tz = factory.tz
    data = export_data(departments, days, tz)
    if not csv_export.count_records(data, departments):
        return jsonify({'error': 'No records found for the selected range'}), 404

    generated_on = factory.local_now()
    rows = csv_export.build_report_rows(data, departments, days, generated_on, tz=tz)
    filename = csv_export.export_filename(departments, days, generated_on)
    current_app.logger.info('Exported %s records for factory %s', csv_export.count_records(data, departments),
                            factory.id)
    return Response(
        csv_export.rows_to_csv(rows),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )
