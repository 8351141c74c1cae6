from flask import Blueprint, jsonify, request
from flask_login import current_user
from portal.models import SewingTarget, SewingActual, Stage
from portal.submissions import (ACTUAL_DUPLICATE_MESSAGE, TARGET_DUPLICATE_MESSAGE, delete_submission,
                                parse_blocker, parse_progress, previous_rows, recent_submissions,
                                require_department, resolve_context, save_submission, update_submission)
from portal.utils.decorators import subscription_required
from portal.utils.forms import (get_owned_or_404, get_payload, parse_date, parse_float, parse_int, parse_text,
                                raise_if_errors)
from portal.utils.totals import sewing_cumulative

sewing_bp = Blueprint('sewing', __name__)


def parse_stage(data, field, errors):
    stage_id = parse_int(data, field, errors)
    if stage_id is not None and not errors.get(field):
        get_owned_or_404(Stage, stage_id, 'Stage')
    return stage_id


def parse_target(data, errors):
    return {
        'per_hour_target': parse_int(data, 'per_hour_target', errors, positive=True),
        'manpower_planned': parse_int(data, 'manpower_planned', errors, positive=True),
        'ot_hours_planned': parse_float(data, 'ot_hours_planned', errors, minimum=0, required=False, default=0),
        'planned_stage_id': parse_stage(data, 'planned_stage_id', errors),
        'planned_stage_progress': parse_progress(data, 'planned_stage_progress', errors),
        'next_milestone': parse_text(data, 'next_milestone', errors, required=True),
        'estimated_ex_factory': parse_date(data.get('estimated_ex_factory')),
        'remarks': parse_text(data, 'remarks'),
    }


def parse_actual(data, errors):
    values = {
        'good_today': parse_int(data, 'good_today', errors, minimum=0),
        'reject_today': parse_int(data, 'reject_today', errors, minimum=0),
        'rework_today': parse_int(data, 'rework_today', errors, minimum=0),
        'manpower_actual': parse_int(data, 'manpower_actual', errors, positive=True),
        'ot_hours_actual': parse_float(data, 'ot_hours_actual', errors, minimum=0, required=False, default=0),
        'actual_stage_id': parse_stage(data, 'actual_stage_id', errors),
        'actual_stage_progress': parse_progress(data, 'actual_stage_progress', errors),
        'remarks': parse_text(data, 'remarks'),
    }
    cumulative = parse_int(data, 'cumulative_good_total', errors, required=False, minimum=0)
    values['cumulative_reported'] = cumulative is not None
    if cumulative is not None:
        values['cumulative_good_total'] = cumulative
    values.update(parse_blocker(data, errors))
    return values


def rebuild_cumulative(record, previous):
    """Cumulative good total from earlier days unless the line reported its own"""
    if not record.cumulative_reported:
        record.cumulative_good_total = sewing_cumulative(previous, record.good_today)


@sewing_bp.route('/targets', methods=['POST'])
@subscription_required
def submit_target():
    """Morning target for a line and PO"""
    require_department('sewing')
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_target(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(SewingTarget, ctx, values, ctx.factory.morning_target_cutoff,
                                      TARGET_DUPLICATE_MESSAGE)
    return jsonify(record.to_dict()), 201 if created else 200


@sewing_bp.route('/actuals', methods=['POST'])
@subscription_required
def submit_actual():
    """End of day output for a line and PO"""
    require_department('sewing')
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_actual(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(SewingActual, ctx, values, ctx.factory.evening_actual_cutoff,
                                      ACTUAL_DUPLICATE_MESSAGE,
                                      compute=rebuild_cumulative)
    return jsonify(record.to_dict()), 201 if created else 200


@sewing_bp.route('/actuals/preview')
@subscription_required
def preview_actual():
    """Cumulative total the submission would record, without saving"""
    work_order_id = request.args.get('work_order_id', type=int)
    good_today = request.args.get('good_today', 0, type=int)
    factory = current_user.factory
    previous = previous_rows(SewingActual, factory.id, work_order_id, factory.today())
    return jsonify({
        'previous_total': sewing_cumulative(previous, 0),
        'cumulative_good_total': sewing_cumulative(previous, good_today),
    })


@sewing_bp.route('/my-submissions')
@subscription_required
def my_submissions():
    days = request.args.get('days', 7, type=int)
    rows = recent_submissions({'target': SewingTarget, 'actual': SewingActual}, days, submitted_by=current_user.id)
    return jsonify(rows)


@sewing_bp.route('/targets/<int:target_id>')
@subscription_required
def get_target(target_id):
    return jsonify(get_owned_or_404(SewingTarget, target_id, 'Target').to_dict())


@sewing_bp.route('/actuals/<int:actual_id>')
@subscription_required
def get_actual(actual_id):
    return jsonify(get_owned_or_404(SewingActual, actual_id, 'Submission').to_dict())


@sewing_bp.route('/targets/<int:target_id>', methods=['PUT'])
@subscription_required
def edit_target(target_id):
    record = get_owned_or_404(SewingTarget, target_id, 'Target')
    errors = {}
    values = parse_target(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values).to_dict())


@sewing_bp.route('/actuals/<int:actual_id>', methods=['PUT'])
@subscription_required
def edit_actual(actual_id):
    record = get_owned_or_404(SewingActual, actual_id, 'Submission')
    errors = {}
    values = parse_actual(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values, compute=rebuild_cumulative).to_dict())


@sewing_bp.route('/targets/<int:target_id>', methods=['DELETE'])
@subscription_required
def delete_target(target_id):
    delete_submission(get_owned_or_404(SewingTarget, target_id, 'Target'))
    return jsonify({'success': True})


@sewing_bp.route('/actuals/<int:actual_id>', methods=['DELETE'])
@subscription_required
def delete_actual(actual_id):
    delete_submission(get_owned_or_404(SewingActual, actual_id, 'Submission'), compute=rebuild_cumulative)
    return jsonify({'success': True})
