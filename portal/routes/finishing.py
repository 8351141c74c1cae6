from flask import Blueprint, jsonify, request
from flask_login import current_user
from portal.models import FinishingTarget, FinishingActual
from portal.submissions import (ACTUAL_DUPLICATE_MESSAGE, TARGET_DUPLICATE_MESSAGE, delete_submission,
                                parse_blocker, previous_rows, recent_submissions, require_department,
                                resolve_context, save_submission, update_submission)
from portal.utils.decorators import subscription_required
from portal.utils.forms import get_owned_or_404, get_payload, parse_float, parse_int, parse_text, raise_if_errors
from portal.utils.totals import finishing_totals

finishing_bp = Blueprint('finishing', __name__)


def parse_target(data, errors):
    return {
        'per_hour_target': parse_int(data, 'per_hour_target', errors, positive=True),
        'm_power_planned': parse_int(data, 'm_power_planned', errors, positive=True),
        'day_hour_planned': parse_float(data, 'day_hour_planned', errors, minimum=0),
        'day_over_time_planned': parse_float(data, 'day_over_time_planned', errors, minimum=0),
        'remarks': parse_text(data, 'remarks'),
    }


def parse_actual(data, errors):
    values = {
        'day_qc_pass': parse_int(data, 'day_qc_pass', errors, minimum=0),
        'day_poly': parse_int(data, 'day_poly', errors, minimum=0),
        'day_carton': parse_int(data, 'day_carton', errors, minimum=0),
        'm_power_actual': parse_int(data, 'm_power_actual', errors, minimum=0),
        'day_hour_actual': parse_float(data, 'day_hour_actual', errors, minimum=0),
        'day_over_time_actual': parse_float(data, 'day_over_time_actual', errors, minimum=0, required=False,
                                            default=0),
        'remarks': parse_text(data, 'remarks'),
    }
    values.update(parse_blocker(data, errors))
    return values


def compute_totals(record, previous):
    totals = finishing_totals(previous, record.day_qc_pass, record.day_poly, record.day_carton,
                              record.day_hour_actual, record.day_over_time_actual)
    for field, value in totals.items():
        setattr(record, field, value)


@finishing_bp.route('/targets', methods=['POST'])
@subscription_required
def submit_target():
    require_department('finishing')
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_target(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(FinishingTarget, ctx, values, ctx.factory.morning_target_cutoff,
                                      TARGET_DUPLICATE_MESSAGE)
    return jsonify(record.to_dict()), 201 if created else 200


@finishing_bp.route('/actuals', methods=['POST'])
@subscription_required
def submit_actual():
    """End of day QC pass, poly and carton counts; running totals are derived here"""
    require_department('finishing')
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_actual(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(FinishingActual, ctx, values, ctx.factory.evening_actual_cutoff,
                                      ACTUAL_DUPLICATE_MESSAGE, compute=compute_totals)
    return jsonify(record.to_dict()), 201 if created else 200


@finishing_bp.route('/actuals/preview')
@subscription_required
def preview_actual():
    factory = current_user.factory
    previous = previous_rows(FinishingActual, factory.id, request.args.get('work_order_id', type=int),
                             factory.today())
    return jsonify(finishing_totals(
        previous,
        request.args.get('day_qc_pass', 0, type=int),
        request.args.get('day_poly', 0, type=int),
        request.args.get('day_carton', 0, type=int),
        request.args.get('day_hour', 0, type=float),
        request.args.get('day_over_time', 0, type=float),
    ))


@finishing_bp.route('/my-submissions')
@subscription_required
def my_submissions():
    days = request.args.get('days', 7, type=int)
    rows = recent_submissions({'target': FinishingTarget, 'actual': FinishingActual}, days,
                              submitted_by=current_user.id)
    return jsonify(rows)


@finishing_bp.route('/targets/<int:target_id>')
@subscription_required
def get_target(target_id):
    return jsonify(get_owned_or_404(FinishingTarget, target_id, 'Target').to_dict())


@finishing_bp.route('/actuals/<int:actual_id>')
@subscription_required
def get_actual(actual_id):
    return jsonify(get_owned_or_404(FinishingActual, actual_id, 'Submission').to_dict())


@finishing_bp.route('/targets/<int:target_id>', methods=['PUT'])
@subscription_required
def edit_target(target_id):
    record = get_owned_or_404(FinishingTarget, target_id, 'Target')
    errors = {}
    values = parse_target(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values).to_dict())


@finishing_bp.route('/actuals/<int:actual_id>', methods=['PUT'])
@subscription_required
def edit_actual(actual_id):
    record = get_owned_or_404(FinishingActual, actual_id, 'Submission')
    errors = {}
    values = parse_actual(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values, compute=compute_totals).to_dict())


@finishing_bp.route('/targets/<int:target_id>', methods=['DELETE'])
@subscription_required
def delete_target(target_id):
    delete_submission(get_owned_or_404(FinishingTarget, target_id, 'Target'))
    return jsonify({'success': True})


@finishing_bp.route('/actuals/<int:actual_id>', methods=['DELETE'])
@subscription_required
def delete_actual(actual_id):
    delete_submission(get_owned_or_404(FinishingActual, actual_id, 'Submission'), compute=compute_totals)
    return jsonify({'success': True})
