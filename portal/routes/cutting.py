from datetime import datetime
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from portal import db
from portal.errors import PermissionDenied
from portal.models import CuttingTarget, CuttingActual
from portal.submissions import (ACTUAL_DUPLICATE_MESSAGE, TARGET_DUPLICATE_MESSAGE, delete_submission,
                                previous_rows, recent_submissions, resolve_context,
                                save_submission, update_submission)
from portal.utils.decorators import role_required, subscription_required
from portal.utils.forms import factory_query, get_owned_or_404, get_payload, parse_bool, parse_int, parse_text, \
    raise_if_errors
from portal.utils.totals import cutting_totals

cutting_bp = Blueprint('cutting', __name__)


def parse_target(data, errors):
    return {
        'cutting_capacity': parse_int(data, 'cutting_capacity', errors, minimum=0),
        'lay_capacity': parse_int(data, 'lay_capacity', errors, minimum=0),
        'man_power': parse_int(data, 'man_power', errors, required=False, minimum=0, default=0),
        'marker_capacity': parse_int(data, 'marker_capacity', errors, required=False, minimum=0, default=0),
        'under_qty': parse_int(data, 'under_qty', errors, required=False, minimum=0, default=0),
        'remarks': parse_text(data, 'remarks'),
    }


def parse_actual(data, errors):
    return {
        'day_cutting': parse_int(data, 'day_cutting', errors, minimum=0),
        'day_input': parse_int(data, 'day_input', errors, minimum=0),
        'remarks': parse_text(data, 'remarks'),
    }


def compute_totals(record, previous):
    totals = cutting_totals(record.order_qty or 0, previous, record.day_cutting, record.day_input)
    for field, value in totals.items():
        setattr(record, field, value)


def with_colour(ctx, values):
    values['colour'] = ctx.work_order.color if ctx else None
    return values


@cutting_bp.route('/targets', methods=['POST'])
@role_required('cutting')
@subscription_required
def submit_target():
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_target(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(CuttingTarget, ctx, with_colour(ctx, values),
                                      ctx.factory.morning_target_cutoff, TARGET_DUPLICATE_MESSAGE)
    return jsonify(record.to_dict()), 201 if created else 200


@cutting_bp.route('/actuals', methods=['POST'])
@role_required('cutting')
@subscription_required
def submit_actual():
    """Day cutting and day input; total cutting, total input and balance are derived"""
    data = get_payload()
    errors = {}
    ctx = resolve_context(data, errors)
    values = parse_actual(data, errors)
    raise_if_errors(errors)

    record, created = save_submission(CuttingActual, ctx, with_colour(ctx, values),
                                      ctx.factory.evening_actual_cutoff, ACTUAL_DUPLICATE_MESSAGE,
                                      compute=compute_totals)
    return jsonify(record.to_dict()), 201 if created else 200


@cutting_bp.route('/actuals/preview')
@role_required('cutting')
@subscription_required
def preview_actual():
    factory = current_user.factory
    work_order_id = request.args.get('work_order_id', type=int)
    order_qty = request.args.get('order_qty', 0, type=int)
    previous = previous_rows(CuttingActual, factory.id, work_order_id, factory.today())
    return jsonify(cutting_totals(
        order_qty,
        previous,
        request.args.get('day_cutting', 0, type=int),
        request.args.get('day_input', 0, type=int),
    ))


@cutting_bp.route('/my-submissions')
@subscription_required
def my_submissions():
    days = request.args.get('days', 7, type=int)
    rows = recent_submissions({'target': CuttingTarget, 'actual': CuttingActual}, days,
                              submitted_by=current_user.id)
    return jsonify(rows)


@cutting_bp.route('/handoffs')
@subscription_required
def list_handoffs():
    """Cut pieces sent to sewing lines, optionally filtered by acknowledgement"""
    query = factory_query(CuttingActual)
    if 'acknowledged' in request.args:
        query = query.filter(CuttingActual.acknowledged == parse_bool(request.args['acknowledged']))
    if not current_user.is_admin_or_higher():
        line_ids = current_user.assigned_line_ids
        if line_ids:
            query = query.filter(CuttingActual.line_id.in_(line_ids))
    rows = query.order_by(CuttingActual.production_date.desc(), CuttingActual.id.desc()).limit(100).all()
    return jsonify([row.to_dict() for row in rows])


@cutting_bp.route('/actuals/<int:actual_id>/acknowledge', methods=['POST'])
@subscription_required
def acknowledge_handoff(actual_id):
    record = get_owned_or_404(CuttingActual, actual_id, 'Submission')
    if not (current_user.is_admin_or_higher() or current_user.department == 'sewing'):
        raise PermissionDenied('Only the receiving sewing line can acknowledge')
    if not current_user.can_submit_for_line(record.line_id):
        raise PermissionDenied('You are not assigned to this line')

    record.acknowledged = True
    record.acknowledged_at = datetime.utcnow()
    record.acknowledged_by = current_user.id
    db.session.commit()
    current_app.logger.info('Cutting handoff %s acknowledged by user %s', record.id, current_user.id)
    return jsonify(record.to_dict())


@cutting_bp.route('/targets/<int:target_id>')
@subscription_required
def get_target(target_id):
    return jsonify(get_owned_or_404(CuttingTarget, target_id, 'Target').to_dict())


@cutting_bp.route('/actuals/<int:actual_id>')
@subscription_required
def get_actual(actual_id):
    return jsonify(get_owned_or_404(CuttingActual, actual_id, 'Submission').to_dict())


@cutting_bp.route('/targets/<int:target_id>', methods=['PUT'])
@subscription_required
def edit_target(target_id):
    record = get_owned_or_404(CuttingTarget, target_id, 'Target')
    errors = {}
    values = parse_target(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values).to_dict())


@cutting_bp.route('/actuals/<int:actual_id>', methods=['PUT'])
@subscription_required
def edit_actual(actual_id):
    record = get_owned_or_404(CuttingActual, actual_id, 'Submission')
    errors = {}
    values = parse_actual(get_payload(), errors)
    raise_if_errors(errors)
    return jsonify(update_submission(record, values, compute=compute_totals).to_dict())


@cutting_bp.route('/targets/<int:target_id>', methods=['DELETE'])
@subscription_required
def delete_target(target_id):
    delete_submission(get_owned_or_404(CuttingTarget, target_id, 'Target'))
    return jsonify({'success': True})


@cutting_bp.route('/actuals/<int:actual_id>', methods=['DELETE'])
@subscription_required
def delete_actual(actual_id):
    delete_submission(get_owned_or_404(CuttingActual, actual_id, 'Submission'), compute=compute_totals)
    return jsonify({'success': True})
