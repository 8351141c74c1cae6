from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from portal import db
from portal.errors import PermissionDenied, ValidationError
from portal.models import (BinCard, CuttingActual, CuttingTarget, ExtrasLedgerEntry, FinishingActual,
                           FinishingTarget, Line, SewingActual, SewingTarget, WorkOrder, WorkOrderLineAssignment)
from portal.models.work_orders import EXTRAS_TRANSACTION_TYPES, WORK_ORDER_STATUSES
from portal.utils.decorators import admin_required, factory_required, subscription_required
from portal.utils.forms import (factory_query, get_owned_or_404, get_payload, parse_bool, parse_date, parse_float,
                                parse_int, parse_text, raise_if_errors)
from portal.utils.totals import output_extras, sum_column

work_orders_bp = Blueprint('work_orders', __name__)

TEXT_FIELDS = ('buyer', 'style', 'item', 'color', 'supplier_name', 'description', 'construction', 'width',
               'package_qty')

# rows that keep a work order from being deleted
DEPENDENT_MODELS = (SewingTarget, SewingActual, FinishingTarget, FinishingActual, CuttingTarget, CuttingActual,
                    BinCard)


def parse_work_order(data, partial=False):
    errors = {}
    values = {}
    if not partial or 'po_number' in data:
        values['po_number'] = parse_text(data, 'po_number', errors, required=True)
    for field in TEXT_FIELDS:
        if not partial or field in data:
            values[field] = parse_text(data, field)
    if not partial or 'order_qty' in data:
        values['order_qty'] = parse_int(data, 'order_qty', errors, minimum=0)
    if 'smv' in data:
        values['smv'] = parse_float(data, 'smv', errors, required=False, minimum=0)
    for field in ('planned_ex_factory', 'actual_ex_factory'):
        if field in data:
            values[field] = parse_date(data.get(field))
    if 'status' in data:
        status = parse_text(data, 'status')
        if status not in WORK_ORDER_STATUSES:
            errors['status'] = f'One of {", ".join(WORK_ORDER_STATUSES)}'
        values['status'] = status
    if 'is_active' in data:
        values['is_active'] = parse_bool(data['is_active'])
    raise_if_errors(errors)
    return values


def set_line_assignments(work_order, line_ids):
    WorkOrderLineAssignment.query.filter_by(work_order_id=work_order.id).delete()
    for line_id in line_ids:
        line = get_owned_or_404(Line, line_id, 'Line')
        db.session.add(WorkOrderLineAssignment(factory_id=work_order.factory_id, work_order_id=work_order.id,
                                               line_id=line.id))


def read_line_ids(data):
    line_ids = data.get('line_ids')
    if line_ids is None:
        return None
    try:
        return [int(line_id) for line_id in line_ids]
    except (TypeError, ValueError):
        raise ValidationError('line_ids must be a list of line ids')


def save_work_order(work_order, line_ids=None):
    """Flush, replace line assignments when given, commit; a taken PO number is a validation error"""
    po_number = work_order.po_number
    try:
        db.session.flush()
        if line_ids is not None:
            set_line_assignments(work_order, line_ids)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f'PO {po_number} already exists', errors={'po_number': 'Already exists'})


def extras_summary(work_order):
    total_output = sum_column(factory_query(FinishingActual).filter_by(work_order_id=work_order.id).all(),
                              'day_carton')
    return output_extras(work_order.order_qty or 0, total_output, work_order.extras_consumed)


@work_orders_bp.route('')
@factory_required
def list_work_orders():
    """Work orders, optionally searched by PO, buyer, style or item"""
    query = factory_query(WorkOrder)
    search = request.args.get('q', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            WorkOrder.po_number.ilike(pattern),
            WorkOrder.buyer.ilike(pattern),
            WorkOrder.style.ilike(pattern),
            WorkOrder.item.ilike(pattern),
        ))
    if 'active' in request.args:
        query = query.filter(WorkOrder.is_active == parse_bool(request.args['active']))
    line_id = request.args.get('line_id', type=int)
    if line_id:
        query = query.join(WorkOrderLineAssignment).filter(WorkOrderLineAssignment.line_id == line_id)
    work_orders = query.order_by(WorkOrder.created_at.desc()).all()
    return jsonify([wo.to_dict() for wo in work_orders])


@work_orders_bp.route('', methods=['POST'])
@admin_required
def create_work_order():
    data = get_payload()
    values = parse_work_order(data)
    work_order = WorkOrder(factory_id=current_user.factory_id, **values)
    db.session.add(work_order)
    save_work_order(work_order, read_line_ids(data))
    current_app.logger.info('Work order %s created', work_order.po_number)
    return jsonify(work_order.to_dict()), 201


@work_orders_bp.route('/<int:work_order_id>')
@factory_required
def get_work_order(work_order_id):
    return jsonify(get_owned_or_404(WorkOrder, work_order_id, 'Work order').to_dict())


@work_orders_bp.route('/<int:work_order_id>', methods=['PUT'])
@admin_required
def edit_work_order(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    data = get_payload()
    for field, value in parse_work_order(data, partial=True).items():
        setattr(work_order, field, value)
    save_work_order(work_order, read_line_ids(data))
    return jsonify(work_order.to_dict())


@work_orders_bp.route('/<int:work_order_id>', methods=['DELETE'])
@admin_required
def delete_work_order(work_order_id):
    """Delete a work order with no production recorded against it"""
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    for model in DEPENDENT_MODELS:
        if model.query.filter_by(work_order_id=work_order.id).first() is not None:
            return jsonify({'error': 'Work order has submissions. Deactivate it instead.'}), 400
    db.session.delete(work_order)
    db.session.commit()
    return jsonify({'success': True})


@work_orders_bp.route('/<int:work_order_id>/lines', methods=['PUT'])
@admin_required
def assign_lines(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    line_ids = read_line_ids(get_payload())
    set_line_assignments(work_order, line_ids or [])
    db.session.commit()
    return jsonify(work_order.to_dict())


@work_orders_bp.route('/<int:work_order_id>/toggle-active', methods=['POST'])
@admin_required
def toggle_active(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    work_order.is_active = not work_order.is_active
    db.session.commit()
    return jsonify(work_order.to_dict())


@work_orders_bp.route('/<int:work_order_id>/progress')
@subscription_required
def progress(work_order_id):
    """Output so far across sewing, finishing and cutting"""
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    sewing = factory_query(SewingActual).filter_by(work_order_id=work_order.id).all()
    finishing = factory_query(FinishingActual).filter_by(work_order_id=work_order.id).all()
    cutting = factory_query(CuttingActual).filter_by(work_order_id=work_order.id).all()
    order_qty = work_order.order_qty or 0
    sewing_output = sum_column(sewing, 'good_today')
    total_input = sum_column(cutting, 'day_input')

    return jsonify({
        'work_order': work_order.to_dict(),
        'sewing': {
            'total_good': sewing_output,
            'total_reject': sum_column(sewing, 'reject_today'),
            'total_rework': sum_column(sewing, 'rework_today'),
            'progress_percent': round(sewing_output / order_qty * 100, 1) if order_qty else 0,
        },
        'finishing': {
            'total_qc_pass': sum_column(finishing, 'day_qc_pass'),
            'total_poly': sum_column(finishing, 'day_poly'),
            'total_carton': sum_column(finishing, 'day_carton'),
        },
        'cutting': {
            'total_cutting': sum_column(cutting, 'day_cutting'),
            'total_input': total_input,
            'balance': order_qty - total_input,
        },
        'extras': extras_summary(work_order),
    })


@work_orders_bp.route('/<int:work_order_id>/extras')
@subscription_required
def extras(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    entries = work_order.extras_entries.order_by(ExtrasLedgerEntry.created_at.desc()).all()
    return jsonify({
        'summary': extras_summary(work_order),
        'entries': [e.to_dict() for e in entries],
        'transaction_types': EXTRAS_TRANSACTION_TYPES,
    })


@work_orders_bp.route('/<int:work_order_id>/extras', methods=['POST'])
@subscription_required
def add_extras_entry(work_order_id):
    """Record sale, transfer or other use of output beyond the PO quantity"""
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    data = get_payload()
    errors = {}
    quantity = parse_int(data, 'quantity', errors, positive=True)
    transaction_type = parse_text(data, 'transaction_type', errors, required=True)
    if transaction_type and transaction_type not in EXTRAS_TRANSACTION_TYPES:
        errors['transaction_type'] = 'Unknown transaction type'
    raise_if_errors(errors)

    is_adjustment = transaction_type == 'adjustment'
    if is_adjustment and not current_user.is_admin_or_higher():
        raise PermissionDenied('Only admins can record adjustments')

    summary = extras_summary(work_order)
    if quantity > summary['extras_available'] and not is_adjustment:
        raise ValidationError(f'Only {summary["extras_available"]} extras available')

    entry = ExtrasLedgerEntry(
        factory_id=current_user.factory_id,
        work_order_id=work_order.id,
        transaction_type=transaction_type,
        quantity=quantity,
        notes=parse_text(data, 'notes'),
        reference_number=parse_text(data, 'reference_number'),
        created_by=current_user.id,
    )
    db.session.add(entry)
    db.session.commit()
    current_app.logger.info('Extras %s of %s recorded for PO %s', transaction_type, quantity, work_order.po_number)
    return jsonify({'entry': entry.to_dict(), 'summary': extras_summary(work_order)}), 201
