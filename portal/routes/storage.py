"""
Storage bin cards - one per work order, with a running receive/issue ledger
"""
from flask import Blueprint, Response, current_app, jsonify, request, send_file
from flask_login import current_user
from portal import db
from portal.errors import PermissionDenied, ValidationError
from portal.models import BinCard, BinCardTransaction, WorkOrder
from portal.utils.barcode import po_barcode_svg
from portal.utils.decorators import role_required, subscription_required
from portal.utils.forms import (factory_query, get_owned_or_404, get_payload, parse_int, parse_text,
                                raise_if_errors)
from portal.utils.pdf import generate_bin_card_pdf
from portal.utils.totals import bin_card_preview

storage_bp = Blueprint('storage', __name__)


def load_bin_card(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    bin_card = factory_query(BinCard).filter_by(work_order_id=work_order.id).first()
    return work_order, bin_card


def card_payload(bin_card):
    data = bin_card.to_dict(include_transactions=True)
    data['low_stock'] = bin_card.is_low_stock(current_user.factory.low_stock_threshold or 0)
    return data


@storage_bp.route('/bin-cards/<int:work_order_id>')
@role_required('storage')
@subscription_required
def get_bin_card(work_order_id):
    work_order, bin_card = load_bin_card(work_order_id)
    if bin_card is None:
        return jsonify({'error': 'Bin card not found', 'work_order_id': work_order.id}), 404
    return jsonify(card_payload(bin_card))


@storage_bp.route('/bin-cards/<int:work_order_id>', methods=['POST'])
@role_required('storage')
@subscription_required
def open_bin_card(work_order_id):
    """Load the work order's bin card, creating it with the PO header on first use"""
    work_order, bin_card = load_bin_card(work_order_id)
    if bin_card is not None:
        return jsonify(card_payload(bin_card))

    bin_card = BinCard(
        factory_id=current_user.factory_id,
        work_order_id=work_order.id,
        prepared_by=current_user.full_name,
        prepared_by_user_id=current_user.id,
    )
    bin_card.copy_header_from(work_order)
    db.session.add(bin_card)
    db.session.commit()
    current_app.logger.info('Bin card created for PO %s', work_order.po_number)
    return jsonify(card_payload(bin_card)), 201


@storage_bp.route('/bin-cards/<int:work_order_id>/header', methods=['PUT'])
@role_required('storage')
@subscription_required
def save_header(work_order_id):
    """Save header fields and lock them"""
    _, bin_card = load_bin_card(work_order_id)
    if bin_card is None:
        return jsonify({'error': 'Bin card not found'}), 404
    if bin_card.is_header_locked and not current_user.is_admin_or_higher():
        raise PermissionDenied('Header is locked. Ask an admin to unlock it.')

    data = get_payload()
    for field in BinCard.HEADER_FIELDS:
        if field in data:
            setattr(bin_card, field, parse_text(data, field))
    if 'prepared_by' in data:
        bin_card.prepared_by = parse_text(data, 'prepared_by')
    bin_card.is_header_locked = True
    db.session.commit()
    return jsonify(card_payload(bin_card))


@storage_bp.route('/bin-cards/<int:work_order_id>/unlock', methods=['POST'])
@role_required('storage')
@subscription_required
def unlock_header(work_order_id):
    if not current_user.is_admin_or_higher():
        raise PermissionDenied('Admin access required')
    _, bin_card = load_bin_card(work_order_id)
    if bin_card is None:
        return jsonify({'error': 'Bin card not found'}), 404
    bin_card.is_header_locked = False
    db.session.commit()
    current_app.logger.info('Bin card %s header unlocked by user %s', bin_card.id, current_user.id)
    return jsonify(card_payload(bin_card))


@storage_bp.route('/bin-cards/<int:work_order_id>/preview')
@role_required('storage')
@subscription_required
def preview_transaction(work_order_id):
    _, bin_card = load_bin_card(work_order_id)
    last = bin_card.last_transaction if bin_card else None
    return jsonify(bin_card_preview(
        last.ttl_receive if last else 0,
        last.balance_qty if last else 0,
        request.args.get('receive_qty', 0, type=int),
        request.args.get('issue_qty', 0, type=int),
    ))


@storage_bp.route('/bin-cards/<int:work_order_id>/transactions', methods=['POST'])
@role_required('storage')
@subscription_required
def add_transaction(work_order_id):
    """Record a receive and/or issue against the card"""
    _, bin_card = load_bin_card(work_order_id)
    if bin_card is None:
        return jsonify({'error': 'Bin card not found'}), 404

    data = get_payload()
    errors = {}
    receive_qty = parse_int(data, 'receive_qty', errors, required=False, minimum=0, default=0)
    issue_qty = parse_int(data, 'issue_qty', errors, required=False, minimum=0, default=0)
    raise_if_errors(errors)

    if not receive_qty and not issue_qty:
        raise ValidationError('Enter a receive or issue quantity.')

    last = bin_card.last_transaction
    totals = bin_card_preview(last.ttl_receive if last else 0, last.balance_qty if last else 0,
                              receive_qty, issue_qty)
    if totals['would_go_negative'] and not current_user.is_admin_or_higher():
        raise ValidationError('Balance cannot go negative. Reduce issue quantity.')

    transaction = BinCardTransaction(
        factory_id=current_user.factory_id,
        bin_card_id=bin_card.id,
        transaction_date=current_user.factory.today(),
        receive_qty=receive_qty,
        issue_qty=issue_qty,
        ttl_receive=totals['ttl_receive'],
        balance_qty=totals['balance_qty'],
        remarks=parse_text(data, 'remarks'),
        submitted_by=current_user.id,
    )
    db.session.add(transaction)
    db.session.commit()
    return jsonify({'transaction': transaction.to_dict(), 'bin_card': card_payload(bin_card)}), 201


@storage_bp.route('/history')
@role_required('storage')
@subscription_required
def history():
    """All bin cards with totals, most recently updated first"""
    threshold = current_user.factory.low_stock_threshold or 0
    query = factory_query(BinCard)
    search = request.args.get('q', '').strip()
    if search:
        query = query.join(WorkOrder).filter(WorkOrder.po_number.ilike(f'%{search}%'))
    cards = []
    for card in query.order_by(BinCard.updated_at.desc()).all():
        data = card.to_dict()
        data['low_stock'] = card.is_low_stock(threshold)
        cards.append(data)
    return jsonify(cards)


@storage_bp.route('/bin-cards/<int:work_order_id>/pdf')
@role_required('storage')
@subscription_required
def bin_card_pdf(work_order_id):
    work_order, bin_card = load_bin_card(work_order_id)
    if bin_card is None:
        return jsonify({'error': 'Bin card not found'}), 404
    pdf = generate_bin_card_pdf(bin_card, current_user.factory)
    return send_file(
        pdf,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'bin_card_{work_order.po_number}.pdf'
    )


@storage_bp.route('/bin-cards/<int:work_order_id>/barcode.svg')
@role_required('storage')
@subscription_required
def bin_card_barcode(work_order_id):
    work_order = get_owned_or_404(WorkOrder, work_order_id, 'Work order')
    svg = po_barcode_svg(work_order.po_number)
    if svg is None:
        return jsonify({'error': 'Could not render barcode'}), 422
    return Response(svg, mimetype='image/svg+xml')
