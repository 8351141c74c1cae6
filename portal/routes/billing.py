import json
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from portal import billing, csrf
from portal.errors import PortalError
from portal.utils.decorators import admin_required, factory_required
from portal.utils.forms import get_payload, parse_bool
from portal.utils.plan_tiers import PLAN_TIERS, TIER_ORDER, format_plan_price, get_max_lines_display

billing_bp = Blueprint('billing', __name__)


def request_origin():
    return request.headers.get('Origin')


@billing_bp.route('/plans')
def plans():
    """Public plan list with display prices"""
    result = []
    for tier in TIER_ORDER:
        plan = PLAN_TIERS[tier]
        result.append({
            'id': plan['id'],
            'name': plan['name'],
            'description': plan['description'],
            'price': format_plan_price(plan['price_monthly']),
            'price_monthly': plan['price_monthly'],
            'max_active_lines': plan['max_active_lines'],
            'max_lines_display': get_max_lines_display(plan['max_active_lines']),
            'popular': plan['popular'],
            'features': plan['features'],
        })
    return jsonify(result)


@billing_bp.route('/check-subscription', methods=['POST', 'GET'])
@factory_required
def check_subscription():
    return jsonify(billing.check_subscription(current_user.factory))


@billing_bp.route('/create-checkout', methods=['POST'])
@admin_required
def create_checkout():
    data = get_payload()
    result = billing.create_checkout(
        current_user.factory,
        current_user,
        tier=data.get('tier') or 'starter',
        start_trial=parse_bool(data.get('startTrial', False)),
        origin=request_origin(),
    )
    return jsonify(result)


@billing_bp.route('/customer-portal', methods=['POST'])
@admin_required
def customer_portal():
    return jsonify(billing.customer_portal(current_user.factory, origin=request_origin()))


@billing_bp.route('/change-subscription', methods=['POST'])
@admin_required
def change_subscription():
    data = get_payload()
    new_tier = data.get('newTier') or data.get('new_tier')
    return jsonify(billing.change_subscription(current_user.factory, new_tier))


@billing_bp.route('/cancel-subscription', methods=['POST'])
@factory_required
def cancel_subscription():
    return jsonify(billing.cancel_subscription(current_user.factory, current_user))


@billing_bp.route('/webhook', methods=['POST'])
@csrf.exempt
def webhook():
    """Stripe event endpoint; the signature is checked when a webhook secret is configured"""
    payload = request.get_data()
    secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')
    try:
        if secret:
            event = billing.construct_event(payload, request.headers.get('Stripe-Signature'), secret)
        else:
            current_app.logger.warning('STRIPE_WEBHOOK_SECRET not set; webhook signature not verified')
            event = json.loads(payload)
        if not isinstance(event, dict):
            raise ValueError('Event must be an object')
        event_type = billing.handle_webhook_event(event)
    except (PortalError, ValueError) as e:
        message = e.message if isinstance(e, PortalError) else 'Invalid payload'
        current_app.logger.warning('Webhook rejected: %s', message)
        return jsonify({'error': message}), 400
    return jsonify({'received': True, 'type': event_type})
