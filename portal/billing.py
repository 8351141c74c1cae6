"""
Subscription billing on the Stripe SDK.

Service functions take a Factory, talk to Stripe through the gateway returned
by get_client(), and write the resulting plan state back onto the factory.
"""
import json
import logging
import time
from datetime import datetime, timedelta
import stripe
from flask import current_app
from portal import db
from portal.errors import BillingError, PermissionDenied, ValidationError
from portal.models import Factory
from portal.utils.plan_tiers import (PLAN_TIERS, STRIPE_PRODUCT_TO_TIER, get_max_lines_for_tier,
                                     map_legacy_tier, tier_for_price_amount)

logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300

# Stripe subscription status -> factory subscription_status
SUBSCRIPTION_STATUS_MAP = {
    'active': 'active',
    'trialing': 'trial',
    'past_due': 'past_due',
    'canceled': 'canceled',
}


def log_step(prefix, step, **details):
    if details:
        logger.info('[%s] %s - %s', prefix, step, json.dumps(details, default=str))
    else:
        logger.info('[%s] %s', prefix, step)


class StripeAPIError(BillingError):
    """Error response from Stripe; code is Stripe's error code when present"""

    def __init__(self, message, code=None, http_status=None):
        super().__init__(message)
        self.code = code
        self.http_status = http_status


class StripeGateway:
    """The Stripe calls the billing flows make, bound to one secret key"""

    def __init__(self, api_key):
        self.api_key = api_key

    def _call(self, action, operation, *args, **params):
        try:
            return operation(*args, api_key=self.api_key, **params)
        except stripe.StripeError as e:
            message = e.user_message or str(e) or 'Payment provider error'
            logger.warning('Stripe %s failed: %s', action, message)
            raise StripeAPIError(message, code=e.code, http_status=e.http_status)

    def find_customer_by_email(self, email):
        customers = self._call('list customers', stripe.Customer.list, email=email, limit=1)
        return customers.data[0] if customers.data else None

    def create_customer(self, email, metadata=None):
        return self._call('create customer', stripe.Customer.create, email=email, metadata=metadata or {})

    def retrieve_subscription(self, subscription_id):
        return self._call('retrieve subscription', stripe.Subscription.retrieve, subscription_id)

    def create_subscription(self, params):
        return self._call('create subscription', stripe.Subscription.create, **params)

    def update_subscription(self, subscription_id, params):
        return self._call('update subscription', stripe.Subscription.modify, subscription_id, **params)

    def cancel_subscription(self, subscription_id):
        return self._call('cancel subscription', stripe.Subscription.cancel, subscription_id)

    def create_checkout_session(self, params):
        return self._call('create checkout session', stripe.checkout.Session.create, **params)

    def create_portal_session(self, customer_id, return_url):
        return self._call('create portal session', stripe.billing_portal.Session.create,
                          customer=customer_id, return_url=return_url)


def get_client():
    """Stripe gateway built from app config"""
    secret_key = current_app.config.get('STRIPE_SECRET_KEY')
    if not secret_key:
        raise BillingError('STRIPE_SECRET_KEY is not set')
    return StripeGateway(secret_key)


def _base_url(origin=None):
    return (origin or current_app.config.get('APP_BASE_URL') or '').rstrip('/')


def _subscription_tier(subscription, fallback_tier):
    """Tier from the first subscription item's product, else from its unit amount"""
    items = (subscription.get('items') or {}).get('data') or []
    if not items:
        return fallback_tier
    price = items[0].get('price') or {}
    product = price.get('product')
    product_id = product.get('id') if isinstance(product, dict) else product
    if product_id in STRIPE_PRODUCT_TO_TIER:
        return STRIPE_PRODUCT_TO_TIER[product_id]
    return tier_for_price_amount(price.get('unit_amount')) or fallback_tier


def check_subscription(factory):
    """
    Reconcile the factory's plan with Stripe and report access.

    Order of precedence: a live Stripe subscription, then the trial recorded
    on the factory, then no access.
    """
    prefix = 'CHECK-SUBSCRIPTION'
    log_step(prefix, 'Factory found', factoryId=factory.id, status=factory.subscription_status,
             tier=factory.subscription_tier)

    if factory.stripe_subscription_id:
        try:
            subscription = get_client().retrieve_subscription(factory.stripe_subscription_id)
        except BillingError as e:
            # fall back to the trial recorded on the factory
            log_step(prefix, 'Error checking Stripe subscription', error=e.message)
            subscription = None

        if subscription is not None:
            status = subscription.get('status')
            log_step(prefix, 'Stripe subscription retrieved', id=subscription.get('id'), status=status)

            if status in ('active', 'trialing'):
                tier = _subscription_tier(subscription, map_legacy_tier(factory.subscription_tier))
                max_lines = get_max_lines_for_tier(tier)
                is_trial = status == 'trialing'
                period_end = subscription.get('current_period_end')
                trial_end = subscription.get('trial_end') or period_end
                factory.subscription_tier = tier
                factory.max_lines = max_lines
                factory.subscription_status = SUBSCRIPTION_STATUS_MAP[status]
                if is_trial and trial_end:
                    # access checks read the trial window from the factory
                    factory.trial_end_date = datetime.utcfromtimestamp(int(trial_end))
                db.session.commit()
                log_step(prefix, 'Factory plan synced', tier=tier, maxLines=max_lines,
                         status=factory.subscription_status)

                days_remaining = None
                if is_trial and trial_end:
                    days_remaining = max(0, -(-(int(trial_end) - int(time.time())) // 86400))
                return {
                    'subscribed': not is_trial,
                    'hasAccess': True,
                    'isTrial': is_trial,
                    'subscriptionEnd': (datetime.utcfromtimestamp(period_end).isoformat()
                                        if period_end else None),
                    'currentTier': tier,
                    'maxLines': max_lines,
                    'factoryName': factory.name,
                    'daysRemaining': days_remaining,
                }

            factory.subscription_status = status
            db.session.commit()
            log_step(prefix, 'Subscription not active', status=status)

    if factory.subscription_status in ('trialing', 'trial') and factory.trial_end_date:
        if factory.trial_end_date > datetime.utcnow():
            days_remaining = factory.trial_days_remaining
            log_step(prefix, 'Active trial (from DB)', daysRemaining=days_remaining)
            return {
                'subscribed': False,
                'hasAccess': True,
                'isTrial': True,
                'trialEndDate': factory.trial_end_date.isoformat(),
                'daysRemaining': days_remaining,
                'currentTier': factory.subscription_tier or 'starter',
                'maxLines': factory.max_lines or 30,
                'factoryName': factory.name,
            }

        factory.subscription_status = 'expired'
        db.session.commit()
        log_step(prefix, 'Trial expired')

    log_step(prefix, 'No active subscription or trial')
    return {
        'subscribed': False,
        'hasAccess': False,
        'needsPayment': True,
        'currentTier': factory.subscription_tier or 'starter',
        'maxLines': factory.max_lines or 30,
    }


def _customer_for(client, user, factory):
    if factory.stripe_customer_id:
        return factory.stripe_customer_id
    customer = client.find_customer_by_email(user.email)
    return customer['id'] if customer else None


def create_checkout(factory, user, tier='starter', start_trial=False, origin=None):
    """
    Start a plan purchase.

    With start_trial a trialing subscription is created directly and the
    factory gets its trial window. Otherwise a Checkout Session is opened and
    its URL returned; the webhook activates the plan once paid.
    """
    prefix = 'CREATE-CHECKOUT'
    plan = PLAN_TIERS.get(tier)
    if plan is None:
        raise ValidationError(f'Invalid tier: {tier}')

    log_step(prefix, 'Request', tier=tier, startTrial=start_trial, factoryId=factory.id)
    base_url = _base_url(origin)

    if start_trial:
        client = get_client()
        customer_id = _customer_for(client, user, factory)
        if not customer_id:
            customer = client.create_customer(user.email, {'factory_id': str(factory.id), 'user_id': str(user.id)})
            customer_id = customer['id']
            log_step(prefix, 'Created new customer', customerId=customer_id)

        trial_days = current_app.config.get('TRIAL_DAYS', 14)
        trial_end = int(time.time()) + trial_days * 24 * 60 * 60
        price_id = plan['stripe_price_id'] or PLAN_TIERS['starter']['stripe_price_id']
        subscription = client.create_subscription({
            'customer': customer_id,
            'items': [{'price': price_id}],
            'trial_end': trial_end,
            'payment_behavior': 'default_incomplete',
            'payment_settings': {'save_default_payment_method': 'on_subscription'},
            'metadata': {'factory_id': str(factory.id), 'tier': tier},
        })
        log_step(prefix, 'Trial subscription created', subscriptionId=subscription.get('id'), tier=tier)

        now = datetime.utcnow()
        factory.stripe_customer_id = customer_id
        factory.stripe_subscription_id = subscription.get('id')
        factory.subscription_status = 'trialing'
        factory.subscription_tier = tier
        factory.max_lines = plan['max_active_lines']
        factory.trial_start_date = now
        factory.trial_end_date = now + timedelta(days=trial_days)
        db.session.commit()

        return {
            'success': True,
            'trial': True,
            'tier': tier,
            'trialEndDate': factory.trial_end_date.isoformat(),
            'redirectUrl': f'{base_url}/billing-plan',
        }

    if tier == 'enterprise':
        raise ValidationError('Enterprise plan requires contacting sales', contactSales=True)

    client = get_client()
    customer_id = _customer_for(client, user, factory)
    params = {
        'line_items': [{'price': plan['stripe_price_id'], 'quantity': 1}],
        'mode': 'subscription',
        'success_url': f'{base_url}/billing-plan?payment=success&tier={tier}',
        'cancel_url': f'{base_url}/billing-plan?payment=cancelled',
        'metadata': {'factory_id': str(factory.id), 'user_id': str(user.id), 'tier': tier},
        'subscription_data': {'metadata': {'factory_id': str(factory.id), 'tier': tier}},
    }
    if customer_id:
        params['customer'] = customer_id
    else:
        params['customer_email'] = user.email
    session = client.create_checkout_session(params)
    log_step(prefix, 'Checkout session created', sessionId=session.get('id'), tier=tier)
    return {'url': session.get('url')}


def customer_portal(factory, origin=None):
    if not factory.stripe_customer_id:
        raise ValidationError('No billing account found. Please subscribe first.')
    session = get_client().create_portal_session(factory.stripe_customer_id, f'{_base_url(origin)}/billing-plan')
    log_step('CUSTOMER-PORTAL', 'Portal session created', factoryId=factory.id)
    return {'url': session.get('url')}


def change_subscription(factory, new_tier):
    """Swap the subscription price with prorations and update the line limit"""
    plan = PLAN_TIERS.get(new_tier)
    if plan is None or not plan['stripe_price_id']:
        raise ValidationError(f'Invalid tier: {new_tier}')
    if not factory.stripe_subscription_id:
        raise ValidationError('No active subscription found. Please subscribe first.')

    client = get_client()
    subscription = client.retrieve_subscription(factory.stripe_subscription_id)
    items = (subscription.get('items') or {}).get('data') or []
    if not items:
        raise BillingError('Subscription has no items')

    metadata = dict(subscription.get('metadata') or {})
    metadata['tier'] = new_tier
    updated = client.update_subscription(factory.stripe_subscription_id, {
        'items': [{'id': items[0]['id'], 'price': plan['stripe_price_id']}],
        'proration_behavior': 'create_prorations',
        'metadata': metadata,
    })

    factory.subscription_tier = new_tier
    factory.max_lines = plan['max_active_lines']
    db.session.commit()
    log_step('CHANGE-SUBSCRIPTION', 'Factory updated', tier=new_tier, maxLines=plan['max_active_lines'])

    return {
        'success': True,
        'newTier': new_tier,
        'maxLines': plan['max_active_lines'],
        'subscription': {'id': updated.get('id'), 'status': updated.get('status')},
    }


def cancel_subscription(factory, user):
    """Cancel immediately; the Stripe customer is kept for resubscription"""
    if not user.is_admin_or_higher():
        raise PermissionDenied('Only admins or owners can cancel subscriptions')

    prefix = 'CANCEL-SUBSCRIPTION'
    if factory.stripe_subscription_id:
        client = get_client()
        try:
            subscription = client.retrieve_subscription(factory.stripe_subscription_id)
            if subscription.get('status') != 'canceled':
                client.cancel_subscription(factory.stripe_subscription_id)
                log_step(prefix, 'Stripe subscription cancelled immediately')
        except StripeAPIError as e:
            if e.code != 'resource_missing':
                raise
            log_step(prefix, 'Subscription not found in Stripe, updating database only')

    factory.subscription_status = 'canceled'
    factory.stripe_subscription_id = None
    db.session.commit()
    return {'success': True, 'message': 'Subscription cancelled. All factory users have lost access.'}


def construct_event(payload, signature_header, secret):
    """
    Verify a Stripe-Signature header and return the event as a plain dict.

    Raises ValidationError when the header is missing, the signature does not
    match, the timestamp is outside the tolerance, or the body is not JSON.
    """
    if not signature_header:
        raise ValidationError('Missing Stripe-Signature header')
    try:
        stripe.Webhook.construct_event(payload, signature_header, secret, tolerance=WEBHOOK_TOLERANCE_SECONDS)
    except stripe.SignatureVerificationError as e:
        logger.warning('Webhook signature rejected: %s', e)
        raise ValidationError('Invalid webhook signature')
    except ValueError:
        raise ValidationError('Invalid payload')
    return json.loads(payload)



def _factory_from_metadata(obj):
    factory_id = (obj.get('metadata') or {}).get('factory_id')
    if not factory_id:
        return None
    try:
        return db.session.get(Factory, int(factory_id))
    except (TypeError, ValueError):
        return None


def _factory_from_customer(obj):
    customer_id = obj.get('customer')
    if not customer_id:
        return None
    return Factory.query.filter_by(stripe_customer_id=customer_id).first()


def handle_webhook_event(event):
    """Apply a Stripe event to the matching factory. Returns the event type."""
    prefix = 'STRIPE-WEBHOOK'
    event_type = event.get('type')
    obj = (event.get('data') or {}).get('object') or {}
    log_step(prefix, 'Webhook received', type=event_type, id=event.get('id'))

    if event_type == 'checkout.session.completed':
        factory = _factory_from_metadata(obj)
        if factory and obj.get('subscription'):
            factory.stripe_customer_id = obj.get('customer')
            factory.stripe_subscription_id = obj.get('subscription')
            factory.subscription_status = 'active'
            factory.payment_failed_at = None
            tier = (obj.get('metadata') or {}).get('tier')
            if tier in PLAN_TIERS:
                factory.subscription_tier = tier
                factory.max_lines = PLAN_TIERS[tier]['max_active_lines']
            log_step(prefix, 'Factory updated to active', factoryId=factory.id)

    elif event_type == 'customer.subscription.updated':
        factory = _factory_from_metadata(obj)
        if factory:
            status = SUBSCRIPTION_STATUS_MAP.get(obj.get('status'), 'inactive')
            factory.subscription_status = status
            log_step(prefix, 'Factory status updated', factoryId=factory.id, status=status)

    elif event_type == 'customer.subscription.deleted':
        factory = _factory_from_metadata(obj)
        if factory:
            factory.subscription_status = 'canceled'
            factory.stripe_subscription_id = None
            log_step(prefix, 'Factory subscription canceled', factoryId=factory.id)

    elif event_type == 'invoice.payment_failed':
        factory = _factory_from_customer(obj)
        if factory:
            factory.subscription_status = 'past_due'
            factory.payment_failed_at = datetime.utcnow()
            log_step(prefix, 'Factory marked as past due', factoryId=factory.id)

    elif event_type == 'invoice.payment_succeeded':
        factory = _factory_from_customer(obj)
        if factory:
            factory.subscription_status = 'active'
            factory.payment_failed_at = None
            log_step(prefix, 'Factory subscription reactivated', factoryId=factory.id)

    else:
        log_step(prefix, 'Unhandled event type', type=event_type)

    db.session.commit()
    return event_type
