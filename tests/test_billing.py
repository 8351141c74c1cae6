import copy
import hashlib
import hmac
import json
import time
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch
import stripe
from portal import billing
from portal.errors import ValidationError
from tests.base import OWNER_EMAIL, PortalTestCase

SUBSCRIPTION = {
    'id': 'sub_1',
    'status': 'active',
    'current_period_end': 1790000000,
    'items': {'data': [{'id': 'si_1', 'price': {'product': 'prod_Tk0Z6QU3HYNqmx', 'unit_amount': 39999}}]},
    'metadata': {'factory_id': '1'},
}


class FakeStripe:
    """Records calls in place of the Stripe gateway"""

    def __init__(self, subscription=None):
        self.subscription = copy.deepcopy(subscription or SUBSCRIPTION)
        self.calls = []

    def find_customer_by_email(self, email):
        self.calls.append(('find_customer', email))
        return None

    def create_customer(self, email, metadata=None):
        self.calls.append(('create_customer', email))
        return {'id': 'cus_1'}

    def retrieve_subscription(self, subscription_id):
        self.calls.append(('retrieve', subscription_id))
        return self.subscription

    def create_subscription(self, params):
        self.calls.append(('create_subscription', params))
        return {'id': 'sub_new', 'status': 'trialing'}

    def update_subscription(self, subscription_id, params):
        self.calls.append(('update', params))
        return {'id': subscription_id, 'status': 'active'}

    def cancel_subscription(self, subscription_id):
        self.calls.append(('cancel', subscription_id))
        return {'id': subscription_id, 'status': 'canceled'}

    def create_checkout_session(self, params):
        self.calls.append(('checkout', params))
        return {'id': 'cs_1', 'url': 'https://checkout.test/cs_1'}

    def create_portal_session(self, customer_id, return_url):
        self.calls.append(('portal', customer_id, return_url))
        return {'url': 'https://billing.test/session'}


def sign(payload, secret, timestamp=None):
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f'{timestamp}.'.encode() + payload, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={digest}'


class HelperTests(unittest.TestCase):

    def test_signature_verification(self):
        payload = b'{"type": "ping"}'
        event = billing.construct_event(payload, sign(payload, 'whsec_1'), 'whsec_1')
        self.assertEqual(event['type'], 'ping')
        with self.assertRaises(ValidationError):
            billing.construct_event(payload, sign(payload, 'other'), 'whsec_1')
        with self.assertRaises(ValidationError):
            billing.construct_event(payload, sign(payload, 'whsec_1', timestamp=1000), 'whsec_1')
        with self.assertRaises(ValidationError):
            billing.construct_event(payload, None, 'whsec_1')

    def test_gateway_wraps_stripe_errors(self):
        gateway = billing.StripeGateway('sk_test_1')
        error = stripe.InvalidRequestError('No such subscription', 'id', code='resource_missing', http_status=404)
        with patch.object(stripe.Subscription, 'retrieve', side_effect=error) as retrieve:
            with self.assertRaises(billing.StripeAPIError) as caught:
                gateway.retrieve_subscription('sub_gone')
        retrieve.assert_called_once_with('sub_gone', api_key='sk_test_1')
        self.assertEqual(caught.exception.code, 'resource_missing')
        self.assertEqual(caught.exception.http_status, 404)


class SubscriptionTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.stripe = FakeStripe()
        patcher = patch.object(billing, 'get_client', return_value=self.stripe)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_plans_are_public(self):
        plans = self.app.test_client().get('/billing/plans').get_json()
        self.assertEqual([p['id'] for p in plans], ['starter', 'growth', 'scale', 'enterprise'])
        self.assertEqual(plans[0]['price'], '$399.99')
        self.assertEqual(plans[-1]['price'], 'Custom')
        self.assertEqual(plans[-1]['max_lines_display'], 'Unlimited')

    def test_trial_reported_from_factory(self):
        data = self.owner.get('/billing/check-subscription').get_json()
        self.assertIs(data['hasAccess'], True)
        self.assertIs(data['isTrial'], True)
        self.assertEqual(data['daysRemaining'], 14)

    def test_expired_trial_needs_payment(self):
        self.update_factory(trial_end_date=datetime.utcnow() - timedelta(days=1))
        data = self.owner.post('/billing/check-subscription').get_json()
        self.assertIs(data['hasAccess'], False)
        self.assertIs(data['needsPayment'], True)
        self.assertEqual(self.load_factory().subscription_status, 'expired')

    def test_live_subscription_sets_tier(self):
        price = self.stripe.subscription['items']['data'][0]['price']
        price['product'] = 'prod_unknown'
        price['unit_amount'] = 54999
        self.update_factory(stripe_subscription_id='sub_1')

        data = self.owner.get('/billing/check-subscription').get_json()
        self.assertIs(data['subscribed'], True)
        self.assertEqual(data['currentTier'], 'growth')
        self.assertEqual(data['maxLines'], 60)
        factory = self.load_factory()
        self.assertEqual(factory.subscription_status, 'active')
        self.assertEqual(factory.max_lines, 60)

    def test_trialing_subscription_keeps_access(self):
        trial_end = int(time.time()) + 5 * 86400
        self.stripe.subscription.update(status='trialing', trial_end=trial_end)
        self.update_factory(stripe_subscription_id='sub_1', subscription_status='expired',
                            trial_end_date=datetime.utcnow() - timedelta(days=1))

        data = self.owner.get('/billing/check-subscription').get_json()
        self.assertIs(data['hasAccess'], True)
        self.assertIs(data['isTrial'], True)
        self.assertEqual(data['daysRemaining'], 5)

        factory = self.load_factory()
        self.assertEqual(factory.subscription_status, 'trial')
        self.assertEqual(factory.trial_end_date, datetime.utcfromtimestamp(trial_end))
        self.assertIs(factory.has_active_access, True)

    def test_checkout_session(self):
        response = self.owner.post('/billing/create-checkout', json={'tier': 'growth'},
                                   headers={'Origin': 'https://portal.test'})
        self.assertEqual(response.get_json(), {'url': 'https://checkout.test/cs_1'})
        _, params = self.stripe.calls[-1]
        self.assertEqual(params['line_items'], [{'price': 'price_growth_monthly', 'quantity': 1}])
        self.assertEqual(params['success_url'], 'https://portal.test/billing-plan?payment=success&tier=growth')
        self.assertEqual(params['customer_email'], OWNER_EMAIL)

    def test_enterprise_checkout_goes_to_sales(self):
        response = self.owner.post('/billing/create-checkout', json={'tier': 'enterprise'})
        self.assertEqual(response.status_code, 400)
        self.assertIs(response.get_json()['contactSales'], True)
        self.assertEqual(self.stripe.calls, [])

    def test_start_trial_creates_subscription(self):
        data = self.owner.post('/billing/create-checkout', json={'tier': 'scale', 'startTrial': True}).get_json()
        self.assertIs(data['trial'], True)
        factory = self.load_factory()
        self.assertEqual(factory.stripe_customer_id, 'cus_1')
        self.assertEqual(factory.stripe_subscription_id, 'sub_new')
        self.assertEqual(factory.subscription_tier, 'scale')
        self.assertEqual(factory.max_lines, 100)

    def test_change_subscription(self):
        self.update_factory(stripe_subscription_id='sub_1', subscription_status='active')
        data = self.owner.post('/billing/change-subscription', json={'newTier': 'scale'}).get_json()
        self.assertEqual(data['maxLines'], 100)
        _, params = self.stripe.calls[-1]
        self.assertEqual(params['items'], [{'id': 'si_1', 'price': 'price_scale_monthly'}])
        self.assertEqual(self.load_factory().subscription_tier, 'scale')

    def test_cancel_subscription(self):
        self.update_factory(stripe_subscription_id='sub_1', subscription_status='active')
        self.make_user('w@acme.test', department='sewing')
        self.assertEqual(self.login('w@acme.test').post('/billing/cancel-subscription').status_code, 403)

        self.assertIs(self.owner.post('/billing/cancel-subscription').get_json()['success'], True)
        self.assertIn(('cancel', 'sub_1'), self.stripe.calls)
        factory = self.load_factory()
        self.assertEqual(factory.subscription_status, 'canceled')
        self.assertIsNone(factory.stripe_subscription_id)

    def test_portal_needs_customer(self):
        self.assertEqual(self.owner.post('/billing/customer-portal').status_code, 400)
        self.update_factory(stripe_customer_id='cus_9')
        response = self.owner.post('/billing/customer-portal')
        self.assertEqual(response.get_json()['url'], 'https://billing.test/session')


class WebhookTests(PortalTestCase):

    def test_webhook_activates_factory(self):
        self.app.config['STRIPE_WEBHOOK_SECRET'] = 'whsec_1'
        payload = json.dumps({
            'id': 'evt_1',
            'type': 'checkout.session.completed',
            'data': {'object': {'customer': 'cus_2', 'subscription': 'sub_2',
                                'metadata': {'factory_id': str(self.factory_id), 'tier': 'growth'}}},
        }).encode()
        client = self.app.test_client()

        rejected = client.post('/billing/webhook', data=payload, headers={'Stripe-Signature': sign(payload, 'nope')})
        self.assertEqual(rejected.status_code, 400)

        response = client.post('/billing/webhook', data=payload,
                               headers={'Stripe-Signature': sign(payload, 'whsec_1')})
        self.assertEqual(response.get_json(), {'received': True, 'type': 'checkout.session.completed'})
        factory = self.load_factory()
        self.assertEqual(factory.subscription_status, 'active')
        self.assertEqual(factory.subscription_tier, 'growth')
        self.assertEqual(factory.stripe_customer_id, 'cus_2')

    def test_webhook_payment_failed_marks_past_due(self):
        self.update_factory(stripe_customer_id='cus_3', subscription_status='active')
        payload = json.dumps({'type': 'invoice.payment_failed', 'data': {'object': {'customer': 'cus_3'}}})
        response = self.app.test_client().post('/billing/webhook', data=payload)
        self.assertEqual(response.status_code, 200)
        factory = self.load_factory()
        self.assertEqual(factory.subscription_status, 'past_due')
        self.assertIsNotNone(factory.payment_failed_at)

    def test_webhook_rejects_garbage(self):
        self.assertEqual(self.app.test_client().post('/billing/webhook', data=b'not json').status_code, 400)


if __name__ == '__main__':
    unittest.main()
