"""
Plan tier configuration for active-line based billing.

Prices are monthly and in cents. A max_active_lines of None means unlimited.
"""

TIER_ORDER = ['starter', 'growth', 'scale', 'enterprise']

PLAN_TIERS = {
    'starter': {
        'id': 'starter',
        'name': 'Starter',
        'description': 'Perfect for small factories',
        'price_monthly': 39999,
        'max_active_lines': 30,
        'popular': False,
        'features': [
            'Up to 30 active production lines',
            'All production modules included',
            'Real-time insights & analytics',
            'Work order management',
            'Blocker tracking & alerts',
            'Unlimited users',
            'Email support',
        ],
        'stripe_price_id': 'price_starter_monthly',
        'stripe_product_id': 'prod_Tk0Z6QU3HYNqmx',
    },
    'growth': {
        'id': 'growth',
        'name': 'Growth',
        'description': 'For growing operations',
        'price_monthly': 54999,
        'max_active_lines': 60,
        'popular': True,
        'features': [
            'Up to 60 active production lines',
            'All Starter features',
            'Priority email support',
            'Monthly insights reports',
        ],
        'stripe_price_id': 'price_growth_monthly',
        'stripe_product_id': 'prod_Tk0Zyl3J739mGp',
    },
    'scale': {
        'id': 'scale',
        'name': 'Scale',
        'description': 'For large factories',
        'price_monthly': 62999,
        'max_active_lines': 100,
        'popular': False,
        'features': [
            'Up to 100 active production lines',
            'All Growth features',
            'Phone support',
            'Dedicated success manager',
        ],
        'stripe_price_id': 'price_scale_monthly',
        'stripe_product_id': 'prod_Tk0ZNeXFFFP9jz',
    },
    'enterprise': {
        'id': 'enterprise',
        'name': 'Enterprise',
        'description': 'For enterprise operations',
        'price_monthly': 0,  # custom pricing, contact sales
        'max_active_lines': None,
        'popular': False,
        'features': [
            'Unlimited active production lines',
            'All Scale features',
            'Custom integrations',
            'SLA guarantee',
            'API access',
            'On-site training',
        ],
        'stripe_price_id': None,
        'stripe_product_id': None,
    },
}

STRIPE_PRICE_TO_TIER = {
    plan['stripe_price_id']: tier for tier, plan in PLAN_TIERS.items() if plan['stripe_price_id']
}

STRIPE_PRODUCT_TO_TIER = {
    plan['stripe_product_id']: tier for tier, plan in PLAN_TIERS.items() if plan['stripe_product_id']
}

PRICE_AMOUNT_TO_TIER = {
    plan['price_monthly']: tier for tier, plan in PLAN_TIERS.items() if plan['price_monthly']
}

LEGACY_TIERS = {
    'starter': 'starter',
    'professional': 'growth',
    'growth': 'growth',
    'scale': 'scale',
    'enterprise': 'enterprise',
    'unlimited': 'enterprise',
}

# Line count from which a factory should be talking to sales
ENTERPRISE_LINE_THRESHOLD = 100


def get_plan_by_id(plan_id):
    return PLAN_TIERS.get(plan_id)


def get_plan_by_price_id(price_id):
    tier = STRIPE_PRICE_TO_TIER.get(price_id)
    return PLAN_TIERS[tier] if tier else None


def get_plan_by_product_id(product_id):
    tier = STRIPE_PRODUCT_TO_TIER.get(product_id)
    return PLAN_TIERS[tier] if tier else None


def tier_for_price_amount(unit_amount):
    """Fallback lookup when the provider product id is not one of ours"""
    return PRICE_AMOUNT_TO_TIER.get(unit_amount)


def format_plan_price(price_in_cents):
    """'Custom' for unpriced plans, otherwise USD with thousands separators"""
    if price_in_cents == 0:
        return 'Custom'
    return f'${price_in_cents / 100:,.2f}'


def get_max_lines_display(max_lines):
    return 'Unlimited' if max_lines is None else str(max_lines)


def map_legacy_tier(tier):
    """Map stored subscription_tier values (including retired names) to a current tier"""
    return LEGACY_TIERS.get(tier, 'starter')


def get_max_lines_for_tier(tier):
    return PLAN_TIERS[map_legacy_tier(tier)]['max_active_lines']


def get_next_tier(current_tier):
    """Next tier up, or None when already on the top tier"""
    if current_tier not in TIER_ORDER:
        return TIER_ORDER[0]
    index = TIER_ORDER.index(current_tier)
    if index < len(TIER_ORDER) - 1:
        return TIER_ORDER[index + 1]
    return None


def effective_max_lines(factory):
    """
    Line limit for a factory.

    An explicit max_lines on the account wins over the tier default, except
    on enterprise which is always unlimited.
    """
    tier = map_legacy_tier(factory.subscription_tier)
    if tier == 'enterprise':
        return None
    if factory.max_lines:
        return factory.max_lines
    return PLAN_TIERS[tier]['max_active_lines']


def active_lines_status(active_count, max_lines, tier, archived_count=0):
    """Summary shown on the active lines meter"""
    tier = map_legacy_tier(tier)
    return {
        'active_count': active_count,
        'archived_count': archived_count,
        'max_lines': max_lines,
        'max_lines_display': get_max_lines_display(max_lines),
        'plan_tier': tier,
        'plan_name': PLAN_TIERS[tier]['name'],
        'next_tier': get_next_tier(tier),
        'is_at_limit': max_lines is not None and active_count >= max_lines,
        'can_activate_more': max_lines is None or active_count < max_lines,
        'needs_enterprise': active_count >= ENTERPRISE_LINE_THRESHOLD and tier != 'enterprise',
    }
