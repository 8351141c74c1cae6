from functools import wraps
from flask_login import current_user, login_required
from portal.errors import PermissionDenied, SubscriptionRequired


def factory_required(view_func):
    """Signed-in user must belong to a factory"""
    @wraps(view_func)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.factory_id:
            raise PermissionDenied('No factory assigned', needsFactory=True)
        return view_func(*args, **kwargs)
    return wrapper


def admin_required(view_func):
    """Require admin, owner or superadmin within the user's factory"""
    @wraps(view_func)
    @factory_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin_or_higher():
            raise PermissionDenied('Admin access required')
        return view_func(*args, **kwargs)
    return wrapper


def role_required(*roles):
    """Require one of roles; admins always pass"""
    def decorator(view_func):
        @wraps(view_func)
        @factory_required
        def wrapper(*args, **kwargs):
            if not (current_user.is_admin_or_higher() or any(current_user.has_role(r) for r in roles)):
                raise PermissionDenied('You do not have access to this section')
            return view_func(*args, **kwargs)
        return wrapper
    return decorator


def subscription_required(view_func):
    """Block production features once the trial or subscription has lapsed"""
    @wraps(view_func)
    @factory_required
    def wrapper(*args, **kwargs):
        factory = current_user.factory
        if not factory.has_active_access:
            raise SubscriptionRequired(
                'Your subscription is not active',
                needsPayment=True,
                subscriptionStatus=factory.subscription_status,
            )
        return view_func(*args, **kwargs)
    return wrapper
