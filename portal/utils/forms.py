"""
Request payload parsing and tenant-scoped lookups shared by the blueprints
"""
from datetime import date, datetime
from flask import request
from flask_login import current_user
from portal import db
from portal.errors import NotFound, ValidationError

REQUIRED_MESSAGE = 'Please fill all required fields'


def get_payload():
    """JSON body, falling back to form fields"""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def parse_number(data, field, errors, cast=int, required=True, minimum=None, positive=False, default=None):
    """
    Read a numeric field, recording a message in errors on failure.

    positive means strictly greater than zero; minimum is inclusive.
    """
    value = data.get(field)
    if _blank(value):
        if required:
            errors[field] = 'Required'
        return default
    try:
        number = cast(value)
    except (TypeError, ValueError):
        errors[field] = 'Must be a number'
        return default
    if positive and number <= 0:
        errors[field] = 'Must be greater than 0'
    elif minimum is not None and number < minimum:
        errors[field] = f'Must be at least {minimum}'
    return number


def parse_int(data, field, errors, **kwargs):
    return parse_number(data, field, errors, cast=int, **kwargs)


def parse_float(data, field, errors, **kwargs):
    return parse_number(data, field, errors, cast=float, **kwargs)


def parse_text(data, field, errors=None, required=False):
    value = data.get(field)
    if _blank(value):
        if required and errors is not None:
            errors[field] = 'Required'
        return None
    return str(value).strip()


def parse_date(value):
    if _blank(value):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'Invalid date: {value}')


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('1', 'true', 'yes', 'on')


def raise_if_errors(errors, message=REQUIRED_MESSAGE):
    if errors:
        raise ValidationError(message, errors=errors)


def factory_query(model):
    """Query for model restricted to the signed-in user's factory"""
    return model.query.filter_by(factory_id=current_user.factory_id)


def get_owned_or_404(model, object_id, label=None):
    """Fetch a record only if it belongs to the caller's factory"""
    obj = db.session.get(model, object_id) if object_id is not None else None
    if obj is None or obj.factory_id != current_user.factory_id:
        raise NotFound(f'{label or model.__name__} not found')
    return obj
