from datetime import datetime
from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from portal import db
from portal.cli import provision_factory
from portal.errors import PermissionDenied, ValidationError
from portal.models import User
from portal.utils.forms import get_payload, parse_text, raise_if_errors

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 8


def session_payload(user):
    factory = user.factory
    return {
        'user': user.to_dict(),
        'factory': factory.to_dict() if factory else None,
        'is_admin': user.is_admin_or_higher(),
    }


@auth_bp.route('/csrf-token')
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests"""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
def login():
    """User login"""
    data = get_payload()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    remember = bool(data.get('remember', False))

    user = User.query.filter_by(email=email).first()

    if user is None or not user.check_password(password):
        return jsonify({'error': 'Invalid email or password'}), 401

    if not user.is_active:
        return jsonify({'error': 'Your account has been deactivated. Contact your administrator.'}), 403

    login_user(user, remember=remember)
    user.last_login = datetime.utcnow()
    db.session.commit()

    return jsonify(session_payload(user))


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create a factory on trial together with its owner account"""
    data = get_payload()
    errors = {}
    factory_name = parse_text(data, 'factory_name', errors, required=True)
    full_name = parse_text(data, 'full_name', errors, required=True)
    email = parse_text(data, 'email', errors, required=True)
    password = data.get('password') or ''
    if len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    raise_if_errors(errors)

    if User.query.filter_by(email=email.lower()).first():
        raise ValidationError('An account with this email already exists')

    factory, owner = provision_factory(factory_name, email, full_name, password,
                                       timezone=parse_text(data, 'timezone'))
    login_user(owner)
    return jsonify(session_payload(owner)), 201


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """User logout"""
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(session_payload(current_user))


@auth_bp.route('/profile', methods=['PATCH'])
@login_required
def profile():
    """Update own name/phone and optionally change password"""
    data = get_payload()

    if 'full_name' in data:
        full_name = parse_text(data, 'full_name')
        if not full_name:
            raise ValidationError('Full name is required')
        current_user.full_name = full_name
    if 'phone' in data:
        current_user.phone = parse_text(data, 'phone')

    current_password = data.get('current_password') or ''
    new_password = data.get('new_password') or ''
    if new_password:
        if not current_user.check_password(current_password):
            raise PermissionDenied('Current password is incorrect')
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        current_user.set_password(new_password)

    db.session.commit()
    return jsonify(current_user.to_dict())
