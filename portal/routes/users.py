import secrets
from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from portal import db
from portal.errors import PermissionDenied, ValidationError
from portal.models import Line, User, UserLineAssignment, UserRole
from portal.models.user import ADMIN_ROLES, DEPARTMENTS, ROLES
from portal.routes.auth import MIN_PASSWORD_LENGTH
from portal.utils.decorators import admin_required
from portal.utils.forms import factory_query, get_owned_or_404, get_payload, parse_bool, parse_text, raise_if_errors

users_bp = Blueprint('users', __name__)

ASSIGNABLE_ROLES = tuple(r for r in ROLES if r != 'superadmin')


def get_factory_user(user_id):
    return get_owned_or_404(User, user_id, 'User')


def check_owner_protected(user, message):
    """Owners are managed only by owners"""
    if user.has_role('owner') and not current_user.has_role('owner'):
        raise PermissionDenied(message)


def parse_role(data, errors):
    role = parse_text(data, 'role', errors, required=True)
    if role and role not in ASSIGNABLE_ROLES:
        errors['role'] = f'One of {", ".join(ASSIGNABLE_ROLES)}'
    if role == 'owner' and not current_user.has_role('owner'):
        raise PermissionDenied('Only the owner can grant the owner role')
    return role


def parse_department(data, role, errors):
    """Department only applies to workers"""
    if role != 'worker':
        return None
    department = parse_text(data, 'department')
    if department and department not in DEPARTMENTS:
        errors['department'] = f'One of {", ".join(DEPARTMENTS)}'
    return department


def replace_role(user, role):
    UserRole.query.filter_by(user_id=user.id, factory_id=current_user.factory_id).delete()
    db.session.add(UserRole(user_id=user.id, factory_id=current_user.factory_id, role=role))


def replace_line_assignments(user, line_ids):
    UserLineAssignment.query.filter_by(user_id=user.id).delete()
    for line_id in line_ids:
        line = get_owned_or_404(Line, line_id, 'Line')
        db.session.add(UserLineAssignment(user_id=user.id, line_id=line.id, factory_id=current_user.factory_id))


def parse_line_ids(data):
    raw = data.get('lineIds', data.get('line_ids'))
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)):
        raise ValidationError('lineIds must be a list')
    try:
        return [int(line_id) for line_id in raw]
    except (TypeError, ValueError):
        raise ValidationError('lineIds must be a list of line ids')


@users_bp.route('')
@admin_required
def list_users():
    users = factory_query(User).order_by(User.full_name).all()
    return jsonify([u.to_dict() for u in users])


@users_bp.route('/invite', methods=['POST'])
@admin_required
def invite_user():
    """
    Add a user to the factory, or re-invite an existing one.

    Existing roles in this factory are replaced by the new role. When no
    temporary password is given a random one is set and the user resets it.
    """
    data = get_payload()
    errors = {}
    email = parse_text(data, 'email', errors, required=True)
    full_name = parse_text(data, 'full_name', errors, required=True)
    role = parse_role(data, errors)
    department = parse_department(data, role, errors)
    password = data.get('temporaryPassword') or data.get('temporary_password')
    if password and len(password) < MIN_PASSWORD_LENGTH:
        errors['temporaryPassword'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    raise_if_errors(errors, message='Missing required fields')
    line_ids = parse_line_ids(data)

    email = email.lower()
    user = User.query.filter_by(email=email).first()
    is_existing_user = user is not None
    if is_existing_user and user.factory_id not in (None, current_user.factory_id):
        raise ValidationError('This user already belongs to another factory')
    if is_existing_user:
        check_owner_protected(user, 'Only the owner can change another owner')

    if user is None:
        user = User(email=email, full_name=full_name)
        user.set_password(password or secrets.token_urlsafe(24))
        db.session.add(user)
    elif password:
        user.set_password(password)

    user.factory_id = current_user.factory_id
    user.full_name = full_name
    user.department = department
    user.is_active = True
    db.session.flush()

    replace_role(user, role)
    if line_ids:
        replace_line_assignments(user, line_ids)
    db.session.commit()

    current_app.logger.info('User %s %s in factory %s by %s', email, 'updated' if is_existing_user else 'created',
                            current_user.factory_id, current_user.email)
    return jsonify({
        'success': True,
        'userId': user.id,
        'isExistingUser': is_existing_user,
        'message': f'User {"updated" if is_existing_user else "created"} successfully',
        'user': user.to_dict(),
    }), 200 if is_existing_user else 201


@users_bp.route('/<int:user_id>', methods=['PUT'])
@admin_required
def edit_user(user_id):
    user = get_factory_user(user_id)
    check_owner_protected(user, 'Only the owner can change another owner')
    data = get_payload()
    errors = {}

    if 'full_name' in data:
        user.full_name = parse_text(data, 'full_name', errors, required=True) or user.full_name
    if 'phone' in data:
        user.phone = parse_text(data, 'phone')

    role = None
    if 'role' in data:
        role = parse_role(data, errors)
    current_roles = user.role_names
    effective_role = role or (current_roles[0] if current_roles else None)
    if 'department' in data or role is not None:
        user.department = parse_department(data, effective_role, errors)

    if 'is_active' in data:
        is_active = parse_bool(data['is_active'])
        if not is_active and user.id == current_user.id:
            raise PermissionDenied('You cannot deactivate yourself')
        user.is_active = is_active
    raise_if_errors(errors)

    if role is not None:
        if user.id == current_user.id and role not in ADMIN_ROLES:
            raise PermissionDenied('You cannot remove your own admin access')
        replace_role(user, role)
    line_ids = parse_line_ids(data)
    if line_ids is not None:
        replace_line_assignments(user, line_ids)

    db.session.commit()
    return jsonify(user.to_dict())


@users_bp.route('/<int:user_id>/reset-password', methods=['POST'])
@admin_required
def reset_password(user_id):
    """Set a new password for a factory user"""
    user = get_factory_user(user_id)
    password = get_payload().get('password') or ''
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    user.set_password(password)
    db.session.commit()
    current_app.logger.info('Password reset for %s by %s', user.email, current_user.email)
    return jsonify({'success': True})


@users_bp.route('/<int:user_id>/remove-access', methods=['POST'])
@admin_required
def remove_access(user_id):
    """Remove a user from the factory: roles, line assignments and factory link"""
    user = get_factory_user(user_id)
    if user.id == current_user.id:
        raise PermissionDenied('You cannot remove your own access')
    check_owner_protected(user, 'Only the owner can remove another owner')

    factory_id = current_user.factory_id
    UserRole.query.filter_by(user_id=user.id, factory_id=factory_id).delete()
    UserLineAssignment.query.filter_by(user_id=user.id, factory_id=factory_id).delete()
    user.factory_id = None
    user.department = None
    user.is_active = False
    db.session.commit()

    current_app.logger.info('Access removed for %s from factory %s', user.email, factory_id)
    return jsonify({'success': True})
