from datetime import datetime
from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from portal import db
from portal.errors import NotFound, PlanLimitReached, ValidationError
from portal.models import (Unit, Floor, Line, Stage, BlockerType, DropdownOption, SewingTarget, SewingActual,
                           UserLineAssignment, WorkOrderLineAssignment,
                           FinishingTarget, FinishingActual, CuttingTarget, CuttingActual)
from portal.models.setup import OPTION_TYPES, BLOCKER_IMPACTS, seed_factory_defaults
from portal.utils.cutoffs import parse_cutoff
from portal.utils.decorators import admin_required, factory_required
from portal.utils.forms import (get_payload, parse_bool, parse_float, parse_int, parse_text, raise_if_errors,
                                factory_query, get_owned_or_404)
from portal.utils.plan_tiers import active_lines_status, effective_max_lines

setup_bp = Blueprint('setup', __name__)

PLAN_LIMIT_MESSAGE = 'Plan limit reached'
PLAN_LIMIT_DESCRIPTION = 'Upgrade your plan to activate more production lines.'

# entity -> (model, {field: kind}, required fields)
ENTITIES = {
    'units': (Unit, {'code': 'text', 'name': 'text', 'is_active': 'bool'}, ('code', 'name')),
    'floors': (Floor, {'unit_id': 'int', 'code': 'text', 'name': 'text', 'is_active': 'bool'},
               ('unit_id', 'code', 'name')),
    'lines': (Line, {'line_id': 'text', 'name': 'text', 'unit_id': 'int', 'floor_id': 'int',
                     'target_per_hour': 'int', 'target_per_day': 'int', 'target_efficiency': 'float',
                     'is_active': 'bool'}, ('line_id',)),
    'stages': (Stage, {'code': 'text', 'name': 'text', 'sequence': 'int', 'is_active': 'bool'}, ('code', 'name')),
    'blocker-types': (BlockerType, {'code': 'text', 'name': 'text', 'default_owner': 'text',
                                    'default_impact': 'text', 'is_active': 'bool'}, ('code', 'name')),
    'dropdown-options': (DropdownOption, {'option_type': 'text', 'label': 'text', 'sort_order': 'int',
                                          'is_active': 'bool'}, ('option_type', 'label')),
}

ORDERING = {
    Unit: (Unit.code,),
    Floor: (Floor.code,),
    Stage: (Stage.sequence, Stage.name),
    BlockerType: (BlockerType.name,),
    DropdownOption: (DropdownOption.option_type, DropdownOption.sort_order),
}


def get_entity(entity):
    if entity not in ENTITIES:
        raise NotFound(f'Unknown setup section: {entity}')
    return ENTITIES[entity]


def read_fields(data, fields, required, partial=False):
    """Parse the posted fields for an entity; partial updates only touch fields present"""
    errors = {}
    values = {}
    for field, kind in fields.items():
        if partial and field not in data:
            continue
        is_required = field in required
        if kind == 'int':
            values[field] = parse_int(data, field, errors, required=is_required, minimum=0)
        elif kind == 'float':
            values[field] = parse_float(data, field, errors, required=is_required, minimum=0)
        elif kind == 'bool':
            values[field] = parse_bool(data.get(field, True))
        else:
            values[field] = parse_text(data, field, errors, required=is_required)
    raise_if_errors(errors)
    return values


def validate_entity(model, values):
    if model is Floor and values.get('unit_id') is not None:
        get_owned_or_404(Unit, values['unit_id'], 'Unit')
    if model is Line:
        if values.get('unit_id') is not None:
            get_owned_or_404(Unit, values['unit_id'], 'Unit')
        if values.get('floor_id') is not None:
            get_owned_or_404(Floor, values['floor_id'], 'Floor')
    if model is BlockerType and values.get('default_impact') and values['default_impact'] not in BLOCKER_IMPACTS:
        raise ValidationError('Invalid impact', errors={'default_impact': f'One of {", ".join(BLOCKER_IMPACTS)}'})
    if model is DropdownOption and 'option_type' in values and values['option_type'] not in OPTION_TYPES:
        raise ValidationError('Invalid option type', errors={'option_type': f'One of {", ".join(OPTION_TYPES)}'})


def line_status(factory):
    active = factory_query(Line).filter_by(is_active=True).count()
    archived = factory_query(Line).filter_by(is_active=False).count()
    return active_lines_status(active, effective_max_lines(factory), factory.subscription_tier, archived)


def ensure_can_activate_lines(factory, count=1):
    """Raise PlanLimitReached unless count more lines fit in the plan"""
    status = line_status(factory)
    max_lines = status['max_lines']
    if max_lines is not None and status['active_count'] + count > max_lines:
        raise PlanLimitReached(PLAN_LIMIT_MESSAGE, description=PLAN_LIMIT_DESCRIPTION, status=status)


def line_has_submissions(line):
    return any(
        model.query.filter_by(line_id=line.id).first() is not None
        for model in (SewingTarget, SewingActual, FinishingTarget, FinishingActual, CuttingTarget, CuttingActual)
    )


@setup_bp.route('/form-options')
@factory_required
def form_options():
    """Active stages, blocker types, dropdown options and lines for submission forms"""
    lines = factory_query(Line).filter_by(is_active=True).all()
    if not current_user.is_admin_or_higher():
        assigned = set(current_user.assigned_line_ids)
        if assigned:
            lines = [line for line in lines if line.id in assigned]
    lines.sort(key=lambda line: line.sort_key)

    options = {option_type: [] for option_type in OPTION_TYPES}
    for option in factory_query(DropdownOption).filter_by(is_active=True).order_by(DropdownOption.sort_order):
        options.setdefault(option.option_type, []).append(option.label)

    return jsonify({
        'lines': [line.to_dict() for line in lines],
        'stages': [s.to_dict() for s in factory_query(Stage).filter_by(is_active=True).order_by(Stage.sequence)],
        'blocker_types': [b.to_dict() for b in
                          factory_query(BlockerType).filter_by(is_active=True).order_by(BlockerType.name)],
        'options': options,
    })


@setup_bp.route('/settings', methods=['GET', 'PUT'])
@admin_required
def settings():
    """Factory name, timezone, cutoffs and storage threshold"""
    factory = current_user.factory
    if request.method == 'PUT':
        data = get_payload()
        errors = {}
        if 'name' in data:
            name = parse_text(data, 'name', errors, required=True)
            if name:
                factory.name = name
        if 'timezone' in data:
            factory.timezone = parse_text(data, 'timezone')
        for field in ('cutoff_time', 'morning_target_cutoff', 'evening_actual_cutoff'):
            if field in data:
                value = parse_text(data, field)
                if value and parse_cutoff(value) is None:
                    errors[field] = 'Use HH:MM'
                else:
                    setattr(factory, field, value)
        if 'low_stock_threshold' in data:
            threshold = parse_int(data, 'low_stock_threshold', errors, minimum=0)
            if threshold is not None:
                factory.low_stock_threshold = threshold
        raise_if_errors(errors, 'Invalid settings')
        db.session.commit()
        current_app.logger.info('Factory %s settings updated by %s', factory.id, current_user.email)
    return jsonify(factory.to_dict())


@setup_bp.route('/active-lines')
@factory_required
def active_lines():
    return jsonify(line_status(current_user.factory))


@setup_bp.route('/seed-defaults', methods=['POST'])
@admin_required
def seed_defaults():
    created = seed_factory_defaults(current_user.factory_id)
    db.session.commit()
    return jsonify({'success': True, 'created': created})


@setup_bp.route('/lines/bulk', methods=['POST'])
@admin_required
def bulk_add_lines():
    """Create lines L<start>..L<start+count-1>, capped by the free plan slots"""
    data = get_payload()
    errors = {}
    count = parse_int(data, 'count', errors, positive=True)
    start = parse_int(data, 'start_number', errors, required=False, minimum=1, default=1)
    unit_id = parse_int(data, 'unit_id', errors, required=False)
    floor_id = parse_int(data, 'floor_id', errors, required=False)
    raise_if_errors(errors)
    validate_entity(Line, {'unit_id': unit_id, 'floor_id': floor_id})

    status = line_status(current_user.factory)
    slots = count if status['max_lines'] is None else status['max_lines'] - status['active_count']
    to_create = min(count, slots)
    if to_create <= 0:
        raise PlanLimitReached(PLAN_LIMIT_MESSAGE, description='Upgrade your plan to add more production lines.')

    existing = {line.line_id for line in factory_query(Line)}
    created = []
    number = start
    while len(created) < to_create:
        code = f'L{number}'
        if code not in existing:
            line = Line(factory_id=current_user.factory_id, line_id=code, name=f'Line {number}',
                        unit_id=unit_id, floor_id=floor_id, is_active=True)
            db.session.add(line)
            created.append(line)
        number += 1
    db.session.commit()

    return jsonify({
        'created': len(created),
        'requested': count,
        'limited_by_plan': to_create < count,
        'lines': [line.to_dict() for line in created],
    }), 201


@setup_bp.route('/<entity>')
@admin_required
def list_entities(entity):
    model, _, _ = get_entity(entity)
    query = factory_query(model)
    if request.args.get('active') == 'true':
        query = query.filter_by(is_active=True)
    if model is DropdownOption and request.args.get('option_type'):
        query = query.filter_by(option_type=request.args['option_type'])

    if model is Line:
        records = sorted(query.all(), key=lambda line: line.sort_key)
    else:
        records = query.order_by(*ORDERING[model]).all()
    return jsonify([r.to_dict() for r in records])


@setup_bp.route('/<entity>', methods=['POST'])
@admin_required
def create_entity(entity):
    model, fields, required = get_entity(entity)
    values = read_fields(get_payload(), fields, required)
    validate_entity(model, values)

    if model is Line:
        if factory_query(Line).filter_by(line_id=values['line_id']).first():
            raise ValidationError('Line ID already exists', errors={'line_id': 'Already in use'})
        if values.get('is_active', True):
            ensure_can_activate_lines(current_user.factory)

    record = model(factory_id=current_user.factory_id, **values)
    db.session.add(record)
    db.session.commit()
    return jsonify(record.to_dict()), 201


@setup_bp.route('/<entity>/<int:record_id>', methods=['PUT'])
@admin_required
def update_entity(entity, record_id):
    model, fields, required = get_entity(entity)
    record = get_owned_or_404(model, record_id)
    values = read_fields(get_payload(), fields, required, partial=True)
    validate_entity(model, values)

    if model is Line:
        if values.get('line_id') and values['line_id'] != record.line_id and \
                factory_query(Line).filter_by(line_id=values['line_id']).first():
            raise ValidationError('Line ID already exists', errors={'line_id': 'Already in use'})
        if values.get('is_active') and not record.is_active:
            ensure_can_activate_lines(current_user.factory)
            record.deactivated_at = None
        elif values.get('is_active') is False and record.is_active:
            record.deactivated_at = datetime.utcnow()

    for field, value in values.items():
        setattr(record, field, value)
    db.session.commit()
    return jsonify(record.to_dict())


@setup_bp.route('/<entity>/<int:record_id>/toggle-active', methods=['POST'])
@admin_required
def toggle_active(entity, record_id):
    """Flip is_active; activating a line must fit in the plan"""
    model, _, _ = get_entity(entity)
    record = get_owned_or_404(model, record_id)

    if model is Line:
        if not record.is_active:
            ensure_can_activate_lines(current_user.factory)
            record.deactivated_at = None
        else:
            record.deactivated_at = datetime.utcnow()

    record.is_active = not record.is_active
    db.session.commit()
    current_app.logger.info('%s %s set active=%s', model.__name__, record.id, record.is_active)

    payload = record.to_dict()
    if model is Line:
        payload['status'] = line_status(current_user.factory)
    return jsonify(payload)


@setup_bp.route('/<entity>/<int:record_id>', methods=['DELETE'])
@admin_required
def delete_entity(entity, record_id):
    model, _, _ = get_entity(entity)
    record = get_owned_or_404(model, record_id)

    if model is Line and line_has_submissions(record):
        raise ValidationError('Line has submissions. Deactivate it instead.')
    if model is Unit and (record.floors.first() or factory_query(Line).filter_by(unit_id=record.id).first()):
        raise ValidationError('Unit is in use. Deactivate it instead.')
    if model is Floor and factory_query(Line).filter_by(floor_id=record.id).first():
        raise ValidationError('Floor is in use. Deactivate it instead.')

    if model is Line:
        UserLineAssignment.query.filter_by(line_id=record.id).delete()
        WorkOrderLineAssignment.query.filter_by(line_id=record.id).delete()

    db.session.delete(record)
    db.session.commit()
    return jsonify({'success': True})
