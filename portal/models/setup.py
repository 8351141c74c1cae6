"""
Factory layout and configuration: units, floors, lines, stages, blocker types
and the dropdown options offered on submission forms
"""
import re
from datetime import datetime
from portal import db

BLOCKER_IMPACTS = ('low', 'medium', 'high', 'critical')
BLOCKER_STATUSES = ('open', 'in_progress', 'resolved')

OPTION_TYPES = ('stage_progress', 'next_milestone', 'blocker_owner', 'blocker_impact')

DEFAULT_STAGES = [
    ('PRE_PROD', 'Pre Production', 1),
    ('MAT_INHOUSE', 'Materials In-House', 2),
    ('CUT', 'Cutting', 3),
    ('SEW', 'Sewing', 4),
    ('PROCESS', 'Process (Wash/Print/Embroidery)', 5),
    ('FINISH', 'Finishing', 6),
    ('PACK', 'Packing', 7),
    ('FINAL_QC', 'Final QC', 8),
    ('READY_SHIP', 'Ready for Shipment', 9),
    ('SHIPPED', 'Shipped', 10),
    ('ON_HOLD', 'On Hold', 11),
]

DEFAULT_BLOCKER_TYPES = [
    ('MATERIAL', 'Material Shortage', 'Procurement', 'high'),
    ('MACHINE', 'Machine Breakdown', 'Maintenance', 'high'),
    ('MANPOWER', 'Manpower Issue', 'HR', 'medium'),
    ('QUALITY', 'Quality Issue', 'QC', 'high'),
    ('PLANNING', 'Planning Issue', 'Planning', 'medium'),
    ('POWER', 'Power Outage', 'Maintenance', 'critical'),
    ('OTHER', 'Other', 'Production', 'low'),
]

DEFAULT_OPTIONS = {
    'stage_progress': ['0%', '25%', '50%', '75%', '100%'],
    'next_milestone': [
        'Continue current stage',
        'Move to next stage',
        'Start Cutting',
        'Start Sewing',
        'Start Process (Wash/Print/Embroidery)',
        'Start Finishing',
        'Start Packing',
        'Start Final QC',
        'Ready for Shipment',
    ],
    'blocker_owner': ['Factory', 'Brand / Buyer', 'Supplier', 'Logistics / Forwarder'],
    'blocker_impact': [
        'No Impact',
        'Risk (may delay)',
        'Delay 1-2 days',
        'Delay 3-7 days',
        'Delay 8+ days',
        'Unknown',
    ],
}


class Unit(db.Model):
    """Factory unit (building)"""
    __tablename__ = 'units'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    code = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    floors = db.relationship('Floor', backref='unit', lazy='dynamic')

    def __repr__(self):
        return f'<Unit {self.code}>'

    def to_dict(self):
        return {'id': self.id, 'code': self.code, 'name': self.name, 'is_active': self.is_active}


class Floor(db.Model):
    """Floor within a unit"""
    __tablename__ = 'floors'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey('units.id'), nullable=False)
    code = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Floor {self.code}>'

    def to_dict(self):
        return {
            'id': self.id,
            'unit_id': self.unit_id,
            'code': self.code,
            'name': self.name,
            'is_active': self.is_active,
        }


class Line(db.Model):
    """Production line - active lines count against the plan limit"""
    __tablename__ = 'lines'
    __table_args__ = (
        db.UniqueConstraint('factory_id', 'line_id', name='uq_line_code'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    line_id = db.Column(db.String(30), nullable=False)  # display code, e.g. L-07
    name = db.Column(db.String(100))
    unit_id = db.Column(db.Integer, db.ForeignKey('units.id'))
    floor_id = db.Column(db.Integer, db.ForeignKey('floors.id'))
    target_per_hour = db.Column(db.Integer)
    target_per_day = db.Column(db.Integer)
    target_efficiency = db.Column(db.Float)
    is_active = db.Column(db.Boolean, default=True)
    deactivated_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    unit = db.relationship('Unit')
    floor = db.relationship('Floor')

    def __repr__(self):
        return f'<Line {self.line_id}>'

    @property
    def display_name(self):
        return self.name or self.line_id

    @property
    def sort_key(self):
        """Numeric ordering so L-2 sorts before L-10"""
        digits = re.sub(r'\D', '', self.line_id or '')
        return (int(digits) if digits else 0, self.line_id or '')

    def to_dict(self):
        return {
            'id': self.id,
            'line_id': self.line_id,
            'name': self.name,
            'unit_id': self.unit_id,
            'floor_id': self.floor_id,
            'unit_name': self.unit.name if self.unit else None,
            'floor_name': self.floor.name if self.floor else None,
            'target_per_hour': self.target_per_hour,
            'target_per_day': self.target_per_day,
            'target_efficiency': self.target_efficiency,
            'is_active': self.is_active,
            'deactivated_at': self.deactivated_at.isoformat() if self.deactivated_at else None,
        }


class Stage(db.Model):
    """Production stage used for progress reporting"""
    __tablename__ = 'stages'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    code = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    sequence = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'sequence': self.sequence,
            'is_active': self.is_active,
        }


class BlockerType(db.Model):
    """Standardized blocker categories with default owner and impact"""
    __tablename__ = 'blocker_types'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    code = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    default_owner = db.Column(db.String(100))
    default_impact = db.Column(db.String(20))  # low, medium, high, critical
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'default_owner': self.default_owner,
            'default_impact': self.default_impact,
            'is_active': self.is_active,
        }


class DropdownOption(db.Model):
    """Configurable dropdown values (stage progress, milestones, blocker owner/impact)"""
    __tablename__ = 'dropdown_options'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    option_type = db.Column(db.String(30), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'option_type': self.option_type,
            'label': self.label,
            'sort_order': self.sort_order,
            'is_active': self.is_active,
        }


def seed_factory_defaults(factory_id):
    """Create default stages, blocker types and dropdown options if missing.

    Returns the number of records created. Caller commits.
    """
    created = 0

    existing_stages = {s.code for s in Stage.query.filter_by(factory_id=factory_id)}
    for code, name, sequence in DEFAULT_STAGES:
        if code not in existing_stages:
            db.session.add(Stage(factory_id=factory_id, code=code, name=name, sequence=sequence))
            created += 1

    existing_types = {b.code for b in BlockerType.query.filter_by(factory_id=factory_id)}
    for code, name, owner, impact in DEFAULT_BLOCKER_TYPES:
        if code not in existing_types:
            db.session.add(BlockerType(factory_id=factory_id, code=code, name=name,
                                       default_owner=owner, default_impact=impact))
            created += 1

    for option_type, labels in DEFAULT_OPTIONS.items():
        if DropdownOption.query.filter_by(factory_id=factory_id, option_type=option_type).first():
            continue
        for sort_order, label in enumerate(labels, start=1):
            db.session.add(DropdownOption(factory_id=factory_id, option_type=option_type,
                                          label=label, sort_order=sort_order))
            created += 1

    return created
