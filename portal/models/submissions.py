"""
Daily department submissions.

Every department keeps a morning target table and an end-of-day actual table.
A line can submit at most one row per work order per production date, which
the database enforces with a unique constraint.
"""
from datetime import datetime
from sqlalchemy.orm import declared_attr
from portal import db


def _iso(value):
    return value.isoformat() if value else None


class SubmissionMixin:
    """Columns shared by every target/actual table"""

    id = db.Column(db.Integer, primary_key=True)
    production_date = db.Column(db.Date, nullable=False, index=True)
    is_late = db.Column(db.Boolean, default=False)
    remarks = db.Column(db.Text)

    # Snapshot of the work order and line at submission time
    po_number = db.Column(db.String(60))
    buyer_name = db.Column(db.String(120))
    style_code = db.Column(db.String(120))
    item_name = db.Column(db.String(200))
    order_qty = db.Column(db.Integer)
    unit_name = db.Column(db.String(100))
    floor_name = db.Column(db.String(100))

    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (
            db.UniqueConstraint('factory_id', 'line_id', 'work_order_id', 'production_date',
                                name=f'uq_{cls.__tablename__}_line_po_date'),
        )

    @declared_attr
    def factory_id(cls):
        return db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)

    @declared_attr
    def line_id(cls):
        return db.Column(db.Integer, db.ForeignKey('lines.id'), nullable=False, index=True)

    @declared_attr
    def work_order_id(cls):
        return db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)

    @declared_attr
    def submitted_by(cls):
        return db.Column(db.Integer, db.ForeignKey('profiles.id'))

    @declared_attr
    def line(cls):
        return db.relationship('Line')

    @declared_attr
    def work_order(cls):
        return db.relationship('WorkOrder')

    @declared_attr
    def submitter(cls):
        return db.relationship('User', foreign_keys=[cls.submitted_by])

    def apply_snapshot(self, line, work_order):
        """Copy descriptive fields so later edits to the PO do not rewrite history"""
        self.po_number = work_order.po_number
        self.buyer_name = work_order.buyer
        self.style_code = work_order.style
        self.item_name = work_order.item
        self.order_qty = work_order.order_qty
        self.unit_name = line.unit.name if line.unit else None
        self.floor_name = line.floor.name if line.floor else None

    def base_dict(self):
        return {
            'id': self.id,
            'production_date': _iso(self.production_date),
            'line_id': self.line_id,
            'line_name': self.line.display_name if self.line else None,
            'work_order_id': self.work_order_id,
            'po_number': self.po_number,
            'buyer': self.buyer_name,
            'style': self.style_code,
            'item': self.item_name,
            'order_qty': self.order_qty,
            'unit_name': self.unit_name,
            'floor_name': self.floor_name,
            'is_late': bool(self.is_late),
            'remarks': self.remarks,
            'submitted_by': self.submitter.full_name if self.submitter else None,
            'submitted_at': _iso(self.submitted_at),
        }


class BlockerMixin:
    """Blocker reporting fields carried by end-of-day actuals"""

    has_blocker = db.Column(db.Boolean, default=False)
    blocker_description = db.Column(db.Text)
    blocker_impact = db.Column(db.String(20))  # low, medium, high, critical
    blocker_owner = db.Column(db.String(100))
    blocker_resolution_date = db.Column(db.Date)
    action_taken_today = db.Column(db.Text)
    blocker_status = db.Column(db.String(20))  # open, in_progress, resolved

    @declared_attr
    def blocker_type_id(cls):
        return db.Column(db.Integer, db.ForeignKey('blocker_types.id'))

    @declared_attr
    def blocker_type(cls):
        return db.relationship('BlockerType')

    def clear_blocker(self):
        self.has_blocker = False
        self.blocker_type_id = None
        self.blocker_description = None
        self.blocker_impact = None
        self.blocker_owner = None
        self.blocker_resolution_date = None
        self.action_taken_today = None
        self.blocker_status = None

    def blocker_dict(self):
        return {
            'has_blocker': bool(self.has_blocker),
            'blocker_type_id': self.blocker_type_id,
            'blocker_type': self.blocker_type.name if self.blocker_type else None,
            'blocker_description': self.blocker_description,
            'blocker_impact': self.blocker_impact,
            'blocker_owner': self.blocker_owner,
            'blocker_resolution_date': _iso(self.blocker_resolution_date),
            'action_taken_today': self.action_taken_today,
            'blocker_status': self.blocker_status,
        }


class SewingTarget(SubmissionMixin, db.Model):
    __tablename__ = 'sewing_targets'

    per_hour_target = db.Column(db.Integer, nullable=False)
    manpower_planned = db.Column(db.Integer, nullable=False)
    ot_hours_planned = db.Column(db.Float, nullable=False, default=0)
    planned_stage_id = db.Column(db.Integer, db.ForeignKey('stages.id'))
    planned_stage_progress = db.Column(db.Integer, nullable=False, default=0)
    next_milestone = db.Column(db.String(200))
    estimated_ex_factory = db.Column(db.Date)

    planned_stage = db.relationship('Stage')

    def __repr__(self):
        return f'<SewingTarget line={self.line_id} {self.production_date}>'

    @property
    def day_target(self):
        return (self.per_hour_target or 0) * 8

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'per_hour_target': self.per_hour_target,
            'manpower_planned': self.manpower_planned,
            'ot_hours_planned': self.ot_hours_planned,
            'planned_stage_id': self.planned_stage_id,
            'planned_stage': self.planned_stage.name if self.planned_stage else None,
            'planned_stage_progress': self.planned_stage_progress,
            'next_milestone': self.next_milestone,
            'estimated_ex_factory': _iso(self.estimated_ex_factory),
            'day_target': self.day_target,
        })
        return data


class SewingActual(SubmissionMixin, BlockerMixin, db.Model):
    __tablename__ = 'sewing_actuals'

    good_today = db.Column(db.Integer, nullable=False, default=0)
    reject_today = db.Column(db.Integer, nullable=False, default=0)
    rework_today = db.Column(db.Integer, nullable=False, default=0)
    cumulative_good_total = db.Column(db.Integer, nullable=False, default=0)
    # set when the line reported its own cumulative total
    cumulative_reported = db.Column(db.Boolean, nullable=False, default=False)
    manpower_actual = db.Column(db.Integer, nullable=False)
    ot_hours_actual = db.Column(db.Float, nullable=False, default=0)
    actual_stage_id = db.Column(db.Integer, db.ForeignKey('stages.id'))
    actual_stage_progress = db.Column(db.Integer, nullable=False, default=0)

    actual_stage = db.relationship('Stage')

    def __repr__(self):
        return f'<SewingActual line={self.line_id} {self.production_date}>'

    def to_dict(self):
        data = self.base_dict()
        data.update(self.blocker_dict())
        data.update({
            'good_today': self.good_today,
            'reject_today': self.reject_today,
            'rework_today': self.rework_today,
            'cumulative_good_total': self.cumulative_good_total,
            'cumulative_reported': self.cumulative_reported,
            'manpower_actual': self.manpower_actual,
            'ot_hours_actual': self.ot_hours_actual,
            'actual_stage_id': self.actual_stage_id,
            'actual_stage': self.actual_stage.name if self.actual_stage else None,
            'actual_stage_progress': self.actual_stage_progress,
        })
        return data


class FinishingTarget(SubmissionMixin, db.Model):
    __tablename__ = 'finishing_targets'

    per_hour_target = db.Column(db.Integer, nullable=False)
    m_power_planned = db.Column(db.Integer, nullable=False)
    day_hour_planned = db.Column(db.Float, nullable=False, default=0)
    day_over_time_planned = db.Column(db.Float, nullable=False, default=0)

    def __repr__(self):
        return f'<FinishingTarget line={self.line_id} {self.production_date}>'

    @property
    def day_target(self):
        return round((self.per_hour_target or 0) * (self.day_hour_planned or 0))

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'per_hour_target': self.per_hour_target,
            'm_power_planned': self.m_power_planned,
            'day_hour_planned': self.day_hour_planned,
            'day_over_time_planned': self.day_over_time_planned,
            'day_target': self.day_target,
        })
        return data


class FinishingActual(SubmissionMixin, BlockerMixin, db.Model):
    __tablename__ = 'finishing_actuals'

    day_qc_pass = db.Column(db.Integer, nullable=False, default=0)
    total_qc_pass = db.Column(db.Integer, nullable=False, default=0)
    day_poly = db.Column(db.Integer, nullable=False, default=0)
    total_poly = db.Column(db.Integer, nullable=False, default=0)
    day_carton = db.Column(db.Integer, nullable=False, default=0)
    total_carton = db.Column(db.Integer, nullable=False, default=0)
    m_power_actual = db.Column(db.Integer, nullable=False, default=0)
    day_hour_actual = db.Column(db.Float, nullable=False, default=0)
    total_hour = db.Column(db.Float)
    day_over_time_actual = db.Column(db.Float, nullable=False, default=0)
    total_over_time = db.Column(db.Float)
    average_production = db.Column(db.Float)

    def __repr__(self):
        return f'<FinishingActual line={self.line_id} {self.production_date}>'

    def to_dict(self):
        data = self.base_dict()
        data.update(self.blocker_dict())
        data.update({
            'day_qc_pass': self.day_qc_pass,
            'total_qc_pass': self.total_qc_pass,
            'day_poly': self.day_poly,
            'total_poly': self.total_poly,
            'day_carton': self.day_carton,
            'total_carton': self.total_carton,
            'm_power_actual': self.m_power_actual,
            'day_hour_actual': self.day_hour_actual,
            'total_hour': self.total_hour,
            'day_over_time_actual': self.day_over_time_actual,
            'total_over_time': self.total_over_time,
            'average_production': self.average_production,
        })
        return data


class CuttingTarget(SubmissionMixin, db.Model):
    __tablename__ = 'cutting_targets'

    colour = db.Column(db.String(80))
    man_power = db.Column(db.Integer, nullable=False, default=0)
    marker_capacity = db.Column(db.Integer, nullable=False, default=0)
    lay_capacity = db.Column(db.Integer, nullable=False, default=0)  # day input target
    cutting_capacity = db.Column(db.Integer, nullable=False, default=0)  # day cutting target
    under_qty = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f'<CuttingTarget line={self.line_id} {self.production_date}>'

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'colour': self.colour,
            'man_power': self.man_power,
            'marker_capacity': self.marker_capacity,
            'lay_capacity': self.lay_capacity,
            'cutting_capacity': self.cutting_capacity,
            'under_qty': self.under_qty,
        })
        return data


class CuttingActual(SubmissionMixin, db.Model):
    __tablename__ = 'cutting_actuals'

    colour = db.Column(db.String(80))
    day_cutting = db.Column(db.Integer, nullable=False, default=0)
    total_cutting = db.Column(db.Integer)
    day_input = db.Column(db.Integer, nullable=False, default=0)
    total_input = db.Column(db.Integer)
    balance = db.Column(db.Integer)

    # Handoff to the sewing line receiving the cut pieces
    acknowledged = db.Column(db.Boolean, default=False)
    acknowledged_at = db.Column(db.DateTime)
    acknowledged_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))

    def __repr__(self):
        return f'<CuttingActual line={self.line_id} {self.production_date}>'

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'colour': self.colour,
            'day_cutting': self.day_cutting,
            'total_cutting': self.total_cutting,
            'day_input': self.day_input,
            'total_input': self.total_input,
            'balance': self.balance,
            'acknowledged': bool(self.acknowledged),
            'acknowledged_at': _iso(self.acknowledged_at),
        })
        return data


# department -> (target model, actual model)
DEPARTMENT_MODELS = {
    'sewing': (SewingTarget, SewingActual),
    'finishing': (FinishingTarget, FinishingActual),
    'cutting': (CuttingTarget, CuttingActual),
}

BLOCKER_MODELS = {
    'sewing': SewingActual,
    'finishing': FinishingActual,
}
