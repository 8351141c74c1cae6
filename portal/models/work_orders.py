from datetime import datetime
from portal import db

WORK_ORDER_STATUSES = ('not_started', 'in_progress', 'completed', 'on_hold', 'cancelled')

EXTRAS_TRANSACTION_TYPES = {
    'sold': 'Sold',
    'transferred_to_stock': 'Transferred to Stock',
    'replacement_shipment': 'Replacement Shipment',
    'scrapped': 'Scrapped',
    'donated': 'Donated',
    'adjustment': 'Adjustment',
}


class WorkOrder(db.Model):
    """Purchase order being produced on one or more lines"""
    __tablename__ = 'work_orders'
    __table_args__ = (
        db.UniqueConstraint('factory_id', 'po_number', name='uq_work_order_po'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    po_number = db.Column(db.String(60), nullable=False, index=True)
    buyer = db.Column(db.String(120))
    style = db.Column(db.String(120))
    item = db.Column(db.String(200))
    color = db.Column(db.String(80))
    order_qty = db.Column(db.Integer, default=0)
    smv = db.Column(db.Float)
    supplier_name = db.Column(db.String(200))
    description = db.Column(db.Text)
    construction = db.Column(db.String(200))
    width = db.Column(db.String(50))
    package_qty = db.Column(db.String(50))
    planned_ex_factory = db.Column(db.Date)
    actual_ex_factory = db.Column(db.Date)
    status = db.Column(db.String(20), default='not_started')
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    line_assignments = db.relationship('WorkOrderLineAssignment', backref='work_order', lazy='dynamic',
                                       cascade='all, delete-orphan')
    extras_entries = db.relationship('ExtrasLedgerEntry', backref='work_order', lazy='dynamic',
                                     cascade='all, delete-orphan')

    def __repr__(self):
        return f'<WorkOrder {self.po_number}>'

    @property
    def assigned_line_ids(self):
        return [a.line_id for a in self.line_assignments]

    @property
    def extras_consumed(self):
        """Extras used up by the ledger; adjustments are recorded but not consumed"""
        return sum(e.quantity for e in self.extras_entries if e.transaction_type != 'adjustment')

    def to_dict(self):
        return {
            'id': self.id,
            'po_number': self.po_number,
            'buyer': self.buyer,
            'style': self.style,
            'item': self.item,
            'color': self.color,
            'order_qty': self.order_qty or 0,
            'smv': self.smv,
            'supplier_name': self.supplier_name,
            'description': self.description,
            'construction': self.construction,
            'width': self.width,
            'package_qty': self.package_qty,
            'planned_ex_factory': self.planned_ex_factory.isoformat() if self.planned_ex_factory else None,
            'actual_ex_factory': self.actual_ex_factory.isoformat() if self.actual_ex_factory else None,
            'status': self.status,
            'is_active': self.is_active,
            'line_ids': self.assigned_line_ids,
        }


class WorkOrderLineAssignment(db.Model):
    __tablename__ = 'work_order_line_assignments'
    __table_args__ = (
        db.UniqueConstraint('work_order_id', 'line_id', name='uq_work_order_line'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    line_id = db.Column(db.Integer, db.ForeignKey('lines.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    line = db.relationship('Line')


class ExtrasLedgerEntry(db.Model):
    """Consumption of output produced beyond the PO quantity"""
    __tablename__ = 'extras_ledger'
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_extras_quantity_positive'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    transaction_type = db.Column(db.String(30), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)
    reference_number = db.Column(db.String(100))
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User')

    def __repr__(self):
        return f'<ExtrasLedgerEntry {self.transaction_type}: {self.quantity}>'

    @property
    def transaction_label(self):
        return EXTRAS_TRANSACTION_TYPES.get(self.transaction_type, self.transaction_type)

    def to_dict(self):
        return {
            'id': self.id,
            'work_order_id': self.work_order_id,
            'transaction_type': self.transaction_type,
            'transaction_label': self.transaction_label,
            'quantity': self.quantity,
            'notes': self.notes,
            'reference_number': self.reference_number,
            'created_by': self.user.full_name if self.user else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
