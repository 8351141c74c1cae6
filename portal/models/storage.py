from datetime import datetime
from portal import db


class BinCard(db.Model):
    """Material bin card for a work order - header plus a receive/issue ledger"""
    __tablename__ = 'storage_bin_cards'
    __table_args__ = (
        db.UniqueConstraint('factory_id', 'work_order_id', name='uq_bin_card_work_order'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False)

    # Header
    buyer = db.Column(db.String(120))
    style = db.Column(db.String(120))
    supplier_name = db.Column(db.String(200))
    description = db.Column(db.Text)
    construction = db.Column(db.String(200))
    color = db.Column(db.String(80))
    width = db.Column(db.String(50))
    package_qty = db.Column(db.String(50))
    prepared_by = db.Column(db.String(128))
    prepared_by_user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    is_header_locked = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    work_order = db.relationship('WorkOrder')
    transactions = db.relationship('BinCardTransaction', backref='bin_card', lazy='dynamic',
                                   cascade='all, delete-orphan')

    HEADER_FIELDS = ('buyer', 'style', 'supplier_name', 'description', 'construction',
                     'color', 'width', 'package_qty')

    def __repr__(self):
        return f'<BinCard {self.work_order_id}>'

    def ordered_transactions(self):
        return self.transactions.order_by(
            BinCardTransaction.transaction_date, BinCardTransaction.created_at, BinCardTransaction.id
        ).all()

    @property
    def last_transaction(self):
        return self.transactions.order_by(
            BinCardTransaction.transaction_date.desc(),
            BinCardTransaction.created_at.desc(),
            BinCardTransaction.id.desc()
        ).first()

    @property
    def total_received(self):
        return sum(t.receive_qty or 0 for t in self.transactions)

    @property
    def total_issued(self):
        return sum(t.issue_qty or 0 for t in self.transactions)

    @property
    def current_balance(self):
        last = self.last_transaction
        return last.balance_qty if last else 0

    def is_low_stock(self, threshold):
        last = self.last_transaction
        return last is not None and last.balance_qty < threshold

    def copy_header_from(self, work_order):
        self.buyer = work_order.buyer
        self.style = work_order.style
        self.supplier_name = work_order.supplier_name
        self.description = work_order.description or work_order.item
        self.construction = work_order.construction
        self.color = work_order.color
        self.width = work_order.width
        self.package_qty = work_order.package_qty

    def to_dict(self, include_transactions=False):
        data = {
            'id': self.id,
            'work_order_id': self.work_order_id,
            'po_number': self.work_order.po_number if self.work_order else None,
            'buyer': self.buyer,
            'style': self.style,
            'supplier_name': self.supplier_name,
            'description': self.description,
            'construction': self.construction,
            'color': self.color,
            'width': self.width,
            'package_qty': self.package_qty,
            'prepared_by': self.prepared_by,
            'is_header_locked': bool(self.is_header_locked),
            'total_received': self.total_received,
            'total_issued': self.total_issued,
            'balance': self.current_balance,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_transactions:
            data['transactions'] = [t.to_dict() for t in self.ordered_transactions()]
        return data


class BinCardTransaction(db.Model):
    __tablename__ = 'storage_bin_card_transactions'

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False, index=True)
    bin_card_id = db.Column(db.Integer, db.ForeignKey('storage_bin_cards.id'), nullable=False, index=True)
    transaction_date = db.Column(db.Date, nullable=False)
    receive_qty = db.Column(db.Integer, nullable=False, default=0)
    issue_qty = db.Column(db.Integer, nullable=False, default=0)
    ttl_receive = db.Column(db.Integer, nullable=False, default=0)
    balance_qty = db.Column(db.Integer, nullable=False, default=0)
    remarks = db.Column(db.Text)
    submitted_by = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    submitter = db.relationship('User')

    def __repr__(self):
        return f'<BinCardTransaction +{self.receive_qty}/-{self.issue_qty}>'

    def to_dict(self):
        return {
            'id': self.id,
            'transaction_date': self.transaction_date.isoformat() if self.transaction_date else None,
            'receive_qty': self.receive_qty,
            'issue_qty': self.issue_qty,
            'ttl_receive': self.ttl_receive,
            'balance_qty': self.balance_qty,
            'remarks': self.remarks,
            'submitted_by': self.submitter.full_name if self.submitter else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
