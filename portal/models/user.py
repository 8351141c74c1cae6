from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from portal import db, login_manager

ROLES = ('worker', 'admin', 'owner', 'superadmin', 'storage', 'cutting')
ADMIN_ROLES = ('admin', 'owner', 'superadmin')

ROLE_LABELS = {
    'worker': 'Manager',
    'admin': 'Admin',
    'owner': 'Owner',
    'superadmin': 'Super Admin',
    'storage': 'Storage',
    'cutting': 'Cutting',
}

DEPARTMENTS = ('sewing', 'finishing')


class User(UserMixin, db.Model):
    """Portal user profile with login credentials"""
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(40))
    avatar_url = db.Column(db.String(500))
    department = db.Column(db.String(20))  # sewing, finishing (workers only)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), index=True)
    assigned_unit_id = db.Column(db.Integer, db.ForeignKey('units.id'))
    assigned_floor_id = db.Column(db.Integer, db.ForeignKey('floors.id'))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    # Relationships
    roles = db.relationship('UserRole', backref='user', lazy='dynamic', cascade='all, delete-orphan')
    line_assignments = db.relationship('UserLineAssignment', backref='user', lazy='dynamic',
                                       cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email}>'

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify password"""
        return check_password_hash(self.password_hash, password)

    @property
    def role_names(self):
        return sorted({r.role for r in self.roles})

    def has_role(self, role):
        return role in self.role_names

    def is_admin_or_higher(self):
        """Admin, owner or superadmin"""
        return any(role in ADMIN_ROLES for role in self.role_names)

    def is_storage_user(self):
        return self.has_role('storage')

    def is_cutting_user(self):
        return self.has_role('cutting')

    @property
    def assigned_line_ids(self):
        return [a.line_id for a in self.line_assignments]

    def can_submit_for_line(self, line_id):
        """Workers with line assignments may only submit for those lines"""
        if self.is_admin_or_higher():
            return True
        assigned = self.assigned_line_ids
        return not assigned or line_id in assigned

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'department': self.department,
            'factory_id': self.factory_id,
            'is_active': self.is_active,
            'roles': self.role_names,
            'line_ids': self.assigned_line_ids,
            'last_login': self.last_login.isoformat() if self.last_login else None,
        }


class UserRole(db.Model):
    """Role granted to a user within a factory"""
    __tablename__ = 'user_roles'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'factory_id', 'role', name='uq_user_role'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'))
    role = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<UserRole {self.user_id}:{self.role}>'


class UserLineAssignment(db.Model):
    """Lines a worker is allowed to submit for"""
    __tablename__ = 'user_line_assignments'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'line_id', name='uq_user_line'),
    )

    id = db.Column(db.Integer, primary_key=True)
    factory_id = db.Column(db.Integer, db.ForeignKey('factory_accounts.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    line_id = db.Column(db.Integer, db.ForeignKey('lines.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID for Flask-Login"""
    return db.session.get(User, int(user_id))
