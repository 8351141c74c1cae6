from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from flask import current_app
from portal import db


class Factory(db.Model):
    """Tenant account - every other record is scoped to a factory"""
    __tablename__ = 'factory_accounts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    logo_url = db.Column(db.String(500))
    timezone = db.Column(db.String(64))

    # Submission windows (HH:MM, factory local time)
    cutoff_time = db.Column(db.String(5))  # edit window for today's submissions
    morning_target_cutoff = db.Column(db.String(5))
    evening_actual_cutoff = db.Column(db.String(5))

    # Storage
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    # Subscription
    subscription_tier = db.Column(db.String(30), default='starter')
    subscription_status = db.Column(db.String(30), default='trialing')  # trialing, active, past_due, canceled, expired
    max_lines = db.Column(db.Integer)
    trial_start_date = db.Column(db.DateTime)
    trial_end_date = db.Column(db.DateTime)
    stripe_customer_id = db.Column(db.String(100), index=True)
    stripe_subscription_id = db.Column(db.String(100))
    payment_failed_at = db.Column(db.DateTime)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = db.relationship('User', backref='factory', lazy='dynamic')
    lines = db.relationship('Line', backref='factory', lazy='dynamic')

    def __repr__(self):
        return f'<Factory {self.slug}>'

    @property
    def tz(self):
        """Factory timezone, falling back to the configured default"""
        name = self.timezone or current_app.config.get('DEFAULT_TIMEZONE', 'UTC')
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            return ZoneInfo('UTC')

    def local_now(self):
        """Current wall-clock time in the factory (naive)"""
        return datetime.now(self.tz).replace(tzinfo=None)

    def today(self):
        """Production date for submissions made now"""
        return self.local_now().date()

    @property
    def trial_active(self):
        return bool(
            self.subscription_status in ('trialing', 'trial') and
            self.trial_end_date and
            self.trial_end_date > datetime.utcnow()
        )

    @property
    def trial_days_remaining(self):
        if not self.trial_end_date:
            return None
        seconds = (self.trial_end_date - datetime.utcnow()).total_seconds()
        return max(0, -(-int(seconds) // 86400))

    @property
    def has_active_access(self):
        """Active subscription, or a trial that has not expired"""
        if not self.is_active:
            return False
        if self.subscription_status == 'active':
            return True
        return self.trial_active

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'timezone': self.timezone,
            'cutoff_time': self.cutoff_time,
            'morning_target_cutoff': self.morning_target_cutoff,
            'evening_actual_cutoff': self.evening_actual_cutoff,
            'low_stock_threshold': self.low_stock_threshold,
            'subscription_tier': self.subscription_tier,
            'subscription_status': self.subscription_status,
            'max_lines': self.max_lines,
            'trial_end_date': self.trial_end_date.isoformat() if self.trial_end_date else None,
            'has_active_access': self.has_active_access,
        }
