"""
Shared test case for the portal.

Requests run without an outer app context so every request loads its own
current_user; builders open a short context of their own and return ids.
"""
import unittest
from datetime import datetime, timezone
from portal import create_app, db
from portal.cli import provision_factory
from portal.models import Factory, Line, Stage, User, UserLineAssignment, UserRole, WorkOrder

PASSWORD = 'password123'
OWNER_EMAIL = 'owner@acme.test'


def factory_today():
    # testing config runs factories on UTC
    return datetime.now(timezone.utc).date()


class PortalTestCase(unittest.TestCase):
    """Fresh database with one trialing factory whose edit window is open all day"""

    def setUp(self):
        self.app = create_app('testing')
        with self.app.app_context():
            factory, _ = provision_factory('Acme Garments', OWNER_EMAIL, 'Olivia Owner', PASSWORD)
            factory.cutoff_time = '00:00'
            db.session.commit()
            self.factory_id = factory.id
        self.owner = self.login(OWNER_EMAIL)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()

    def login(self, email, password=PASSWORD):
        client = self.app.test_client()
        response = client.post('/auth/login', json={'email': email, 'password': password})
        self.assertEqual(response.status_code, 200, response.get_json())
        return client

    def update_factory(self, **fields):
        with self.app.app_context():
            factory = db.session.get(Factory, self.factory_id)
            for field, value in fields.items():
                setattr(factory, field, value)
            db.session.commit()

    def load_factory(self):
        """Detached copy of the factory row as currently stored"""
        with self.app.app_context():
            factory = db.session.get(Factory, self.factory_id)
            db.session.expunge(factory)
            return factory

    def make_user(self, email, role='worker', department=None, line_ids=(), full_name=None):
        with self.app.app_context():
            user = User(email=email, full_name=full_name or email.split('@')[0].title(),
                        factory_id=self.factory_id, department=department)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.flush()
            db.session.add(UserRole(user_id=user.id, factory_id=self.factory_id, role=role))
            for line_id in line_ids:
                db.session.add(UserLineAssignment(user_id=user.id, line_id=line_id, factory_id=self.factory_id))
            db.session.commit()
            return user.id

    def make_line(self, line_id='L1', is_active=True):
        with self.app.app_context():
            line = Line(factory_id=self.factory_id, line_id=line_id, name=f'Line {line_id[1:]}',
                        is_active=is_active)
            db.session.add(line)
            db.session.commit()
            return line.id

    def make_work_order(self, po_number='PO-1001', order_qty=1000, **fields):
        fields.setdefault('buyer', 'Northwind')
        fields.setdefault('style', 'ST-42')
        fields.setdefault('item', 'Polo Shirt')
        fields.setdefault('color', 'Navy')
        with self.app.app_context():
            work_order = WorkOrder(factory_id=self.factory_id, po_number=po_number, order_qty=order_qty, **fields)
            db.session.add(work_order)
            db.session.commit()
            return work_order.id

    def add_row(self, model, **fields):
        """Insert a submission row directly, e.g. for an earlier production date"""
        fields.setdefault('factory_id', self.factory_id)
        with self.app.app_context():
            row = model(**fields)
            db.session.add(row)
            db.session.commit()
            return row.id

    def first_stage_id(self):
        with self.app.app_context():
            return Stage.query.filter_by(factory_id=self.factory_id).order_by(Stage.sequence).first().id

    def fetch(self, model, object_id):
        """Load a row by id and return its to_dict(), or None"""
        with self.app.app_context():
            obj = db.session.get(model, object_id)
            return obj.to_dict() if obj is not None else None
