import unittest
from portal import db
from portal.models import Factory, Stage, User
from tests.base import OWNER_EMAIL, PASSWORD, PortalTestCase


class RegisterTests(PortalTestCase):

    def test_register_creates_factory_on_trial(self):
        client = self.app.test_client()
        response = client.post('/auth/register', json={
            'factory_name': 'Blue Thread Ltd',
            'full_name': 'Rafi Owner',
            'email': 'Rafi@BlueThread.test',
            'password': 'longenough',
        })
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertIs(data['is_admin'], True)
        self.assertEqual(data['factory']['slug'], 'blue-thread-ltd')
        self.assertEqual(data['factory']['subscription_status'], 'trialing')
        self.assertIs(data['factory']['has_active_access'], True)
        self.assertEqual(data['user']['email'], 'rafi@bluethread.test')

        # registration signs the owner in
        self.assertEqual(client.get('/auth/me').status_code, 200)

        duplicate = self.app.test_client().post('/auth/register', json={
            'factory_name': 'Other', 'full_name': 'X', 'email': 'rafi@bluethread.test', 'password': 'longenough'})
        self.assertEqual(duplicate.status_code, 400)

    def test_register_validates_fields(self):
        response = self.app.test_client().post('/auth/register', json={'factory_name': 'F', 'password': 'short'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.get_json()['errors']), {'full_name', 'email', 'password'})


class SessionTests(PortalTestCase):

    def test_login_rejects_bad_password(self):
        response = self.app.test_client().post('/auth/login', json={'email': OWNER_EMAIL, 'password': 'wrong'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['error'], 'Invalid email or password')

    def test_me_requires_login(self):
        response = self.app.test_client().get('/auth/me')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['error'], 'Authentication required')

    def test_logout(self):
        self.assertEqual(self.owner.post('/auth/logout').status_code, 200)
        self.assertEqual(self.owner.get('/auth/me').status_code, 401)

    def test_csrf_token(self):
        self.assertTrue(self.app.test_client().get('/auth/csrf-token').get_json()['csrf_token'])

    def test_profile_password_change(self):
        wrong = self.owner.patch('/auth/profile', json={'current_password': 'nope', 'new_password': 'another-pass'})
        self.assertEqual(wrong.status_code, 403)

        response = self.owner.patch('/auth/profile', json={'full_name': 'Olivia O.', 'current_password': PASSWORD,
                                                           'new_password': 'another-pass'})
        self.assertEqual(response.get_json()['full_name'], 'Olivia O.')
        self.login(OWNER_EMAIL, 'another-pass')


class CommandTests(PortalTestCase):

    def test_create_factory_command(self):
        runner = self.app.test_cli_runner()
        args = ['create-factory', '--name', 'Cli Knits', '--owner-email', 'cli@knits.test',
                '--owner-name', 'Cli Owner', '--password', PASSWORD]
        result = runner.invoke(args=args + ['--tier', 'growth'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Created factory Cli Knits (cli-knits)', result.output)

        with self.app.app_context():
            factory = Factory.query.filter_by(slug='cli-knits').one()
            self.assertEqual(factory.max_lines, 60)
            self.assertEqual(Stage.query.filter_by(factory_id=factory.id).count(), 11)
            self.assertEqual(User.query.filter_by(email='cli@knits.test').one().factory_id, factory.id)
            db.session.remove()

        again = runner.invoke(args=args)
        self.assertNotEqual(again.exit_code, 0)


if __name__ == '__main__':
    unittest.main()
