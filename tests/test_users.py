import unittest
from tests.base import OWNER_EMAIL, PASSWORD, PortalTestCase


class InviteTests(PortalTestCase):

    def test_invite_new_user_can_log_in(self):
        line_id = self.make_line('L1')
        response = self.owner.post('/users/invite', json={
            'email': 'New.Worker@acme.test',
            'full_name': 'Nia Worker',
            'role': 'worker',
            'department': 'sewing',
            'temporaryPassword': 'temporary1',
            'lineIds': [line_id],
        })
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertIs(data['isExistingUser'], False)
        self.assertEqual(data['user']['email'], 'new.worker@acme.test')
        self.assertEqual(data['user']['roles'], ['worker'])
        self.assertEqual(data['user']['department'], 'sewing')
        self.assertEqual(data['user']['line_ids'], [line_id])

        me = self.login('new.worker@acme.test', 'temporary1').get('/auth/me').get_json()
        self.assertEqual(me['factory']['id'], self.factory_id)

    def test_invite_requires_fields(self):
        response = self.owner.post('/users/invite', json={'email': 'x@acme.test'})
        self.assertEqual(response.status_code, 400)
        data = response.get_json()
        self.assertEqual(data['error'], 'Missing required fields')
        self.assertEqual(set(data['errors']), {'full_name', 'role'})

    def test_reinvite_replaces_role(self):
        self.make_user('w@acme.test', department='sewing')
        response = self.owner.post('/users/invite', json={'email': 'w@acme.test', 'full_name': 'W', 'role': 'storage'})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertIs(data['isExistingUser'], True)
        self.assertEqual(data['user']['roles'], ['storage'])
        self.assertIsNone(data['user']['department'])

    def test_only_owner_grants_owner(self):
        self.make_user('admin@acme.test', role='admin')
        response = self.login('admin@acme.test').post('/users/invite', json={
            'email': 'boss@acme.test', 'full_name': 'Boss', 'role': 'owner'})
        self.assertEqual(response.status_code, 403)


class ManageUserTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.user_id = self.make_user('w@acme.test', department='sewing')

    def test_edit_user_lines_and_department(self):
        line_id = self.make_line('L3')
        response = self.owner.put(f'/users/{self.user_id}', json={'department': 'finishing', 'lineIds': [line_id]})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['department'], 'finishing')
        self.assertEqual(data['line_ids'], [line_id])

        bad = self.owner.put(f'/users/{self.user_id}', json={'department': 'shipping'})
        self.assertEqual(bad.status_code, 400)

    def test_cannot_remove_own_access(self):
        users = self.owner.get('/users').get_json()
        owner = next(u for u in users if u['email'] == OWNER_EMAIL)
        response = self.owner.post(f'/users/{owner["id"]}/remove-access')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()['error'], 'You cannot remove your own access')

    def test_admin_cannot_demote_owner(self):
        self.make_user('admin@acme.test', role='admin')
        admin = self.login('admin@acme.test')
        owner = next(u for u in self.owner.get('/users').get_json() if u['email'] == OWNER_EMAIL)

        edited = admin.put(f'/users/{owner["id"]}', json={'role': 'worker', 'department': 'sewing'})
        self.assertEqual(edited.status_code, 403)
        self.assertEqual(edited.get_json()['error'], 'Only the owner can change another owner')

        reinvited = admin.post('/users/invite', json={'email': OWNER_EMAIL, 'full_name': 'Owner', 'role': 'worker'})
        self.assertEqual(reinvited.status_code, 403)

        me = self.owner.get('/auth/me').get_json()
        self.assertIn('owner', me['user']['roles'])

    def test_remove_access_detaches_user(self):
        self.assertEqual(self.owner.post(f'/users/{self.user_id}/remove-access').status_code, 200)

        emails = [u['email'] for u in self.owner.get('/users').get_json()]
        self.assertNotIn('w@acme.test', emails)

        client = self.app.test_client()
        response = client.post('/auth/login', json={'email': 'w@acme.test', 'password': PASSWORD})
        self.assertEqual(response.status_code, 403)

    def test_reset_password(self):
        url = f'/users/{self.user_id}/reset-password'
        self.assertEqual(self.owner.post(url, json={'password': 'short'}).status_code, 400)
        self.assertEqual(self.owner.post(url, json={'password': 'brand-new-pass'}).status_code, 200)
        self.login('w@acme.test', 'brand-new-pass')

    def test_workers_cannot_manage_users(self):
        self.assertEqual(self.login('w@acme.test').get('/users').status_code, 403)


if __name__ == '__main__':
    unittest.main()
