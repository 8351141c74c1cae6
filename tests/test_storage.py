import unittest
from datetime import timedelta
from tests.base import PortalTestCase, factory_today


class BinCardTests(PortalTestCase):

    def setUp(self):
        super().setUp()
        self.make_user('store@acme.test', role='storage', full_name='Sara Store')
        self.work_order_id = self.make_work_order('PO-4001', supplier_name='Fabrico', construction='Twill',
                                                  width='58"', package_qty='20 rolls')
        self.storage = self.login('store@acme.test')
        self.url = f'/storage/bin-cards/{self.work_order_id}'

    def open_card(self):
        return self.storage.post(self.url)

    def test_open_copies_header(self):
        response = self.open_card()
        self.assertEqual(response.status_code, 201)
        card = response.get_json()
        self.assertEqual(card['buyer'], 'Northwind')
        self.assertEqual(card['supplier_name'], 'Fabrico')
        self.assertEqual(card['description'], 'Polo Shirt')
        self.assertEqual(card['prepared_by'], 'Sara Store')
        self.assertFalse(card['is_header_locked'])

        # a second open loads the same card
        again = self.open_card()
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.get_json()['id'], card['id'])

    def test_header_locks_after_save(self):
        self.open_card()
        saved = self.storage.put(f'{self.url}/header', json={'color': 'Olive'}).get_json()
        self.assertTrue(saved['is_header_locked'])
        self.assertEqual(saved['color'], 'Olive')

        self.assertEqual(self.storage.put(f'{self.url}/header', json={'color': 'Red'}).status_code, 403)
        self.assertEqual(self.storage.post(f'{self.url}/unlock').status_code, 403)

        unlocked = self.owner.post(f'{self.url}/unlock').get_json()
        self.assertFalse(unlocked['is_header_locked'])
        self.assertEqual(self.storage.put(f'{self.url}/header', json={'color': 'Red'}).status_code, 200)

    def test_transactions_keep_running_balance(self):
        self.open_card()
        first = self.storage.post(f'{self.url}/transactions', json={'receive_qty': 500})
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.get_json()['transaction']['balance_qty'], 500)

        second = self.storage.post(f'{self.url}/transactions',
                                   json={'receive_qty': 100, 'issue_qty': 250, 'remarks': 'Line 4'}).get_json()
        self.assertEqual(second['transaction']['ttl_receive'], 600)
        self.assertEqual(second['transaction']['balance_qty'], 350)

        card = second['bin_card']
        self.assertEqual(card['total_received'], 600)
        self.assertEqual(card['total_issued'], 250)
        self.assertEqual(card['balance'], 350)
        self.assertEqual([t['balance_qty'] for t in card['transactions']], [500, 350])

    def test_transactions_are_dated_today(self):
        self.open_card()
        self.storage.post(f'{self.url}/transactions', json={'receive_qty': 100})
        backdated = (factory_today() - timedelta(days=5)).isoformat()
        response = self.storage.post(f'{self.url}/transactions',
                                     json={'issue_qty': 30, 'transaction_date': backdated})
        self.assertEqual(response.status_code, 201)

        card = response.get_json()['bin_card']
        self.assertEqual(card['balance'], 70)
        self.assertEqual([t['transaction_date'] for t in card['transactions']], [factory_today().isoformat()] * 2)
        self.assertEqual([t['balance_qty'] for t in card['transactions']], [100, 70])

    def test_rejects_empty_and_negative_transactions(self):
        self.open_card()
        url = f'{self.url}/transactions'
        self.storage.post(url, json={'receive_qty': 50})

        empty = self.storage.post(url, json={'receive_qty': 0, 'issue_qty': 0})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()['error'], 'Enter a receive or issue quantity.')

        negative = self.storage.post(url, json={'issue_qty': 80})
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(negative.get_json()['error'], 'Balance cannot go negative. Reduce issue quantity.')

        # admins may correct into the negative
        corrected = self.owner.post(url, json={'issue_qty': 80}).get_json()
        self.assertEqual(corrected['transaction']['balance_qty'], -30)

    def test_preview_and_low_stock(self):
        self.open_card()
        self.storage.post(f'{self.url}/transactions', json={'receive_qty': 30, 'issue_qty': 25})

        preview = self.storage.get(f'{self.url}/preview?receive_qty=10&issue_qty=20').get_json()
        self.assertEqual(preview, {'ttl_receive': 40, 'balance_qty': -5, 'would_go_negative': True})

        history = self.storage.get('/storage/history').get_json()
        self.assertEqual(len(history), 1)
        # default threshold is 10
        self.assertTrue(history[0]['low_stock'])

    def test_pdf_download(self):
        self.open_card()
        self.storage.post(f'{self.url}/transactions', json={'receive_qty': 40, 'remarks': '<b>'})
        response = self.storage.get(f'{self.url}/pdf')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, 'application/pdf')
        self.assertTrue(response.data.startswith(b'%PDF'))

    def test_barcode_svg(self):
        response = self.storage.get(f'{self.url}/barcode.svg')
        self.assertEqual(response.status_code, 200)
        self.assertIn(b'<svg', response.data)

    def test_workers_without_storage_role_are_refused(self):
        self.make_user('sew@acme.test', department='sewing')
        self.assertEqual(self.login('sew@acme.test').post(self.url).status_code, 403)


if __name__ == '__main__':
    unittest.main()
