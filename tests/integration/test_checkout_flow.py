"""
End-to-end tests for the checkout routes.
"""

from pos_client.exceptions import BackendRejectedError


def _post(client, url, headers=None, **json):
    return client.post(url, json=json, headers=headers or {})


class TestPurchaseScenario:
    """Product A (price 100, cost 60, stock 5) x2, cash 150 then 250."""

    def test_full_purchase(self, client, backend, cashier_headers):
        response = client.get('/checkout/products?q=product')
        assert response.status_code == 200
        assert {p['id'] for p in response.get_json()['products']} == {1, 2, 3}

        response = _post(client, '/checkout/cart/add', product_id=1, quantity=2)
        body = response.get_json()
        assert response.status_code == 200
        assert body['cart']['totals']['subtotal'] == 200.0
        assert body['cart']['totals']['total_profit'] == 80.0
        assert body['feedback'] == [{'kind': 'ack', 'message': 'Product A added to cart'}]

        totals = _post(client, '/checkout/cash', value='150').get_json()['cart']['totals']
        assert totals['change'] == -50.0
        assert totals['insufficient'] is True

        response = _post(client, '/checkout/complete', headers=cashier_headers)
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Cash tendered is less than the total amount.'
        assert backend.purchases == []

        totals = _post(client, '/checkout/cash', value='250').get_json()['cart']['totals']
        assert totals['change'] == 50.0

        response = _post(client, '/checkout/complete', headers=cashier_headers)
        body = response.get_json()
        assert response.status_code == 200
        assert body['receipt']['total'] == 200.0
        assert body['receipt']['change'] == 50.0
        assert body['cart']['lines'] == []
        assert {'kind': 'ack', 'message': 'Purchase complete'} in body['feedback']
        assert backend.purchases == [{
            'items': [{'product_id': 1, 'quantity': 2, 'price': 100.0, 'cost_price': 60.0}],
            'cash_tendered': 250.0,
            'total_amount': 200.0,
            'user_id': 7
        }]


class TestCompleteValidation:
    """Tests for purchase validation and failure handling."""

    def test_requires_user(self, client):
        response = client.post('/checkout/complete')
        assert response.status_code == 401

    def test_empty_cart(self, client, cashier_headers):
        response = _post(client, '/checkout/complete', headers=cashier_headers)
        assert response.status_code == 400
        assert 'add items' in response.get_json()['message']

    def test_missing_cash(self, client, cashier_headers):
        _post(client, '/checkout/cart/add', product_id=2)
        response = _post(client, '/checkout/complete', headers=cashier_headers)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Enter cash amount'
        assert client.get('/checkout/cart').get_json()['cart']['cash_error'] == 'Enter cash amount'

    def test_backend_rejection_keeps_cart(self, client, backend, cashier_headers):
        _post(client, '/checkout/cart/add', product_id=2)
        _post(client, '/checkout/cash', value='100')
        backend.purchase_error = BackendRejectedError('Insufficient stock for Product B')

        response = _post(client, '/checkout/complete', headers=cashier_headers)

        assert response.status_code == 422
        assert response.get_json()['message'] == 'Insufficient stock for Product B'
        assert len(client.get('/checkout/cart').get_json()['cart']['lines']) == 1

    def test_backend_offline_keeps_cart(self, client, backend, cashier_headers):
        _post(client, '/checkout/cart/add', product_id=2)
        _post(client, '/checkout/cash', value='100')
        backend.offline = True

        response = _post(client, '/checkout/complete', headers=cashier_headers)

        assert response.status_code == 502
        assert 'Failed to connect' in response.get_json()['message']
        backend.offline = False
        assert len(client.get('/checkout/cart').get_json()['cart']['lines']) == 1


class TestCartRoutes:
    """Tests for cart editing routes."""

    def test_out_of_stock_add(self, client):
        response = _post(client, '/checkout/cart/add', product_id=4)
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Sold Out Cap is currently out of stock.'

    def test_select_pick_and_add(self, client):
        client.get('/checkout/products?q=')
        _post(client, '/checkout/products/3/select')
        _post(client, '/checkout/pick-qty', quantity=3)

        body = _post(client, '/checkout/cart/add').get_json()

        assert body['cart']['lines'][0]['quantity'] == 3
        assert body['cart']['pick_qty'] == 1
        assert body['cart']['selected_product'] is None

    def test_item_total_override_and_reset(self, client):
        line_id = _post(client, '/checkout/cart/add', product_id=1, quantity=2).get_json()['line']['line_id']

        body = _post(client, f'/checkout/cart/{line_id}/item-total', value='180').get_json()
        assert body['cart']['lines'][0]['sell_price'] == 90.0
        assert body['cart']['totals']['subtotal'] == 180.0

        body = _post(client, f'/checkout/cart/{line_id}/item-total', value='').get_json()
        assert body['cart']['lines'][0]['sell_price'] == 100.0
        assert body['cart']['lines'][0]['item_total'] is None

    def test_total_override_route(self, client):
        _post(client, '/checkout/cart/add', product_id=1)
        totals = _post(client, '/checkout/total-override', value='130').get_json()['cart']['totals']

        assert totals['displayed_total'] == 130.0
        assert totals['total_profit'] == 70.0

    def test_remove_unknown_line(self, client):
        response = _post(client, '/checkout/cart/99/remove')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_clear(self, client):
        _post(client, '/checkout/cart/add', product_id=1)
        body = _post(client, '/checkout/cart/clear').get_json()
        assert body['cart']['lines'] == []

    def test_discard_session(self, client):
        _post(client, '/checkout/cart/add', product_id=1)
        assert client.delete('/checkout/session').status_code == 200
        assert client.get('/checkout/cart').get_json()['cart']['lines'] == []


class TestScanRoute:
    """Tests for the scan route."""

    def test_cart_qr_scanned_twice(self, client):
        first = _post(client, '/checkout/scan', data='{"1": 1, "3": 2}')
        assert first.status_code == 200
        assert first.get_json()['scan']['kind'] == 'cart'
        assert len(first.get_json()['cart']['lines']) == 2

        second = _post(client, '/checkout/scan', data='{"3": 2, "1": 1}')
        assert second.status_code == 409
        assert second.get_json()['message'] == 'This QR cart has already been added.'

    def test_single_item_not_found(self, client):
        response = _post(client, '/checkout/scan', data='NOPE')
        assert response.status_code == 404

    def test_empty_scan(self, client):
        assert _post(client, '/checkout/scan', data='').status_code == 400


class TestInventoryAndMetrics:
    """Tests for inventory and metrics routes."""

    def test_inventory_filter(self, client):
        body = client.get('/inventory?q=pants').get_json()
        assert {p['id'] for p in body['products']} == {2, 3}

    def test_inventory_summary(self, client):
        summary = client.get('/inventory/summary').get_json()['summary']
        assert summary['total_products'] == 4
        assert summary['total_stock_value'] == 2650.0
        assert summary['out_of_stock_count'] == 1

    def test_metrics(self, client):
        _post(client, '/checkout/scan', data='QR-A')
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'pos_scans_total' in response.data

    def test_cookieless_reads_do_not_create_sessions(self, app):
        store = app.extensions['checkout_sessions']
        for _ in range(50):
            response = app.test_client().get('/inventory/summary')
            assert response.status_code == 200
            assert response.get_json()['feedback'] == []

        assert len(store) == 0
