import pytest
from decimal import Decimal

from pos_client import create_app
from pos_client.exceptions import BackendError, BackendRejectedError
from pos_client.models import CheckoutSession, Product, Sale, SaleItem


def make_product(id, name, price, cost_price=0, stock=10, category='Shirts', qr_code_data='', description=''):
    return Product(
        id=id,
        name=name,
        price=Decimal(str(price)),
        cost_price=Decimal(str(cost_price)),
        stock=stock,
        category=category,
        description=description,
        qr_code_data=qr_code_data
    )


class FakeBackend:
    """
    In-memory stand-in for BackendClient.

    update_transaction behaves like the PHP endpoint: when the edited total
    exceeds the cash collected it answers success with a balance due.
    """

    def __init__(self, products=None, transactions=None):
        self.products = {p.id: p for p in (products or [])}
        self.transactions = list(transactions or [])
        self.purchases = []
        self.update_requests = []
        self.lookups = []
        self.searches = []
        self.offline = False
        self.purchase_error = None
        self.update_responses = []

    def _check_online(self):
        if self.offline:
            raise BackendError()

    def search_products(self, term=''):
        self._check_online()
        self.searches.append(term)
        needle = (term or '').lower()
        return [
            p for p in self.products.values()
            if p.stock > 0 and (needle in p.name.lower() or needle in p.description.lower())
        ]

    def get_inventory(self):
        self._check_online()
        return list(self.products.values())

    def product_by_qr(self, qr_code):
        self._check_online()
        self.lookups.append(qr_code)
        for product in self.products.values():
            if str(product.id) == str(qr_code) or (product.qr_code_data and product.qr_code_data == qr_code):
                return product
        raise BackendRejectedError('Product not found.', http_status=404)

    def complete_purchase(self, payload):
        self._check_online()
        if self.purchase_error:
            raise self.purchase_error
        self.purchases.append(payload)
        return {'receipt_id': 1000 + len(self.purchases)}

    def get_transactions(self, user_id):
        self._check_online()
        return [sale for sale in self.transactions if sale.user_id in (None, user_id)]

    def update_transaction(self, payload):
        self._check_online()
        self.update_requests.append(payload)
        if self.update_responses:
            response = self.update_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        subtotal = sum(Decimal(str(i['price'])) * i['quantity'] for i in payload['items'])
        discount = sum(
            Decimal(str(i['price'])) * i['quantity'] * Decimal(str(i['discount'])) / 100
            for i in payload['items']
        )
        total = subtotal - discount - subtotal * Decimal(str(payload['global_discount'])) / 100
        cash = Decimal(str(payload['cash_tendered'])) + Decimal(str(payload.get('additional_payment', 0)))
        if total > cash:
            return {
                'receipt_id': payload['transaction_id'],
                'total_amount': float(total),
                'cash_tendered': float(cash),
                'balance_due': float(total - cash),
                'requires_additional_payment': True
            }
        return {
            'receipt_id': payload['transaction_id'],
            'total_amount': float(total),
            'cash_tendered': float(cash),
            'change_due': float(cash - total),
            'requires_additional_payment': False
        }


@pytest.fixture
def products():
    return [
        make_product(1, 'Product A', 100, 60, stock=5, qr_code_data='QR-A'),
        make_product(2, 'Product B', 50, 20, stock=3, category='Pants'),
        make_product(3, 'Product C', 200, 120, stock=10, category='Pants'),
        make_product(4, 'Sold Out Cap', 80, 40, stock=0, category='Hats'),
    ]


@pytest.fixture
def sale():
    """Recorded sale: 2 x A + 1 x B for 250, paid with 400."""
    return Sale(
        id=77,
        items=[
            SaleItem(product_id=1, quantity=2, price=Decimal('100'), cost_price=Decimal('60'), name='Product A'),
            SaleItem(product_id=2, quantity=1, price=Decimal('50'), cost_price=Decimal('20'), name='Product B'),
        ],
        cash_tendered=Decimal('400'),
        total_amount=Decimal('250'),
        user_id=7,
        timestamp='2026-10-01 10:15:00'
    )


@pytest.fixture
def backend(products, sale):
    return FakeBackend(products=products, transactions=[sale])


@pytest.fixture
def state():
    """Fresh checkout session."""
    return CheckoutSession(session_id='test-session')


@pytest.fixture
def app(backend):
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    app.extensions['backend_client'] = backend
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def cashier_headers():
    return {'X-User-Id': '7'}
