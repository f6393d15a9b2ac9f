"""
Unit tests for the totals calculator.
"""

from decimal import Decimal

from pos_client.models import SOURCE_MANUAL
from pos_client.services import cart_service
from pos_client.services.totals_service import calculate_totals
from tests.conftest import make_product


class TestCalculateTotals:
    """Tests for subtotal, profit, override and change."""

    def test_empty_cart(self, state):
        totals = calculate_totals(state)

        assert totals['total_quantity'] == 0
        assert totals['subtotal'] == Decimal('0')
        assert totals['change'] == Decimal('0')
        assert totals['insufficient'] is False

    def test_item_total_is_authoritative(self, state):
        product = make_product(1, 'Product A', 10, cost_price=5, stock=5)
        line = cart_service.add_item(state, product, product.id, SOURCE_MANUAL, 2)
        cart_service.update_item_total(state, line.line_id, '18')

        totals = calculate_totals(state)

        assert totals['subtotal'] == Decimal('18')
        assert totals['total_cost'] == Decimal('10')
        assert totals['total_profit'] == Decimal('8')

    def test_profit_from_sell_price(self, state):
        a = make_product(1, 'Product A', 100, cost_price=60, stock=5)
        b = make_product(2, 'Product B', 50, cost_price=20, stock=5)
        cart_service.add_item(state, a, a.id, SOURCE_MANUAL, 2)
        cart_service.add_item(state, b, b.id, SOURCE_MANUAL, 1)

        totals = calculate_totals(state)

        assert totals['total_quantity'] == 3
        assert totals['subtotal'] == Decimal('250')
        assert totals['total_profit'] == Decimal('110')

    def test_override_surplus_flows_to_profit(self, state):
        product = make_product(1, 'Product A', 100, cost_price=60, stock=5)
        cart_service.add_item(state, product, product.id, SOURCE_MANUAL, 2)
        base = calculate_totals(state)

        cart_service.set_total_override(state, '230')
        totals = calculate_totals(state)

        assert totals['override_active'] is True
        assert totals['displayed_total'] == Decimal('230')
        assert totals['subtotal'] == Decimal('200')
        assert totals['total_profit'] - base['total_profit'] == Decimal('30')

    def test_non_numeric_override_is_ignored(self, state):
        product = make_product(1, 'Product A', 100, stock=5)
        cart_service.add_item(state, product, product.id, SOURCE_MANUAL, 1)
        cart_service.set_total_override(state, 'abc')

        totals = calculate_totals(state)

        assert totals['override_active'] is False
        assert totals['displayed_total'] == Decimal('100')

    def test_negative_change_is_kept_and_flagged(self, state):
        product = make_product(1, 'Product A', 100, stock=5)
        cart_service.add_item(state, product, product.id, SOURCE_MANUAL, 2)
        cart_service.set_cash_tendered(state, '150')

        totals = calculate_totals(state)

        assert totals['change'] == Decimal('-50')
        assert totals['insufficient'] is True

    def test_change_against_override(self, state):
        product = make_product(1, 'Product A', 100, stock=5)
        cart_service.add_item(state, product, product.id, SOURCE_MANUAL, 2)
        cart_service.set_total_override(state, '180')
        cart_service.set_cash_tendered(state, '200')

        assert calculate_totals(state)['change'] == Decimal('20')
