"""
Unit tests for editing recorded sales.
"""

import pytest
from decimal import Decimal

from pos_client.exceptions import (
    BackendError, BackendRejectedError, BusinessLogicError, NotFoundError, ValidationError
)
from pos_client.models import EditableUnit, ReconciliationStatus, SaleItem
from pos_client.services import reconciliation_service as rs
from tests.conftest import make_product


@pytest.fixture
def editing(state, sale):
    state.transactions = [sale]
    return rs.begin_edit(state, sale.id)


def _grow_to_500(rec):
    """250 sale + C (200) + B (50) = 500 against 400 cash."""
    rs.append_unit(rec, make_product(3, 'Product C', 200, 120))
    rs.append_unit(rec, make_product(2, 'Product B', 50, 20))


class TestFlattenAndGroup:
    """Tests for the per-unit transform and its inverse."""

    def test_flatten_one_unit_per_quantity(self, sale):
        units = rs.flatten_sale_items(sale.items)

        assert [u.product_id for u in units] == [1, 1, 2]
        assert [u.origin_index for u in units] == [0, 0, 1]
        assert all(u.quantity == 1 for u in units)

    def test_group_of_flatten_equals_group(self, sale):
        assert rs.group_units(rs.flatten_sale_items(sale.items)) == rs.group_units(sale.items)

    def test_group_merges_repeated_lines(self):
        items = [
            SaleItem(product_id=1, quantity=1, price=Decimal('100')),
            SaleItem(product_id=2, quantity=2, price=Decimal('50')),
            SaleItem(product_id=1, quantity=3, price=Decimal('100')),
        ]
        grouped = rs.group_units(items)

        assert [(g['product_id'], g['quantity']) for g in grouped] == [(1, 4), (2, 2)]
        assert rs.group_units(rs.flatten_sale_items(items)) == grouped

    def test_flatten_skips_zero_quantity(self):
        items = [SaleItem(product_id=1, quantity=0, price=Decimal('10'))]
        assert rs.flatten_sale_items(items) == []
        assert rs.group_units(items) == []

    def test_substituted_units_regroup(self, editing):
        rs.substitute_unit(editing, 1, make_product(3, 'Product C', 200, 120))
        grouped = rs.group_units(editing.units)

        assert [(g['product_id'], g['quantity']) for g in grouped] == [(1, 1), (3, 1), (2, 1)]
        assert grouped[1]['price'] == Decimal('200')


class TestEstimateTotal:
    """Tests for the local total estimate."""

    def test_plain(self, sale):
        assert rs.estimate_total(rs.group_units(sale.items)) == Decimal('250')

    def test_item_and_global_discounts(self):
        grouped = [
            {'product_id': 1, 'quantity': 2, 'price': Decimal('100'), 'discount': Decimal('10')},
            {'product_id': 2, 'quantity': 1, 'price': Decimal('50'), 'discount': Decimal('0')},
        ]
        # 250 - 20 item discount - 25 global
        assert rs.estimate_total(grouped, Decimal('10')) == Decimal('205')


class TestExtractBalanceDue:
    """Tests for translating update responses into an amount owed."""

    def test_explicit_balance(self):
        assert rs.extract_balance_due({'balance_due': 100, 'requires_additional_payment': True}) == Decimal('100')

    def test_inferred_from_totals(self):
        assert rs.extract_balance_due({'total_amount': '500', 'cash_tendered': '400'}) == Decimal('100')

    def test_fully_paid(self):
        assert rs.extract_balance_due({'total_amount': 300, 'cash_tendered': 400, 'change_due': 100}) is None
        assert rs.extract_balance_due({}) is None
        assert rs.extract_balance_due(None) is None

    def test_explicit_no_payment_wins(self):
        data = {'requires_additional_payment': False, 'total_amount': 500, 'cash_tendered': 400}
        assert rs.extract_balance_due(data) is None

    def test_message_fallback(self):
        message = 'Cash tendered (400.00) is less than the new total (500.00).'
        assert rs.extract_balance_due(None, message, Decimal('500'), Decimal('400')) == Decimal('100')

    def test_unrelated_message(self):
        assert rs.extract_balance_due(None, 'Insufficient stock', Decimal('500'), Decimal('400')) is None


class TestEditing:
    """Tests for begin/cancel and unit edits."""

    def test_begin_edit(self, state, sale):
        state.transactions = [sale]
        rec = rs.begin_edit(state, sale.id)

        assert state.reconciliation is rec
        assert rec.status == ReconciliationStatus.EDITING
        assert len(rec.units) == 3

    def test_begin_edit_unknown_transaction(self, state):
        with pytest.raises(NotFoundError):
            rs.begin_edit(state, 404)

    def test_remove_and_append(self, editing):
        rs.remove_unit(editing, 2)
        unit = rs.append_unit(editing, make_product(3, 'Product C', 200, 120))

        assert isinstance(unit, EditableUnit)
        assert unit.origin_index is None
        assert [u.product_id for u in editing.units] == [1, 1, 3]

    def test_unknown_unit(self, editing):
        with pytest.raises(NotFoundError):
            rs.remove_unit(editing, 9)

    def test_cancel(self, state, editing):
        rs.cancel_edit(state)
        assert state.reconciliation is None
        with pytest.raises(NotFoundError):
            rs.get_active(state)

    def test_empty_edit_cannot_be_saved(self, editing, backend):
        for _ in range(3):
            rs.remove_unit(editing, 0)
        with pytest.raises(ValidationError):
            rs.save_edit(editing, backend, 7)
        assert backend.update_requests == []


class TestSaveEdit:
    """Tests for the save / additional payment state machine."""

    def test_save_without_balance(self, editing, backend):
        rs.remove_unit(editing, 2)
        rs.save_edit(editing, backend, 7)

        request = backend.update_requests[0]
        assert request['transaction_id'] == 77
        assert request['items'] == [{'product_id': 1, 'quantity': 2, 'price': 100.0, 'discount': 0.0}]
        assert request['cash_tendered'] == 400.0
        assert request['user_id'] == 7
        assert 'additional_payment' not in request
        assert editing.status == ReconciliationStatus.SUCCESS
        assert editing.change_due == Decimal('200.00')

    def test_save_requires_additional_payment(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)

        assert editing.status == ReconciliationStatus.ADDITIONAL_PAYMENT_REQUIRED
        assert editing.balance_due == Decimal('100.00')

    def test_payment_below_balance_rejected(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)

        with pytest.raises(ValidationError):
            rs.submit_additional_payment(editing, backend, '99.99')

        assert editing.status == ReconciliationStatus.EDITING_PAYMENT
        assert len(backend.update_requests) == 1

    def test_exact_payment_succeeds_with_zero_change(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)

        rs.submit_additional_payment(editing, backend, '100')

        resent = backend.update_requests[1]
        assert resent['additional_payment'] == 100.0
        assert {k: v for k, v in resent.items() if k != 'additional_payment'} == backend.update_requests[0]
        assert editing.status == ReconciliationStatus.SUCCESS
        assert editing.change_due == Decimal('0.00')
        assert editing.balance_due is None

    def test_change_falls_back_to_overpayment(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)
        backend.update_responses.append({'receipt_id': 77})

        rs.submit_additional_payment(editing, backend, '120')

        assert editing.change_due == Decimal('20.00')

    def test_message_only_rejection_triggers_payment(self, editing, backend):
        _grow_to_500(editing)
        backend.update_responses.append(
            BackendRejectedError('Cash tendered is less than the total amount.', http_status=400)
        )

        rs.save_edit(editing, backend, 7)

        assert editing.status == ReconciliationStatus.ADDITIONAL_PAYMENT_REQUIRED
        assert editing.balance_due == Decimal('100.00')

    def test_other_rejection_returns_to_editing(self, editing, backend):
        backend.update_responses.append(BackendRejectedError('Insufficient stock for Product A'))

        with pytest.raises(BackendRejectedError):
            rs.save_edit(editing, backend, 7)

        assert editing.status == ReconciliationStatus.EDITING
        assert editing.error == 'Insufficient stock for Product A'
        assert len(editing.units) == 3

    def test_network_failure_during_payment_returns_to_editing(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)
        backend.offline = True

        with pytest.raises(BackendError):
            rs.submit_additional_payment(editing, backend, '100')

        assert editing.status == ReconciliationStatus.EDITING
        assert editing.error

    def test_units_locked_while_payment_pending(self, editing, backend):
        _grow_to_500(editing)
        rs.save_edit(editing, backend, 7)

        with pytest.raises(BusinessLogicError):
            rs.remove_unit(editing, 0)

    def test_payment_requires_pending_balance(self, editing, backend):
        with pytest.raises(BusinessLogicError):
            rs.submit_additional_payment(editing, backend, '100')
