"""
Reconciliation Service - editing previously recorded sales.

Flow of one attempt:
    EDITING -> SAVING -> SUCCESS
                      -> ADDITIONAL_PAYMENT_REQUIRED -> EDITING_PAYMENT
                         -> SAVING (with payment) -> SUCCESS
    Any backend failure returns the attempt to EDITING with an error message.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pos_client.exceptions import (
    BackendError, BackendRejectedError, BusinessLogicError, NotFoundError, ValidationError
)
from pos_client.models import (
    CheckoutSession, EditableUnit, Product, Reconciliation, ReconciliationStatus, Sale
)
from pos_client.utils.number_format import money, money_float, parse_amount, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


def flatten_sale_items(items: Iterable[Any]) -> List[EditableUnit]:
    """One EditableUnit per unit of quantity, tagged with its source line index."""
    units = []
    for index, item in enumerate(items):
        for _ in range(max(int(item.quantity), 0)):
            units.append(EditableUnit(
                product_id=item.product_id,
                price=item.price,
                cost_price=getattr(item, 'cost_price', Decimal('0')),
                discount=getattr(item, 'discount', Decimal('0')),
                name=getattr(item, 'name', ''),
                origin_index=index
            ))
    return units


def group_units(units: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Re-aggregate lines or units per product id (first-seen order).

    Price and discount come from the first entry seen for each product.
    Works on SaleItems as well as EditableUnits, so
    group_units(flatten_sale_items(x)) == group_units(x).
    """
    grouped: Dict[int, Dict[str, Any]] = {}
    for unit in units:
        if unit.quantity <= 0:
            continue
        entry = grouped.get(unit.product_id)
        if entry:
            entry['quantity'] += unit.quantity
        else:
            grouped[unit.product_id] = {
                'product_id': unit.product_id,
                'quantity': unit.quantity,
                'price': unit.price,
                'discount': getattr(unit, 'discount', Decimal('0'))
            }
    return list(grouped.values())


def estimate_total(grouped: List[Dict[str, Any]], global_discount: Decimal = Decimal('0')) -> Decimal:
    """Total the backend will compute for grouped items (item then global percent discounts)."""
    subtotal = Decimal('0')
    item_discounts = Decimal('0')
    for entry in grouped:
        line = to_decimal(entry['price']) * entry['quantity']
        subtotal += line
        item_discounts += line * to_decimal(entry.get('discount')) / HUNDRED
    return subtotal - item_discounts - subtotal * to_decimal(global_discount) / HUNDRED


def _mentions_insufficient_cash(message: Optional[str]) -> bool:
    text = (message or '').lower()
    return 'cash tendered' in text and 'less than' in text


def extract_balance_due(
    data: Optional[Dict[str, Any]],
    message: Optional[str] = None,
    expected_total: Optional[Decimal] = None,
    cash_tendered: Optional[Decimal] = None
) -> Optional[Decimal]:
    """
    Translate an update response into the amount still owed, if any.

    Checked in order: an explicit `balance_due`; `total_amount - cash_tendered`
    when positive; and, only when the backend gave no structured answer, an
    error message saying cash tendered is less than the total (the balance is
    then estimated from the edited items).
    """
    if isinstance(data, dict):
        if data.get('requires_additional_payment') is False:
            return None
        balance = to_decimal(data.get('balance_due'))
        if balance > 0:
            return balance
        if data.get('total_amount') is not None and data.get('cash_tendered') is not None:
            inferred = to_decimal(data['total_amount']) - to_decimal(data['cash_tendered'])
            if inferred > 0:
                return inferred

    if _mentions_insufficient_cash(message) and expected_total is not None and cash_tendered is not None:
        inferred = expected_total - cash_tendered
        if inferred > 0:
            return inferred
    return None


def fetch_transactions(state: CheckoutSession, client, user_id: int) -> List[Sale]:
    """Load the cashier's sales and keep them on the session for editing."""
    sales = client.get_transactions(user_id)
    state.transactions = sales
    return sales


def begin_edit(state: CheckoutSession, transaction_id: int) -> Reconciliation:
    sale = next((s for s in state.transactions if s.id == transaction_id), None)
    if sale is None:
        raise NotFoundError(f'Transaction {transaction_id} not found.')
    rec = Reconciliation(sale=sale, units=flatten_sale_items(sale.items))
    state.reconciliation = rec
    logger.info(f"[RECONCILE] {state.session_id}: editing transaction {sale.id} ({len(rec.units)} units)")
    return rec


def cancel_edit(state: CheckoutSession) -> None:
    state.reconciliation = None


def get_active(state: CheckoutSession) -> Reconciliation:
    if state.reconciliation is None:
        raise NotFoundError('No transaction is being edited.')
    return state.reconciliation


def _require_status(rec: Reconciliation, *allowed: ReconciliationStatus) -> None:
    if rec.status not in allowed:
        raise BusinessLogicError(f'Action not allowed while {rec.status.value.lower()}.', status_code=409)


def _unit_at(rec: Reconciliation, index: int) -> EditableUnit:
    if index < 0 or index >= len(rec.units):
        raise NotFoundError(f'Unit {index} not found.')
    return rec.units[index]


def substitute_unit(rec: Reconciliation, index: int, product: Product) -> EditableUnit:
    """Swap the product of one unit; it takes the new product's price."""
    _require_status(rec, ReconciliationStatus.EDITING)
    unit = _unit_at(rec, index)
    unit.product_id = product.id
    unit.name = product.name
    unit.price = product.price
    unit.cost_price = product.cost_price
    unit.discount = Decimal('0')
    return unit


def remove_unit(rec: Reconciliation, index: int) -> EditableUnit:
    _require_status(rec, ReconciliationStatus.EDITING)
    _unit_at(rec, index)
    return rec.units.pop(index)


def append_unit(rec: Reconciliation, product: Product) -> EditableUnit:
    _require_status(rec, ReconciliationStatus.EDITING)
    unit = EditableUnit(
        product_id=product.id,
        price=product.price,
        cost_price=product.cost_price,
        name=product.name
    )
    rec.units.append(unit)
    return unit


def build_update_payload(rec: Reconciliation, user_id: int) -> Dict[str, Any]:
    grouped = group_units(rec.units)
    if not grouped:
        raise ValidationError('A transaction needs at least one item.')
    return {
        'transaction_id': rec.sale.id,
        'items': [
            {
                'product_id': entry['product_id'],
                'quantity': entry['quantity'],
                'price': money_float(entry['price']),
                'discount': float(to_decimal(entry['discount']))
            }
            for entry in grouped
        ],
        'global_discount': float(rec.sale.global_discount),
        'cash_tendered': money_float(rec.sale.cash_tendered),
        'user_id': user_id
    }


def _fail(rec: Reconciliation, message: str) -> None:
    rec.status = ReconciliationStatus.EDITING
    rec.error = message


def _succeed(rec: Reconciliation, data: Dict[str, Any]) -> None:
    rec.status = ReconciliationStatus.SUCCESS
    rec.error = ''
    rec.result = data
    rec.balance_due = None
    rec.change_due = money(data['change_due']) if data.get('change_due') is not None else None


def save_edit(rec: Reconciliation, client, user_id: int) -> Reconciliation:
    """
    Submit the edited units.

    Ends in SUCCESS, in ADDITIONAL_PAYMENT_REQUIRED (with `balance_due`),
    or back in EDITING with `error` set and the exception re-raised.
    """
    _require_status(rec, ReconciliationStatus.EDITING)
    payload = build_update_payload(rec, user_id)
    expected_total = estimate_total(group_units(rec.units), rec.sale.global_discount)

    rec.status = ReconciliationStatus.SAVING
    rec.request = payload
    rec.additional_payment = None
    try:
        data = client.update_transaction(payload)
    except BackendRejectedError as e:
        balance = extract_balance_due(e.data, e.message, expected_total, rec.sale.cash_tendered)
        if balance is None:
            _fail(rec, e.message)
            raise
        data = e.data if isinstance(e.data, dict) else {}
    except BackendError as e:
        _fail(rec, e.message)
        raise
    else:
        balance = extract_balance_due(data)

    if balance is not None:
        rec.status = ReconciliationStatus.ADDITIONAL_PAYMENT_REQUIRED
        rec.balance_due = money(balance)
        rec.error = ''
        logger.info(f"[RECONCILE] Transaction {rec.sale.id}: additional payment of {rec.balance_due} required")
        return rec

    _succeed(rec, data)
    logger.info(f"[RECONCILE] Transaction {rec.sale.id} updated")
    return rec


def submit_additional_payment(rec: Reconciliation, client, raw_amount: Any) -> Reconciliation:
    """
    Resend the last update request with the extra cash collected.

    Raises:
        ValidationError: amount missing or below the balance due (stays in
            EDITING_PAYMENT)
    """
    _require_status(
        rec,
        ReconciliationStatus.ADDITIONAL_PAYMENT_REQUIRED,
        ReconciliationStatus.EDITING_PAYMENT
    )
    rec.status = ReconciliationStatus.EDITING_PAYMENT

    amount = parse_amount(raw_amount)
    if amount is None or amount < rec.balance_due:
        rec.error = f'Additional payment must be at least {rec.balance_due}.'
        raise ValidationError(rec.error, payload={'balance_due': money_float(rec.balance_due)})

    payload = dict(rec.request, additional_payment=money_float(amount))
    rec.status = ReconciliationStatus.SAVING
    rec.additional_payment = amount
    try:
        data = client.update_transaction(payload)
    except (BackendError, BackendRejectedError) as e:
        _fail(rec, e.message)
        raise

    balance = rec.balance_due
    _succeed(rec, data)
    if rec.change_due is None:
        rec.change_due = money(amount - balance)
    logger.info(f"[RECONCILE] Transaction {rec.sale.id} settled, change due {rec.change_due}")
    return rec
