"""Cart ledger operations for the checkout session (in-memory, per terminal)."""
import logging
from typing import Any, Optional

from pos_client.exceptions import (
    InsufficientStockError, NotFoundError, OutOfStockError, ValidationError
)
from pos_client.models import (
    CartLine, CheckoutSession, Product, SOURCE_MANUAL, SOURCE_SCAN, DEFAULT_PICK_QTY
)
from pos_client.services.scan_tracker import clear_signatures, prune_signatures
from pos_client.utils.number_format import parse_amount, sanitize_amount, to_int

logger = logging.getLogger(__name__)


def find_matching_line(state: CheckoutSession, product: Product, match_key: Any) -> Optional[CartLine]:
    """
    Locate the cart line a new add should merge into.

    Tried in order, first hit wins:
    1. product id equals the match key
    2. the line's QR payload equals the match key
    3. same product name and unit price

    NOTE: rule 3 will merge two distinct products that share name and price.
    """
    key = str(match_key) if match_key is not None else str(product.id)

    for line in state.lines:
        if str(line.product.id) == key:
            return line
    for line in state.lines:
        if line.product.qr_code_data and line.product.qr_code_data == key:
            return line
    for line in state.lines:
        if line.product.name == product.name and line.product.price == product.price:
            return line
    return None


def _quantity_to_add(state: CheckoutSession, source: str, quantity_override: Optional[int]) -> int:
    if isinstance(quantity_override, int) and not isinstance(quantity_override, bool) and quantity_override > 0:
        return quantity_override
    if source == SOURCE_SCAN:
        return 1
    return state.pick_qty


def _rescale_item_total(line: CartLine, new_quantity: int) -> None:
    """Keep the overridden unit price when the quantity changes."""
    if line.item_total is not None:
        line.item_total = line.item_total * new_quantity / line.quantity
        line.sell_price = line.item_total / new_quantity
    line.quantity = new_quantity


def add_item(
    state: CheckoutSession,
    product: Product,
    match_key: Any = None,
    source: str = SOURCE_MANUAL,
    quantity_override: Optional[int] = None
) -> CartLine:
    """
    Add a product to the cart, merging into an existing line when one matches.

    Args:
        state: Checkout session
        product: Product snapshot (its stock is the soft limit)
        match_key: Product id, QR payload or None (defaults to product id)
        source: 'scan' adds 1 by default, 'manual' adds the pick quantity
        quantity_override: Explicit positive quantity

    Raises:
        OutOfStockError: snapshot stock is zero or less
        InsufficientStockError: the resulting line quantity would exceed stock
    """
    if product.stock <= 0:
        raise OutOfStockError(product.name)

    qty = _quantity_to_add(state, source, quantity_override)
    line = find_matching_line(state, product, match_key)

    if line:
        new_quantity = line.quantity + qty
        if new_quantity > product.stock:
            raise InsufficientStockError(product.name, qty, product.stock, in_cart=line.quantity)
        _rescale_item_total(line, new_quantity)
    else:
        if qty > product.stock:
            raise InsufficientStockError(product.name, qty, product.stock)
        snapshot = product.snapshot()
        line = CartLine(
            line_id=state.next_line_id,
            product=snapshot,
            match_key=str(match_key) if match_key is not None else str(product.id),
            quantity=qty,
            sell_price=snapshot.price
        )
        state.next_line_id += 1
        state.lines.append(line)

    logger.info(f"[CART] {state.session_id}: +{qty} {product.name} (line {line.line_id}, qty {line.quantity})")
    state.notify('ack', f'{product.name} added to cart')
    state.selected_product = None
    state.pick_qty = DEFAULT_PICK_QTY
    return line


def _get_line(state: CheckoutSession, line_id: int) -> CartLine:
    line = state.find_line(line_id)
    if not line:
        raise NotFoundError('The item is not in the cart.')
    return line


def remove_item(state: CheckoutSession, line_id: int) -> Optional[CartLine]:
    """
    Take one unit off a line, deleting the line at quantity 1.

    Returns the remaining line, or None when it was deleted.
    """
    line = _get_line(state, line_id)

    if line.quantity > 1:
        _rescale_item_total(line, line.quantity - 1)
        remaining = line
    else:
        state.lines.remove(line)
        remaining = None

    prune_signatures(state)
    logger.info(f"[CART] {state.session_id}: -1 {line.name} (line {line_id})")
    return remaining


def set_line_quantity(state: CheckoutSession, line_id: int, raw_quantity: Any) -> CartLine:
    """Set a line's quantity directly (>= 1, within the stock snapshot)."""
    line = _get_line(state, line_id)
    quantity = to_int(raw_quantity)
    if quantity < 1:
        raise ValidationError('Quantity must be at least 1.')
    if quantity > line.product.stock:
        raise InsufficientStockError(line.name, quantity, line.product.stock)
    _rescale_item_total(line, quantity)
    return line


def update_item_total(state: CheckoutSession, line_id: int, raw_text: Any) -> CartLine:
    """
    Override the total of a line; the unit price is derived from it.

    An input that is empty once sanitised clears the override and restores
    the product's original price.
    """
    line = _get_line(state, line_id)
    cleaned = sanitize_amount(raw_text)

    if cleaned == '':
        line.item_total = None
        line.sell_price = line.product.price
        return line

    value = parse_amount(cleaned)
    if value is None:
        raise ValidationError('Invalid item total.')
    line.item_total = value
    line.sell_price = value / line.quantity
    return line


def update_sell_price(state: CheckoutSession, line_id: int, raw_text: Any) -> CartLine:
    """Override the unit price of a line (drops any item total override)."""
    line = _get_line(state, line_id)
    cleaned = sanitize_amount(raw_text)

    if cleaned == '':
        line.sell_price = line.product.price
    else:
        value = parse_amount(cleaned)
        if value is None:
            raise ValidationError('Invalid price.')
        line.sell_price = value
    line.item_total = None
    return line


def select_product(state: CheckoutSession, product_id: int) -> Product:
    """Pick a product from the last search results for a manual add."""
    for product in state.product_results:
        if product.id == product_id:
            state.selected_product = product
            return product
    raise NotFoundError('Product not found in the current search results.')


def set_pick_quantity(state: CheckoutSession, raw_quantity: Any) -> int:
    quantity = to_int(raw_quantity)
    if quantity < 1:
        raise ValidationError('Quantity must be at least 1.')
    state.pick_qty = quantity
    return quantity


def add_selected(state: CheckoutSession) -> CartLine:
    if state.selected_product is None:
        raise ValidationError('Select a product first.')
    product = state.selected_product
    return add_item(state, product, product.id, SOURCE_MANUAL)


def set_cash_tendered(state: CheckoutSession, raw_text: Any) -> str:
    state.cash_tendered = sanitize_amount(raw_text)
    state.cash_error = ''
    return state.cash_tendered


def set_total_override(state: CheckoutSession, raw_text: Any) -> str:
    state.total_override = sanitize_amount(raw_text)
    return state.total_override


def clear_cart(state: CheckoutSession) -> None:
    """Empty the cart and everything derived from it, including scan signatures."""
    state.lines = []
    state.selected_product = None
    state.pick_qty = DEFAULT_PICK_QTY
    state.cash_tendered = ''
    state.total_override = ''
    state.cash_error = ''
    clear_signatures(state)
    logger.info(f"[CART] {state.session_id}: cart cleared")
