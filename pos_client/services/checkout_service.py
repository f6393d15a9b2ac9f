"""
Checkout service: product search and purchase submission.

The backend is the real arbiter of stock and totals; everything here
validates locally first and leaves the cart untouched when the backend
call fails.
"""
import logging
from typing import Any, Dict, List, Optional

from pos_client.exceptions import BackendError, BackendRejectedError, NotFoundError, ValidationError
from pos_client.models import CheckoutSession, Product
from pos_client.services.cache_service import CacheService
from pos_client.services.cart_service import clear_cart
from pos_client.services.totals_service import calculate_totals
from pos_client.utils.number_format import money, money_float, parse_amount

logger = logging.getLogger(__name__)

PRODUCTS_CACHE_MODULE = 'products'
INVENTORY_CACHE_MODULE = 'inventory'


def search_products(
    state: CheckoutSession,
    client,
    term: str = '',
    cache: Optional[CacheService] = None,
    ttl: Optional[int] = None
) -> List[Product]:
    """
    Search products and keep the result set on the session.

    A late response for an older search still replaces the results; the
    last call to return wins.
    """
    term = (term or '').strip()[:100]

    if cache is not None:
        rows = cache.memoize(
            PRODUCTS_CACHE_MODULE,
            f'search:{term.lower()}',
            lambda: [product.to_dict() for product in client.search_products(term)],
            ttl
        )
        products = [Product.from_dict(row) for row in rows]
    else:
        products = client.search_products(term)

    state.product_results = products
    state.last_search_term = term
    return products


def resolve_product(state: CheckoutSession, client, product_id: int) -> Product:
    """Product from the last search results, else looked up on the backend."""
    for product in state.product_results:
        if product.id == product_id:
            return product
    try:
        return client.product_by_qr(str(product_id))
    except BackendRejectedError as e:
        raise NotFoundError(e.message or 'Product not found.')


def build_purchase_payload(state: CheckoutSession, user_id: int, totals: Dict[str, Any]) -> Dict[str, Any]:
    """Purchase request body, monetary values rounded to cents."""
    items = []
    for line in state.lines:
        if line.product_id is None:
            raise ValidationError('One or more cart items are missing a valid product ID. Cannot complete purchase.')
        items.append({
            'product_id': line.product_id,
            'quantity': line.quantity,
            'price': money_float(line.sell_price),
            'cost_price': money_float(line.cost_price)
        })
    return {
        'items': items,
        'cash_tendered': money_float(totals['cash_tendered']),
        'total_amount': money_float(totals['displayed_total']),
        'user_id': user_id
    }


def complete_purchase(
    state: CheckoutSession,
    client,
    user_id: int,
    cache: Optional[CacheService] = None
) -> Dict[str, Any]:
    """
    Validate and submit the current cart as a sale.

    Returns:
        Receipt dict: total, change, and the backend `data`

    Raises:
        ValidationError: empty cart, missing cash or cash below total
        BackendError / BackendRejectedError: submission failed; cart kept
    """
    if not state.lines:
        raise ValidationError('Please add items to the cart before completing.')

    cash = parse_amount(state.cash_tendered)
    if cash is None or cash <= 0:
        state.cash_error = 'Enter cash amount'
        raise ValidationError('Enter cash amount', payload={'field': 'cash_tendered'})

    totals = calculate_totals(state)
    if cash < totals['displayed_total']:
        raise ValidationError('Cash tendered is less than the total amount.', payload={'field': 'cash_tendered'})

    payload = build_purchase_payload(state, user_id, totals)
    try:
        data = client.complete_purchase(payload)
    except (BackendError, BackendRejectedError) as e:
        logger.error(f"[CHECKOUT] {state.session_id}: purchase failed: {e.message}")
        raise

    receipt = {
        'total': money(totals['displayed_total']),
        'change': money(totals['change']),
        'items': len(payload['items']),
        'data': data
    }
    logger.info(
        f"[CHECKOUT] {state.session_id}: purchase completed, "
        f"total={receipt['total']} change={receipt['change']}"
    )

    clear_cart(state)
    state.notify('ack', 'Purchase complete')

    # Stock changed server side; drop cached searches and reload the list
    if cache is not None:
        cache.invalidate_module(PRODUCTS_CACHE_MODULE)
        cache.invalidate_module(INVENTORY_CACHE_MODULE)
    try:
        search_products(state, client, state.last_search_term, cache)
    except (BackendError, BackendRejectedError) as e:
        logger.warning(f"[CHECKOUT] Product refresh after purchase failed: {e.message}")

    return receipt
