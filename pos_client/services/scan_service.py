"""
Scan handling for the checkout screen.

Two payload shapes are recognised, tried in this order:

1. Cart payload: a JSON object whose keys are all numeric product ids and
   whose values are quantities. It may arrive as plain JSON, as base64
   (standard or URL-safe alphabet), or base64 embedded in a URL under a
   `data=` query parameter.
2. Single item: anything else. A JSON object with an `id` (or, failing that,
   `qr_code_data`) is looked up by that value; otherwise the raw text is the
   lookup key.
"""
import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from pos_client.exceptions import (
    BackendRejectedError, BusinessLogicError, DuplicateScanError,
    NotFoundError, ScanInProgressError
)
from pos_client.models import CartLine, CheckoutSession, Product, SOURCE_SCAN
from pos_client.services.cart_service import add_item
from pos_client.services.scan_tracker import (
    is_signature_active, prune_signatures, record_signature
)
from pos_client.utils.number_format import to_int

logger = logging.getLogger(__name__)

KIND_CART = 'cart'
KIND_SINGLE = 'single'


@dataclass
class ScanResult:
    kind: str
    lines: List[CartLine] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    signature: Optional[str] = None


def _as_cart_map(obj: Any) -> Optional[Dict[str, Any]]:
    if isinstance(obj, dict) and obj and all(isinstance(k, str) and k.isdigit() for k in obj):
        return obj
    return None


def _data_param(text: str) -> Optional[str]:
    """Raw value of a `data=` query parameter, without '+' to space decoding."""
    query = ''
    try:
        query = urlsplit(text).query
    except ValueError:
        pass
    if not query and 'data=' in text:
        query = text.split('?', 1)[-1]
    for part in query.split('&'):
        if part.startswith('data='):
            return part[len('data='):] or None
    if 'data=' in text:
        return text.split('data=', 1)[1].split('&', 1)[0] or None
    return None


def _decode_base64_json(candidate: str) -> Any:
    normalized = candidate.strip().replace('-', '+').replace('_', '/')
    normalized += '=' * (-len(normalized) % 4)
    try:
        raw = base64.b64decode(normalized, validate=True)
        return json.loads(raw.decode('utf-8'))
    except (binascii.Error, ValueError):
        return None


def parse_cart_payload(text: str) -> Optional[Dict[str, Any]]:
    """Return the {productId: quantity} map carried by a scan, or None."""
    if not text:
        return None

    try:
        direct = _as_cart_map(json.loads(text))
    except ValueError:
        direct = None
    if direct is not None:
        return direct

    candidate = _data_param(text) or text
    candidate = unquote(candidate)
    return _as_cart_map(_decode_base64_json(candidate))


def _signature_number(value: Any):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number or number in (float('inf'), float('-inf')):
        return 0
    return int(number) if number.is_integer() else number


def cart_signature(entries: Dict[str, Any]) -> str:
    """Canonical form of a cart payload: JSON of its (id, qty) pairs sorted by id."""
    pairs = sorted((str(key), _signature_number(value)) for key, value in entries.items())
    return json.dumps([list(pair) for pair in pairs], separators=(',', ':'))


def single_lookup_key(text: str) -> str:
    """Key sent to the product lookup for a single-item scan."""
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict):
        if parsed.get('id') not in (None, ''):
            return str(parsed['id'])
        if parsed.get('qr_code_data'):
            return str(parsed['qr_code_data'])
    return text


def _open_gate(state: CheckoutSession, now: float) -> None:
    if state.scan_in_flight or now < state.scan_cooldown_until:
        raise ScanInProgressError()
    state.scan_in_flight = True


def _close_gate(state: CheckoutSession, now: float, cooldown: float) -> None:
    state.scan_in_flight = False
    state.scan_cooldown_until = now + cooldown


def handle_scan(
    state: CheckoutSession,
    data: str,
    client,
    cooldown: float = 1.0,
    clock: Callable[[], float] = time.monotonic
) -> ScanResult:
    """
    Process one decoded scan.

    Only one scan is handled at a time; after it resolves (either way) the
    gate stays closed for `cooldown` seconds.

    Raises:
        ScanInProgressError: gate closed
        DuplicateScanError: cart QR still represented in the cart
        NotFoundError: nothing in the scan could be resolved
        BackendError: backend unreachable; the cart is untouched
    """
    _open_gate(state, clock())
    try:
        logger.info(f"[SCAN] {state.session_id}: {data[:80]!r}")
        entries = parse_cart_payload(data)
        if entries is not None:
            return _handle_cart_payload(state, entries, client)
        return _handle_single_item(state, data, client)
    finally:
        _close_gate(state, clock(), cooldown)


def _handle_cart_payload(state: CheckoutSession, entries: Dict[str, Any], client) -> ScanResult:
    signature = cart_signature(entries)
    if is_signature_active(state, signature):
        raise DuplicateScanError()

    resolved: List[Tuple[Product, int]] = []
    skipped: List[str] = []
    for product_key, raw_qty in entries.items():
        qty = to_int(raw_qty)
        if qty < 1:
            continue
        try:
            product = client.product_by_qr(product_key)
        except BackendRejectedError as e:
            logger.warning(f"[SCAN] Cart item {product_key} not resolved: {e.message}")
            skipped.append(f'Product {product_key}: {e.message}')
            continue
        resolved.append((product, qty))

    if not resolved:
        raise NotFoundError('None of the products in this QR cart could be found.')

    record_signature(state, signature, {product.id for product, _ in resolved})

    result = ScanResult(kind=KIND_CART, signature=signature, skipped=skipped)
    for product, qty in resolved:
        try:
            result.lines.append(add_item(state, product, product.id, SOURCE_SCAN, qty))
        except BusinessLogicError as e:
            result.skipped.append(e.message)
    prune_signatures(state)

    for message in result.skipped:
        state.notify('warning', message)
    return result


def _handle_single_item(state: CheckoutSession, data: str, client) -> ScanResult:
    key = single_lookup_key(data)
    try:
        product = client.product_by_qr(key)
    except BackendRejectedError as e:
        raise NotFoundError(e.message or 'The scanned product is not in the database.')

    line = add_item(state, product, product.id, SOURCE_SCAN)
    return ScanResult(kind=KIND_SINGLE, lines=[line])
