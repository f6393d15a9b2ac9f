"""
Scan deduplication: which cart QR payloads already contributed items.

A signature stays "active" while at least one product it added is still in
the cart; once every one of those products has left, the QR can be scanned
again.
"""
from typing import Iterable

from pos_client.models import CheckoutSession


def is_signature_active(state: CheckoutSession, signature: str) -> bool:
    tracked = state.scan_signatures.get(signature)
    if not tracked:
        return False
    return bool(tracked & state.product_ids_in_cart())


def record_signature(state: CheckoutSession, signature: str, product_ids: Iterable[int]) -> None:
    ids = set(product_ids)
    if ids:
        state.scan_signatures[signature] = ids


def prune_signatures(state: CheckoutSession) -> None:
    """Drop product ids no longer in the cart, then signatures left empty."""
    in_cart = state.product_ids_in_cart()
    for signature in list(state.scan_signatures):
        remaining = state.scan_signatures[signature] & in_cart
        if remaining:
            state.scan_signatures[signature] = remaining
        else:
            del state.scan_signatures[signature]


def clear_signatures(state: CheckoutSession) -> None:
    state.scan_signatures.clear()
