"""Client-side models."""
from pos_client.models.product import Product
from pos_client.models.cart import (
    CartLine, CheckoutSession, Feedback,
    SOURCE_SCAN, SOURCE_MANUAL, DEFAULT_PICK_QTY
)
from pos_client.models.sale import (
    Sale, SaleItem, EditableUnit, Reconciliation, ReconciliationStatus
)

__all__ = [
    'Product',
    'CartLine',
    'CheckoutSession',
    'Feedback',
    'SOURCE_SCAN',
    'SOURCE_MANUAL',
    'DEFAULT_PICK_QTY',
    'Sale',
    'SaleItem',
    'EditableUnit',
    'Reconciliation',
    'ReconciliationStatus',
]
