"""Recorded sales (receipts) and the reconciliation state used to edit them."""
import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pos_client.utils.number_format import to_decimal, to_int


def _first(data: Dict[str, Any], *keys, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


@dataclass
class SaleItem:
    """One recorded line of a receipt."""

    product_id: int
    quantity: int
    price: Decimal
    cost_price: Decimal = Decimal('0')
    discount: Decimal = Decimal('0')
    name: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SaleItem':
        product_id = _first(data, 'product_id', 'inventory_id')
        if product_id is None:
            raise ValueError('Sale item has no product_id')
        return cls(
            product_id=int(str(product_id).strip()),
            quantity=to_int(data.get('quantity')),
            price=to_decimal(_first(data, 'price', 'price_each')),
            cost_price=to_decimal(_first(data, 'cost_price', 'costPrice')),
            discount=to_decimal(_first(data, 'discount', 'discount_percent')),
            name=str(data.get('name') or ''),
        )


@dataclass
class Sale:
    """A completed transaction as reported by the backend."""

    id: int
    items: List[SaleItem]
    cash_tendered: Decimal
    total_amount: Decimal
    user_id: Optional[int] = None
    timestamp: str = ''
    global_discount: Decimal = Decimal('0')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Sale':
        sale_id = _first(data, 'transaction_id', 'receipt_id', 'id')
        if sale_id is None:
            raise ValueError('Sale has no id')
        user_id = data.get('user_id')
        return cls(
            id=int(str(sale_id).strip()),
            items=[SaleItem.from_dict(item) for item in data.get('items') or []],
            cash_tendered=to_decimal(data.get('cash_tendered')),
            total_amount=to_decimal(data.get('total_amount')),
            user_id=to_int(user_id) if user_id not in (None, '') else None,
            timestamp=str(_first(data, 'date_issued', 'timestamp', 'date', default='')),
            global_discount=to_decimal(_first(data, 'global_discount', 'cart_discount')),
        )


@dataclass
class EditableUnit:
    """
    A single unit of a recorded line, so each unit's product can be swapped
    independently while editing. `origin_index` points back at the sale item
    it was flattened from (None for units added during the edit).
    """

    product_id: int
    price: Decimal
    cost_price: Decimal = Decimal('0')
    discount: Decimal = Decimal('0')
    name: str = ''
    origin_index: Optional[int] = None
    quantity: int = 1


class ReconciliationStatus(enum.Enum):
    """Steps of one transaction edit attempt."""
    EDITING = "EDITING"
    SAVING = "SAVING"
    ADDITIONAL_PAYMENT_REQUIRED = "ADDITIONAL_PAYMENT_REQUIRED"
    EDITING_PAYMENT = "EDITING_PAYMENT"
    SUCCESS = "SUCCESS"


@dataclass
class Reconciliation:
    """State of an in-progress edit of a recorded sale."""

    sale: Sale
    units: List[EditableUnit]
    status: ReconciliationStatus = ReconciliationStatus.EDITING
    error: str = ''
    balance_due: Optional[Decimal] = None
    change_due: Optional[Decimal] = None
    additional_payment: Optional[Decimal] = None
    request: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)
