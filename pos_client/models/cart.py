"""Cart line and checkout session state."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set

from pos_client.models.product import Product
from pos_client.models.sale import Reconciliation, Sale

SOURCE_SCAN = 'scan'
SOURCE_MANUAL = 'manual'

DEFAULT_PICK_QTY = 1


@dataclass
class CartLine:
    """
    One distinguishable grouping of a product in the current sale.

    `item_total`, when set, is authoritative for the line and `sell_price`
    is derived from it (item_total / quantity).
    Quantity edits keep the overridden unit price: item_total is rescaled to
    the new quantity.
    """

    line_id: int
    product: Product
    match_key: str
    quantity: int
    sell_price: Decimal
    item_total: Optional[Decimal] = None

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def cost_price(self) -> Decimal:
        return self.product.cost_price

    @property
    def line_subtotal(self) -> Decimal:
        if self.item_total is not None:
            return self.item_total
        return self.sell_price * self.quantity

    @property
    def line_cost(self) -> Decimal:
        return self.cost_price * self.quantity

    @property
    def line_profit(self) -> Decimal:
        if self.item_total is not None:
            return self.item_total - self.line_cost
        return (self.sell_price - self.cost_price) * self.quantity


@dataclass
class Feedback:
    """UI cue queued by the services (beep/vibrate acknowledgement, warnings)."""

    kind: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'kind': self.kind, 'message': self.message}


@dataclass
class CheckoutSession:
    """
    All mutable state of one checkout screen.

    Owned by a single terminal session and never persisted; discarding the
    object is the same as unmounting the screen.
    """

    session_id: str
    lines: List[CartLine] = field(default_factory=list)
    next_line_id: int = 1
    scan_signatures: Dict[str, Set[int]] = field(default_factory=dict)
    pick_qty: int = DEFAULT_PICK_QTY
    selected_product: Optional[Product] = None
    cash_tendered: str = ''
    total_override: str = ''
    cash_error: str = ''
    product_results: List[Product] = field(default_factory=list)
    last_search_term: str = ''
    scan_in_flight: bool = False
    scan_cooldown_until: float = 0.0
    feedback: List[Feedback] = field(default_factory=list)
    transactions: List[Sale] = field(default_factory=list)
    reconciliation: Optional[Reconciliation] = None

    def find_line(self, line_id: int) -> Optional[CartLine]:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def product_ids_in_cart(self) -> Set[int]:
        return {line.product_id for line in self.lines}

    def notify(self, kind: str, message: str) -> None:
        self.feedback.append(Feedback(kind, message))

    def drain_feedback(self) -> List[Dict[str, str]]:
        drained = [item.to_dict() for item in self.feedback]
        self.feedback = []
        return drained
