"""Totals derived from the cart on every change (no rounding until output)."""
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_client.models import CheckoutSession
from pos_client.utils.number_format import parse_amount


def total_override(state: CheckoutSession) -> Optional[Decimal]:
    """Manual total, when one has been typed and is numeric."""
    return parse_amount(state.total_override)


def calculate_totals(state: CheckoutSession) -> Dict[str, Any]:
    """
    Calculate totals for the cart.

    With a manual total override active, profit is override - cost, so any
    surcharge typed over the subtotal is counted entirely as profit.
    `change` may be negative; `insufficient` flags that case.
    """
    lines_details = []
    total_quantity = 0
    subtotal = Decimal('0')
    total_cost = Decimal('0')
    line_profit = Decimal('0')

    for line in state.lines:
        line_subtotal = line.line_subtotal
        lines_details.append({
            'line_id': line.line_id,
            'product_id': line.product_id,
            'product_name': line.name,
            'quantity': line.quantity,
            'unit_price': line.product.price,
            'sell_price': line.sell_price,
            'cost_price': line.cost_price,
            'item_total': line.item_total,
            'line_subtotal': line_subtotal,
            'stock': line.product.stock,
        })
        total_quantity += line.quantity
        subtotal += line_subtotal
        total_cost += line.line_cost
        line_profit += line.line_profit

    override = total_override(state)
    displayed_total = override if override is not None else subtotal
    total_profit = override - total_cost if override is not None else line_profit

    cash_tendered = parse_amount(state.cash_tendered) or Decimal('0')
    change = cash_tendered - displayed_total

    return {
        'total_quantity': total_quantity,
        'subtotal': subtotal,
        'total_cost': total_cost,
        'displayed_total': displayed_total,
        'total_profit': total_profit,
        'cash_tendered': cash_tendered,
        'change': change,
        'insufficient': change < 0,
        'override_active': override is not None,
        'lines': lines_details
    }
