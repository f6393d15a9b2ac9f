"""
JSON-ready views of checkout state.

Monetary Decimals are rounded to cents and emitted as floats; percentages
are emitted unrounded.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pos_client.models import CartLine, CheckoutSession, EditableUnit, Product, Reconciliation, Sale
from pos_client.utils.number_format import money_float


def _money_or_none(value: Optional[Decimal]) -> Optional[float]:
    return money_float(value) if value is not None else None


def product_json(product: Optional[Product]) -> Optional[Dict[str, Any]]:
    if product is None:
        return None
    data = product.to_dict()
    data['price'] = money_float(product.price)
    data['cost_price'] = money_float(product.cost_price)
    return data


def line_json(line: CartLine) -> Dict[str, Any]:
    return {
        'line_id': line.line_id,
        'product_id': line.product_id,
        'name': line.name,
        'quantity': line.quantity,
        'unit_price': money_float(line.product.price),
        'sell_price': money_float(line.sell_price),
        'cost_price': money_float(line.cost_price),
        'item_total': _money_or_none(line.item_total),
        'line_subtotal': money_float(line.line_subtotal),
        'stock': line.product.stock,
    }


def totals_json(totals: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'total_quantity': totals['total_quantity'],
        'subtotal': money_float(totals['subtotal']),
        'total_cost': money_float(totals['total_cost']),
        'displayed_total': money_float(totals['displayed_total']),
        'total_profit': money_float(totals['total_profit']),
        'cash_tendered': money_float(totals['cash_tendered']),
        'change': money_float(totals['change']),
        'insufficient': totals['insufficient'],
        'override_active': totals['override_active'],
    }


def cart_json(state: CheckoutSession, totals: Dict[str, Any]) -> Dict[str, Any]:
    """Full cart view as the checkout screen renders it."""
    return {
        'lines': [line_json(line) for line in state.lines],
        'totals': totals_json(totals),
        'pick_qty': state.pick_qty,
        'selected_product': product_json(state.selected_product),
        'cash_tendered': state.cash_tendered,
        'total_override': state.total_override,
        'cash_error': state.cash_error,
    }


def sale_json(sale: Sale) -> Dict[str, Any]:
    return {
        'id': sale.id,
        'timestamp': sale.timestamp,
        'user_id': sale.user_id,
        'cash_tendered': money_float(sale.cash_tendered),
        'total_amount': money_float(sale.total_amount),
        'global_discount': float(sale.global_discount),
        'items': [
            {
                'product_id': item.product_id,
                'name': item.name,
                'quantity': item.quantity,
                'price': money_float(item.price),
                'cost_price': money_float(item.cost_price),
                'discount': float(item.discount),
            }
            for item in sale.items
        ],
    }


def unit_json(index: int, unit: EditableUnit) -> Dict[str, Any]:
    return {
        'index': index,
        'product_id': unit.product_id,
        'name': unit.name,
        'price': money_float(unit.price),
        'discount': float(unit.discount),
        'origin_index': unit.origin_index,
    }


def reconciliation_json(rec: Optional[Reconciliation]) -> Optional[Dict[str, Any]]:
    if rec is None:
        return None
    return {
        'transaction_id': rec.sale.id,
        'status': rec.status.value,
        'error': rec.error,
        'units': [unit_json(i, unit) for i, unit in enumerate(rec.units)],
        'balance_due': _money_or_none(rec.balance_due),
        'additional_payment': _money_or_none(rec.additional_payment),
        'change_due': _money_or_none(rec.change_due),
    }


def summary_json(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'total_products': summary['total_products'],
        'total_stock_value': money_float(summary['total_stock_value']),
        'low_stock_count': summary['low_stock_count'],
        'out_of_stock_count': summary['out_of_stock_count'],
        'low_stock_products': [product_json(p) for p in summary['low_stock_products']],
        'stock_by_category': [
            {'category': category, 'stock': stock}
            for category, stock in summary['stock_by_category'].items()
        ],
    }


def products_json(products: List[Product]) -> List[Dict[str, Any]]:
    return [product_json(p) for p in products]
