"""
Inventory service.
Client-side filtering and dashboard figures over the backend inventory list.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from pos_client.models import Product
from pos_client.utils.number_format import money


def filter_inventory(products: Iterable[Product], query: str = '') -> List[Product]:
    """Case-insensitive substring match on name, description or category."""
    needle = (query or '').strip().lower()
    products = list(products)
    if not needle:
        return products
    return [
        p for p in products
        if needle in (p.name or '').lower()
        or needle in (p.description or '').lower()
        or needle in (p.category or '').lower()
    ]


def summarize_inventory(products: Iterable[Product], low_stock_threshold: int = 5) -> Dict[str, Any]:
    """
    Aggregate inventory figures for the dashboard.

    Returns:
        dict with keys:
            - total_products: int
            - total_stock_value: Decimal (price x stock, positive stock and non-negative price only)
            - low_stock_count: int (stock <= threshold, out of stock included)
            - out_of_stock_count: int
            - low_stock_products: list of Products
            - stock_by_category: ordered dict category -> units
    """
    products = list(products)
    total_value = Decimal('0')
    low_stock = []
    out_of_stock = 0
    by_category: Dict[str, int] = OrderedDict()

    for product in products:
        if product.stock > 0 and product.price >= 0:
            total_value += product.price * product.stock
        if product.stock <= low_stock_threshold:
            low_stock.append(product)
        if product.stock == 0:
            out_of_stock += 1
        category = product.category or 'Uncategorized'
        by_category[category] = by_category.get(category, 0) + max(product.stock, 0)

    return {
        'total_products': len(products),
        'total_stock_value': money(total_value),
        'low_stock_count': len(low_stock),
        'out_of_stock_count': out_of_stock,
        'low_stock_products': sorted(low_stock, key=lambda p: (p.stock, p.name)),
        'stock_by_category': by_category,
    }
