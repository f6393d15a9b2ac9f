"""Product snapshot as returned by the inventory endpoints."""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_client.utils.number_format import to_decimal, to_int


@dataclass
class Product:
    """Read-only copy of a backend inventory row."""

    id: int
    name: str
    price: Decimal
    cost_price: Decimal = Decimal('0')
    stock: int = 0
    category: str = ''
    category_id: Optional[int] = None
    description: str = ''
    qr_code_data: str = ''

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        """
        Build a Product from a backend row.

        Accepts both `cost_price` and the legacy camelCase `costPrice`.

        Raises:
            ValueError: if the row has no usable id or name.
        """
        if not isinstance(data, dict):
            raise ValueError('Product payload must be an object')
        raw_id = data.get('id')
        if raw_id is None or str(raw_id).strip() == '':
            raise ValueError('Product payload has no id')
        try:
            product_id = int(str(raw_id).strip())
        except ValueError:
            raise ValueError(f'Product id is not numeric: {raw_id!r}')
        name = data.get('name')
        if not name:
            raise ValueError(f'Product {product_id} has no name')

        cost = data.get('cost_price', data.get('costPrice'))
        category_id = data.get('category_id')
        return cls(
            id=product_id,
            name=str(name),
            price=to_decimal(data.get('price')),
            cost_price=to_decimal(cost),
            stock=to_int(data.get('stock')),
            category=str(data.get('category') or ''),
            category_id=to_int(category_id) if category_id not in (None, '') else None,
            description=str(data.get('description') or ''),
            qr_code_data=str(data.get('qr_code_data') or ''),
        )

    def snapshot(self) -> 'Product':
        """Detached copy, so later lookups never rewrite a cart line's prices."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'cost_price': self.cost_price,
            'stock': self.stock,
            'category': self.category,
            'category_id': self.category_id,
            'description': self.description,
            'qr_code_data': self.qr_code_data,
        }
