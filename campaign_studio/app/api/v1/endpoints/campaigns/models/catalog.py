"""
Catalog entities consumed read-only by the action node configuration.

Stores hold snake_case records; these models expose the camelCase shape the canvas works with. ``from_record``
tolerates missing columns the same way for every backend.
"""

import datetime
from typing import Any, Self

from .common import CanvasModel


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_date_str(value: Any) -> str:
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value.split('T')[0]
    return ''


class Product(CanvasModel):
    id: str
    technical_id: str = ''
    marketing_name: str = ''
    type: str = 'Data'
    price: float = 0.0
    description: str = ''
    category: str = 'General'
    status: str = 'active'
    synced_at: str = ''

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls(
            id=str(record['id']),
            technical_id=record.get('technical_id') or '',
            marketing_name=record.get('marketing_name') or '',
            type=record.get('type') or 'Data',
            price=_as_float(record.get('price')),
            description=record.get('description') or '',
            category=record.get('category') or 'General',
            status=record.get('status') or 'active',
            synced_at=_as_date_str(record.get('synced_at') or record.get('created_at')),
        )

    def sub_label(self) -> str:
        return f'{self.type} • {self.price:g} Ks'


class Coupon(CanvasModel):
    id: str
    name: str = ''
    type: str = 'Discount'
    value: str = ''
    total_stock: int = 0
    claimed: int = 0
    validity: str = ''
    status: str = 'active'
    description: str = ''

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls(
            id=str(record['id']),
            name=record.get('name') or '',
            type=record.get('type') or 'Discount',
            value=str(record.get('value') or ''),
            total_stock=_as_int(record.get('total_stock')),
            claimed=_as_int(record.get('claimed_count')),
            validity=_as_date_str(record.get('validity_date')),
            status=record.get('status') or 'active',
            description=record.get('description') or '',
        )

    def sub_label(self) -> str:
        return f'Val: {self.value}'


class Offer(CanvasModel):
    """Marketing packaging of a product, optionally joined with the product itself."""

    id: str
    product_id: str | None = None
    marketing_name: str = ''
    discount_percent: float | None = None
    final_price: float = 0.0
    image_url: str | None = None
    marketing_copy: str | None = None
    created_at: str | None = None
    product: Product | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        joined = record.get('products') or record.get('product')
        return cls(
            id=str(record['id']),
            product_id=record.get('product_id'),
            marketing_name=record.get('marketing_name') or '',
            discount_percent=record.get('discount_percent'),
            final_price=_as_float(record.get('final_price')),
            image_url=record.get('image_url'),
            marketing_copy=record.get('marketing_copy') or None,
            created_at=_as_date_str(record.get('created_at')) or None,
            product=Product.from_record(joined) if joined else None,
        )
