"""
Read-only catalog of products, coupons and offers.

Every read fails closed: an unauthenticated caller or a backend error yields an empty list, never an exception.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Protocol

import structlog

from ..api.v1.endpoints.campaigns.models.catalog import Coupon, Offer, Product
from .session import SessionProvider

logger = structlog.stdlib.get_logger('campaign-studio.catalog')

SEED_PRODUCTS: list[dict[str, Any]] = [
    {
        'id': 'p1',
        'technical_id': 'VAS_GAME_BOOST',
        'marketing_name': 'Game Booster Pro',
        'type': 'VAS',
        'price': 500,
        'description': 'Low-latency gaming add-on',
        'category': 'Gaming',
    },
    {
        'id': 'p2',
        'technical_id': 'BDL_SUPER_MONTHLY',
        'marketing_name': 'Super Monthly',
        'type': 'Bundle',
        'price': 15000,
        'description': 'Monthly data, voice and SMS bundle',
        'category': 'Bundles',
    },
    {
        'id': 'p3',
        'technical_id': 'DATA_NIGHT_1GB',
        'marketing_name': 'Night Owl 1GB',
        'type': 'Data',
        'price': 800,
        'description': '1GB of data usable between midnight and 6am',
        'category': 'Data',
    },
    {
        'id': 'p4',
        'technical_id': 'VOICE_TALK_100',
        'marketing_name': 'Talk More 100',
        'type': 'Voice',
        'price': 3000,
        'description': '100 on-net minutes',
        'category': 'Voice',
    },
]

SEED_COUPONS: list[dict[str, Any]] = [
    {
        'id': 'c1',
        'name': 'Welcome 20%',
        'type': 'Discount',
        'value': '20%',
        'total_stock': 1000,
        'claimed_count': 120,
        'validity_date': '2026-12-31',
    },
    {
        'id': 'c2',
        'name': 'Top-up Voucher',
        'type': 'Voucher',
        'value': '1000 Ks',
        'total_stock': 500,
        'claimed_count': 42,
        'validity_date': '2026-12-31',
    },
]

SEED_OFFERS: list[dict[str, Any]] = [
    {
        'id': 'o1',
        'product_id': 'p3',
        'marketing_name': 'Night Owl Flash Sale',
        'discount_percent': 25,
        'final_price': 600,
        'marketing_copy': 'Stay up late for less: 1GB night data at 600 Ks.',
    },
]


class CatalogStore(Protocol):
    """Raw snake_case records, as stored."""

    def product_records(self) -> list[dict[str, Any]]:
        ...

    def coupon_records(self) -> list[dict[str, Any]]:
        ...

    def offer_records(self) -> list[dict[str, Any]]:
        """Offers with the referenced product joined under ``products``."""
        ...


class InMemoryCatalogStore:
    def __init__(
        self,
        products: list[dict[str, Any]] | None = None,
        coupons: list[dict[str, Any]] | None = None,
        offers: list[dict[str, Any]] | None = None,
    ) -> None:
        self._products = copy.deepcopy(SEED_PRODUCTS if products is None else products)
        self._coupons = copy.deepcopy(SEED_COUPONS if coupons is None else coupons)
        self._offers = copy.deepcopy(SEED_OFFERS if offers is None else offers)

    def product_records(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._products)

    def coupon_records(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._coupons)

    def offer_records(self) -> list[dict[str, Any]]:
        products = {record['id']: record for record in self._products}
        return [
            {**copy.deepcopy(offer), 'products': copy.deepcopy(products.get(offer.get('product_id')))}
            for offer in self._offers
        ]


class MongoCatalogStore:
    def __init__(self, client: Any, db_name: str = 'campaign_studio') -> None:
        self._db = client[db_name]

    def product_records(self) -> list[dict[str, Any]]:
        return list(self._db['products'].find({}, {'_id': 0}))

    def coupon_records(self) -> list[dict[str, Any]]:
        return list(self._db['coupons'].find({}, {'_id': 0}))

    def offer_records(self) -> list[dict[str, Any]]:
        products = {record['id']: record for record in self.product_records()}
        return [
            {**offer, 'products': products.get(offer.get('product_id'))}
            for offer in self._db['offers'].find({}, {'_id': 0})
        ]


class CatalogService:
    def __init__(self, store: CatalogStore, sessions: SessionProvider) -> None:
        self._store = store
        self._sessions = sessions

    async def _read(self, entity: str, fetch: Any, convert: Any) -> list[Any]:
        if self._sessions.get_session() is None:
            logger.warning('no active session, returning no %s', entity)
            return []
        try:
            records = await asyncio.to_thread(fetch)
            return [convert(record) for record in records]
        except Exception as e:
            logger.error('failed to read %s: %s', entity, e)
            return []

    async def list_products(self) -> list[Product]:
        return await self._read('products', self._store.product_records, Product.from_record)

    async def list_coupons(self) -> list[Coupon]:
        return await self._read('coupons', self._store.coupon_records, Coupon.from_record)

    async def list_offers(self) -> list[Offer]:
        return await self._read('offers', self._store.offer_records, Offer.from_record)
