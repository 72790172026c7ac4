import pytest

from campaign_studio.app.core.catalog import CatalogService, InMemoryCatalogStore


class BrokenCatalogStore:
    def product_records(self):
        raise ConnectionError('catalog offline')

    coupon_records = product_records
    offer_records = product_records


@pytest.mark.asyncio
async def test_seeded_catalog(sessions):
    catalog = CatalogService(InMemoryCatalogStore(), sessions)

    products = await catalog.list_products()
    coupons = await catalog.list_coupons()
    offers = await catalog.list_offers()

    assert [product.id for product in products] == ['p1', 'p2', 'p3', 'p4']
    assert next(product for product in products if product.id == 'p4').sub_label() == 'Voice • 3000 Ks'
    assert coupons[0].claimed == 120
    assert offers[0].product.marketing_name == 'Night Owl 1GB'


@pytest.mark.asyncio
async def test_unauthenticated_reads_fail_closed(no_sessions):
    catalog = CatalogService(InMemoryCatalogStore(), no_sessions)

    assert await catalog.list_products() == []
    assert await catalog.list_coupons() == []
    assert await catalog.list_offers() == []


@pytest.mark.asyncio
async def test_backend_errors_fail_closed(sessions):
    catalog = CatalogService(BrokenCatalogStore(), sessions)

    assert await catalog.list_products() == []
    assert await catalog.list_offers() == []


@pytest.mark.asyncio
async def test_store_returns_copies(sessions):
    store = InMemoryCatalogStore(products=[{'id': 'x', 'marketing_name': 'Original'}], coupons=[], offers=[])
    store.product_records()[0]['marketing_name'] = 'Tampered'

    products = await CatalogService(store, sessions).list_products()
    assert products[0].marketing_name == 'Original'
