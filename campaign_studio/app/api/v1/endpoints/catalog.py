"""Read-only catalog endpoints. Every list fails closed to [] for unauthenticated callers."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ....core.services import Services
from ....core.session import StaticSessionProvider
from ..dependencies import get_services, get_sessions
from .campaigns.models.catalog import Coupon, Offer, Product

router = APIRouter()


@router.get('/products', description='Products an action node can reference')
async def list_products(
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> list[Product]:
    return await services.catalog(sessions).list_products()


@router.get('/coupons', description='Coupons an action node can reference')
async def list_coupons(
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> list[Coupon]:
    return await services.catalog(sessions).list_coupons()


@router.get('/offers', description='Marketing offers, joined with their product')
async def list_offers(
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> list[Offer]:
    return await services.catalog(sessions).list_offers()
