from fastapi import APIRouter

from .endpoints import audience, catalog, general
from .endpoints.campaigns import routes as campaign_routes

router = APIRouter(prefix='/v1', tags=['V1'])
router.include_router(general.router)
router.include_router(campaign_routes.router, prefix='/campaigns', tags=['Campaigns'])
router.include_router(audience.router, prefix='/audience', tags=['Audience'])
router.include_router(catalog.router, prefix='/catalog', tags=['Catalog'])
