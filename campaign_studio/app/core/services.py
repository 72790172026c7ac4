"""Application wiring: long-lived stores plus per-request gateways bound to the caller's session."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from ..api.v1.endpoints.campaigns.models.graph import CampaignGraph
from .audience_estimator import AudienceEstimator, AudienceSource, InMemoryAudienceSource, MongoAudienceSource
from .canvas_controller import CanvasController
from .catalog import CatalogService, CatalogStore, InMemoryCatalogStore, MongoCatalogStore
from .palette_menu import PaletteMenu
from .persistence import CampaignPersistence
from .repository import factory as store_factory
from .repository.base import CampaignStore
from .session import SessionProvider
from .simulation import CampaignSimulator, RandomBehaviour, RecipientBehaviour


def demo_profiles(now: datetime | None = None) -> list[dict[str, Any]]:
    """A handful of subscriber profiles so the in-memory audience source returns meaningful counts."""
    now = now or datetime.now(UTC)
    return [
        {
            'id': 'u1',
            'tier': 'Diamond',
            'age': 34,
            'gender': 'Female',
            'location_city': 'Yangon',
            'arpu_30d': 32000,
            'churn_score': 0.2,
            'balance': 15000,
            'status': 'Active',
            'created_at': now - timedelta(days=900),
            'tags': ['gamer', 'night-owl'],
        },
        {
            'id': 'u2',
            'tier': 'Gold',
            'age': 27,
            'gender': 'Male',
            'location_city': 'Mandalay',
            'arpu_30d': 12000,
            'churn_score': 0.7,
            'balance': 800,
            'status': 'Inactive',
            'created_at': now - timedelta(days=120),
            'tags': ['student'],
        },
        {
            'id': 'u3',
            'tier': 'Diamond',
            'age': 45,
            'gender': 'Male',
            'location_city': 'Yangon',
            'arpu_30d': 54000,
            'churn_score': 0.1,
            'balance': 42000,
            'status': 'Active',
            'created_at': now - timedelta(days=2000),
            'tags': ['business'],
        },
        {
            'id': 'u4',
            'tier': 'Silver',
            'age': 22,
            'gender': 'Female',
            'location_city': 'Naypyidaw',
            'arpu_30d': 4000,
            'churn_score': 0.55,
            'balance': 300,
            'status': 'Active',
            'created_at': now - timedelta(days=30),
            'tags': ['student', 'gamer'],
        },
    ]


@dataclass
class Services:
    campaign_store: CampaignStore
    catalog_store: CatalogStore
    audience_source: AudienceSource
    behaviour_factory: Callable[[], RecipientBehaviour]
    landing_base_url: str = 'http://localhost:5173'
    wait_scale: float = 0.0
    debounce_seconds: float = 0.5
    palette_close_delay: float = 0.3

    def persistence(self, sessions: SessionProvider) -> CampaignPersistence:
        return CampaignPersistence(self.campaign_store, sessions)

    def catalog(self, sessions: SessionProvider) -> CatalogService:
        return CatalogService(self.catalog_store, sessions)

    def estimator(self, sessions: SessionProvider) -> AudienceEstimator:
        return AudienceEstimator(self.audience_source, sessions, debounce_seconds=self.debounce_seconds)

    async def canvas(self, sessions: SessionProvider, graph: CampaignGraph | None = None) -> CanvasController:
        """Controller preloaded with the catalog and wired to a debounced audience estimator."""
        catalog = self.catalog(sessions)
        return CanvasController(
            graph,
            products=await catalog.list_products(),
            coupons=await catalog.list_coupons(),
            estimator=self.estimator(sessions),
        )

    def palette_menu(self) -> PaletteMenu:
        return PaletteMenu(close_delay=self.palette_close_delay)

    def simulator(self, sessions: SessionProvider) -> CampaignSimulator:
        return CampaignSimulator(
            self.persistence(sessions),
            self.behaviour_factory(),
            landing_base_url=self.landing_base_url,
            wait_scale=self.wait_scale,
        )


def build_services(settings: Any) -> Services:
    backend = str(getattr(settings, 'CAMPAIGN_STORE_BACKEND', 'memory')).lower()

    def behaviour_factory() -> RecipientBehaviour:
        return RandomBehaviour(
            min_latency=settings.SIMULATION_MIN_LATENCY_SECONDS,
            max_latency=settings.SIMULATION_MAX_LATENCY_SECONDS,
            failure_rate=settings.SIMULATION_DELIVERY_FAILURE_RATE,
            click_rate=settings.SIMULATION_CLICK_RATE,
            seed=settings.SIMULATION_SEED,
        )

    catalog_store: CatalogStore
    audience_source: AudienceSource
    if backend == 'mongo':
        client = store_factory.create_mongo_client(settings)
        campaign_store = store_factory.create_campaign_store(settings, mongo_client=client)
        catalog_store = MongoCatalogStore(client, db_name=settings.CAMPAIGN_STORE_MONGO_DB)
        audience_source = MongoAudienceSource(client, db_name=settings.CAMPAIGN_STORE_MONGO_DB)
    else:
        campaign_store = store_factory.create_campaign_store(settings)
        catalog_store = InMemoryCatalogStore()
        audience_source = InMemoryAudienceSource(demo_profiles())

    return Services(
        campaign_store=campaign_store,
        catalog_store=catalog_store,
        audience_source=audience_source,
        behaviour_factory=behaviour_factory,
        landing_base_url=settings.OFFER_LANDING_BASE_URL,
        wait_scale=settings.SIMULATION_WAIT_SCALE,
        debounce_seconds=settings.AUDIENCE_ESTIMATE_DEBOUNCE_SECONDS,
        palette_close_delay=settings.PALETTE_CLOSE_GRACE_SECONDS,
    )
