"""Store interface for persisted campaign documents."""

from __future__ import annotations

from typing import Any, Protocol

from ...api.v1.endpoints.campaigns.models.campaign import CampaignDocument, CampaignSummary


def require_pymongo() -> tuple[Any, Any, Any]:
    try:
        from pymongo import ASCENDING, DESCENDING, MongoClient
    except ImportError as exc:
        raise ImportError('pymongo is required to use the mongo campaign store') from exc
    return MongoClient, ASCENDING, DESCENDING


def require_psycopg() -> Any:
    try:
        from psycopg.types.json import Json
    except ImportError as exc:
        raise ImportError('psycopg is required to use the postgres campaign store') from exc
    return Json


class CampaignStore(Protocol):
    """Document store keyed by campaign id.

    Implementations are synchronous; the persistence gateway runs them off the event loop. Concurrent writers are
    not coordinated, the last update wins.
    """

    def insert_campaign(self, document: CampaignDocument) -> None:
        """Raises ValueError if a campaign with the same id already exists."""
        ...

    def update_campaign(self, document: CampaignDocument) -> bool:
        """Overwrite name, status, flow definition and updated_at. Returns False if the id does not exist."""
        ...

    def get_campaign(self, campaign_id: str) -> CampaignDocument | None:
        ...

    def list_campaigns(self, limit: int = 50) -> list[CampaignSummary]:
        """Most recently updated first."""
        ...
