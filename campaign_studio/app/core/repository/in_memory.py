"""In-memory campaign store, used by default and in tests."""

from __future__ import annotations

import threading

from ...api.v1.endpoints.campaigns.models.campaign import CampaignDocument, CampaignSummary


class InMemoryCampaignStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._campaigns: dict[str, CampaignDocument] = {}

    def insert_campaign(self, document: CampaignDocument) -> None:
        with self._lock:
            if document.id in self._campaigns:
                msg = f'Campaign already exists: {document.id}'
                raise ValueError(msg)
            self._campaigns[document.id] = document.model_copy(deep=True)

    def update_campaign(self, document: CampaignDocument) -> bool:
        with self._lock:
            existing = self._campaigns.get(document.id)
            if existing is None:
                return False
            self._campaigns[document.id] = document.model_copy(
                deep=True, update={'created_at': existing.created_at}
            )
            return True

    def get_campaign(self, campaign_id: str) -> CampaignDocument | None:
        with self._lock:
            document = self._campaigns.get(campaign_id)
            return document.model_copy(deep=True) if document is not None else None

    def list_campaigns(self, limit: int = 50) -> list[CampaignSummary]:
        with self._lock:
            documents = sorted(self._campaigns.values(), key=lambda doc: doc.updated_at, reverse=True)
        return [
            CampaignSummary(id=doc.id, name=doc.name, status=doc.status, updated_at=doc.updated_at)
            for doc in documents[:limit]
        ]
