"""MongoDB campaign store."""

from __future__ import annotations

from typing import Any

from ...api.v1.endpoints.campaigns.models.campaign import CampaignDocument, CampaignSummary
from .base import require_pymongo

_SUMMARY_PROJECTION = {'_id': 0, 'id': 1, 'name': 1, 'status': 1, 'updated_at': 1}


class MongoCampaignStore:
    def __init__(self, client: Any, db_name: str = 'campaign_studio') -> None:
        _, ascending, descending = require_pymongo()
        self._descending = descending
        self._client = client
        self._db = client[db_name]
        self._campaigns = self._db['campaigns']

        self._campaigns.create_index([('id', ascending)], unique=True)
        self._campaigns.create_index([('updated_at', descending)])

    def insert_campaign(self, document: CampaignDocument) -> None:
        if self._campaigns.find_one({'id': document.id}) is not None:
            msg = f'Campaign already exists: {document.id}'
            raise ValueError(msg)
        self._campaigns.insert_one(document.model_dump())

    def update_campaign(self, document: CampaignDocument) -> bool:
        result = self._campaigns.update_one(
            {'id': document.id},
            {
                '$set': {
                    'name': document.name,
                    'status': document.status,
                    'flow_definition': document.flow_definition.model_dump(),
                    'updated_at': document.updated_at,
                }
            },
        )
        return result.matched_count > 0

    def get_campaign(self, campaign_id: str) -> CampaignDocument | None:
        doc = self._campaigns.find_one({'id': campaign_id}, {'_id': 0})
        if doc is None:
            return None
        return CampaignDocument.model_validate(doc)

    def list_campaigns(self, limit: int = 50) -> list[CampaignSummary]:
        cursor = (
            self._campaigns.find({}, _SUMMARY_PROJECTION).sort('updated_at', self._descending).limit(limit)
        )
        return [CampaignSummary.model_validate(doc) for doc in cursor]
