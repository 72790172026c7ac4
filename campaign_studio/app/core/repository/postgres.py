"""PostgreSQL campaign store. The flow definition is kept in a JSONB column."""

from __future__ import annotations

from typing import Any

from ...api.v1.endpoints.campaigns.models.campaign import (
    CampaignDocument,
    CampaignSummary,
    FlowDefinition,
)
from .base import require_psycopg


class PostgresCampaignStore:
    def __init__(self, connection: Any) -> None:
        self._connection = connection
        self._json = require_psycopg()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS campaigns (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    flow_definition JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                );
                """
            )
            cursor.execute(
                'CREATE INDEX IF NOT EXISTS campaigns_updated_at_idx ON campaigns (updated_at DESC);'
            )
        self._connection.commit()

    def insert_campaign(self, document: CampaignDocument) -> None:
        with self._connection.transaction():
            cursor = self._connection.execute('SELECT 1 FROM campaigns WHERE id = %s', (document.id,))
            if cursor.fetchone() is not None:
                msg = f'Campaign already exists: {document.id}'
                raise ValueError(msg)

            self._connection.execute(
                'INSERT INTO campaigns (id, name, status, flow_definition, created_at, updated_at) '
                'VALUES (%s, %s, %s, %s, %s, %s)',
                (
                    document.id,
                    document.name,
                    document.status,
                    self._json(document.flow_definition.model_dump(mode='json')),
                    document.created_at,
                    document.updated_at,
                ),
            )

    def update_campaign(self, document: CampaignDocument) -> bool:
        with self._connection.transaction():
            cursor = self._connection.execute(
                'UPDATE campaigns SET name = %s, status = %s, flow_definition = %s, updated_at = %s '
                'WHERE id = %s',
                (
                    document.name,
                    document.status,
                    self._json(document.flow_definition.model_dump(mode='json')),
                    document.updated_at,
                    document.id,
                ),
            )
            return cursor.rowcount > 0

    def get_campaign(self, campaign_id: str) -> CampaignDocument | None:
        cursor = self._connection.execute(
            'SELECT id, name, status, flow_definition, created_at, updated_at FROM campaigns WHERE id = %s',
            (campaign_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return CampaignDocument(
            id=row[0],
            name=row[1],
            status=row[2],
            flow_definition=FlowDefinition.model_validate(row[3]),
            created_at=row[4],
            updated_at=row[5],
        )

    def list_campaigns(self, limit: int = 50) -> list[CampaignSummary]:
        cursor = self._connection.execute(
            'SELECT id, name, status, updated_at FROM campaigns ORDER BY updated_at DESC LIMIT %s',
            (limit,),
        )
        return [
            CampaignSummary(id=row[0], name=row[1], status=row[2], updated_at=row[3])
            for row in cursor.fetchall()
        ]
