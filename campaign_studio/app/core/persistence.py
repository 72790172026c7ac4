"""
Persistence gateway between the canvas and the campaign store.

``load`` and ``save`` never raise for I/O problems: they return a result carrying an ``OperationError`` so the
caller can show inline feedback and keep the graph it already has. Concurrent saves of the same campaign are not
coordinated; the last write reaching the store wins.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel

from ..api.v1.endpoints.campaigns.models.campaign import (
    CampaignDocument,
    CampaignStatus,
    CampaignSummary,
    FlowDefinition,
    is_transient_id,
)
from ..api.v1.endpoints.campaigns.models.graph import CampaignEdge, CampaignGraph
from ..converters.flow_serializer import deserialize_graph, serialize_edge, serialize_node
from .errors import CampaignNotFoundError, ErrorKind, NotAuthenticatedError, OperationError
from .repository.base import CampaignStore
from .session import SessionProvider

logger = structlog.stdlib.get_logger('campaign-studio.persistence')

DEMO_EMAILS_KEY = 'demoEmails'


class LoadResult(BaseModel):
    graph: CampaignGraph | None = None
    name: str | None = None
    status: CampaignStatus | None = None
    metadata: dict[str, Any] = {}
    error: OperationError | None = None


class SaveResult(BaseModel):
    id: str | None = None
    error: OperationError | None = None


class ListResult(BaseModel):
    campaigns: list[CampaignSummary] = []
    error: OperationError | None = None


def default_campaign_name(now: datetime) -> str:
    return f'Campaign {now.date().isoformat()}'


def merge_metadata(existing: Mapping[str, Any], aux: Mapping[str, Any] | None) -> dict[str, Any]:
    """Overlay ``aux`` on the stored metadata. Blank demo recipients are dropped."""
    merged = dict(existing)
    for key, value in (aux or {}).items():
        if key == DEMO_EMAILS_KEY and isinstance(value, list):
            value = [email.strip() for email in value if isinstance(email, str) and email.strip()]
        merged[key] = value
    return merged


def _to_error(exc: Exception) -> OperationError:
    if isinstance(exc, NotAuthenticatedError):
        return OperationError(kind=ErrorKind.NOT_AUTHENTICATED, message=str(exc) or 'User not authenticated')
    if isinstance(exc, CampaignNotFoundError):
        return OperationError(kind=ErrorKind.NOT_FOUND, message=str(exc))
    return OperationError(kind=ErrorKind.TRANSIENT_IO_FAILURE, message=str(exc) or exc.__class__.__name__)


class CampaignPersistence:
    def __init__(self, store: CampaignStore, sessions: SessionProvider) -> None:
        self._store = store
        self._sessions = sessions
        self.loading = False
        self.saving = False

    def _require_session(self) -> None:
        if self._sessions.get_session() is None:
            msg = 'User not authenticated'
            raise NotAuthenticatedError(msg)

    async def load(self, campaign_id: str) -> LoadResult:
        self.loading = True
        try:
            self._require_session()
            document = await asyncio.to_thread(self._store.get_campaign, campaign_id)
            if document is None:
                raise CampaignNotFoundError(campaign_id)
            flow = document.flow_definition
            graph = deserialize_graph(flow.nodes, flow.edges)
        except Exception as e:
            error = _to_error(e)
            logger.warning('failed to load campaign %s: %s', campaign_id, error.message, kind=error.kind.value)
            return LoadResult(error=error)
        finally:
            self.loading = False

        logger.info('loaded campaign %s (%d nodes, %d edges)', campaign_id, len(graph.nodes), len(graph.edges))
        return LoadResult(
            graph=graph,
            name=document.name,
            status=document.status,
            metadata=dict(flow.metadata),
        )

    async def save(
        self,
        campaign_id: str | None,
        nodes: Sequence[Any],
        edges: Sequence[CampaignEdge],
        name: str | None = None,
        status: CampaignStatus = 'draft',
        aux_metadata: Mapping[str, Any] | None = None,
    ) -> SaveResult:
        """Create (null or transient id) or update a campaign.

        Updates read the stored metadata first and merge ``aux_metadata`` over it.
        """
        self.saving = True
        try:
            self._require_session()
            now = datetime.now(UTC)
            serialized_nodes = [serialize_node(node) for node in nodes]
            serialized_edges = [serialize_edge(edge) for edge in edges]

            if is_transient_id(campaign_id):
                saved_id = str(uuid.uuid4())
                document = CampaignDocument(
                    id=saved_id,
                    name=name or default_campaign_name(now),
                    status=status,
                    flow_definition=FlowDefinition(
                        nodes=serialized_nodes,
                        edges=serialized_edges,
                        metadata=merge_metadata({}, aux_metadata),
                    ),
                    created_at=now,
                    updated_at=now,
                )
                await asyncio.to_thread(self._store.insert_campaign, document)
                logger.info('created campaign %s', saved_id, replaced_transient_id=campaign_id)
            else:
                saved_id = campaign_id
                existing = await asyncio.to_thread(self._store.get_campaign, saved_id)
                if existing is None:
                    raise CampaignNotFoundError(saved_id)
                document = existing.model_copy(
                    update={
                        'name': name or existing.name,
                        'status': status,
                        'flow_definition': FlowDefinition(
                            nodes=serialized_nodes,
                            edges=serialized_edges,
                            metadata=merge_metadata(existing.flow_definition.metadata, aux_metadata),
                        ),
                        'updated_at': now,
                    }
                )
                updated = await asyncio.to_thread(self._store.update_campaign, document)
                if not updated:
                    raise CampaignNotFoundError(saved_id)
                logger.info('updated campaign %s', saved_id)
        except Exception as e:
            error = _to_error(e)
            logger.warning('failed to save campaign %s: %s', campaign_id, error.message, kind=error.kind.value)
            return SaveResult(error=error)
        finally:
            self.saving = False

        return SaveResult(id=saved_id)

    async def save_graph(
        self,
        campaign_id: str | None,
        graph: CampaignGraph,
        name: str | None = None,
        status: CampaignStatus = 'draft',
        aux_metadata: Mapping[str, Any] | None = None,
    ) -> SaveResult:
        return await self.save(campaign_id, graph.nodes, graph.edges, name, status, aux_metadata)

    async def list_campaigns(self, limit: int = 50) -> ListResult:
        """Most recently updated first. Unauthenticated callers get an empty list."""
        if self._sessions.get_session() is None:
            return ListResult(
                error=OperationError(kind=ErrorKind.NOT_AUTHENTICATED, message='User not authenticated')
            )
        try:
            campaigns = await asyncio.to_thread(self._store.list_campaigns, limit)
        except Exception as e:
            logger.warning('failed to list campaigns: %s', e)
            return ListResult(error=_to_error(e))
        return ListResult(campaigns=campaigns)
