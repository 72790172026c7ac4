"""
The persisted campaign aggregate and the payloads used to move it over HTTP.

The stored document keeps snake_case top-level keys (``flow_definition``, ``updated_at``); the flow definition
itself holds serialized nodes and edges in the canvas (camelCase) format.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from .common import CanvasModel

CampaignStatus = Literal['draft', 'active', 'paused']

TRANSIENT_ID_PREFIX = 'sim-'
"""Placeholder ids handed out before the first successful save start with this prefix."""


def is_transient_id(campaign_id: str | None) -> bool:
    return not campaign_id or campaign_id.startswith(TRANSIENT_ID_PREFIX)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FlowDefinition(BaseModel):
    nodes: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    edges: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    metadata: Annotated[dict[str, Any], Field(default_factory=dict)]
    """Open map for run-time configuration such as ``demoEmails``. Merged, never replaced, on update."""


class CampaignDocument(BaseModel):
    id: str
    name: str
    status: CampaignStatus = 'draft'
    flow_definition: Annotated[FlowDefinition, Field(default_factory=FlowDefinition)]
    created_at: Annotated[datetime, Field(default_factory=_utcnow)]
    updated_at: Annotated[datetime, Field(default_factory=_utcnow)]


class CampaignSummary(BaseModel):
    id: str
    name: str
    status: CampaignStatus
    updated_at: datetime


# HTTP payloads
# ----------------------------------------------------------------------------


class SaveCampaignRequest(CanvasModel):
    """Body of ``POST /v1/campaigns``. A null, blank or ``sim-`` id creates a new campaign."""

    id: str | None = None
    name: str | None = None
    status: CampaignStatus = 'draft'
    nodes: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    edges: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    metadata: dict[str, Any] | None = None


class SaveCampaignResponse(CanvasModel):
    id: str


class LoadCampaignResponse(CanvasModel):
    id: str
    name: str | None = None
    status: CampaignStatus | None = None
    nodes: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    edges: Annotated[list[dict[str, Any]], Field(default_factory=list)]
    metadata: Annotated[dict[str, Any], Field(default_factory=dict)]


class SimulateCampaignRequest(CanvasModel):
    """Body of ``POST /v1/campaigns/{id}/simulate``.

    When ``recipients`` is omitted the stored ``demoEmails`` list is reused. When ``nodes`` is omitted the stored
    flow definition is simulated.
    """

    recipients: list[str] | None = None
    nodes: list[dict[str, Any]] | None = None
    edges: list[dict[str, Any]] | None = None
    name: str | None = None
