"""Campaign persistence and simulation endpoints used by the canvas."""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from .....converters.flow_serializer import parse_graph, serialize_graph
from .....core.log_config import logger
from .....core.services import Services
from .....core.session import StaticSessionProvider
from ...dependencies import get_services, get_sessions, raise_for
from .models.campaign import (
    CampaignSummary,
    LoadCampaignResponse,
    SaveCampaignRequest,
    SaveCampaignResponse,
    SimulateCampaignRequest,
)
from .models.graph import CampaignGraph
from .models.run_events import RunEvent

router = APIRouter()


def _graph_from_payload(nodes: list[dict], edges: list[dict]) -> CampaignGraph:
    try:
        return parse_graph(nodes, edges)
    except ValidationError as e:
        # graph-level errors carry the half-built model as input, which is not JSON serializable
        detail = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=detail) from e


@router.get(
    '',
    description='List campaigns, most recently updated first',
    response_description='campaign summaries; empty if the caller is not authenticated',
)
async def list_campaigns(
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[CampaignSummary]:
    result = await services.persistence(sessions).list_campaigns(limit)
    return result.campaigns


@router.get(
    '/{campaign_id}',
    description='Load a campaign flow definition',
)
async def get_campaign(
    campaign_id: str,
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> LoadCampaignResponse:
    result = await services.persistence(sessions).load(campaign_id)
    if result.error is not None:
        raise_for(result.error)
    nodes, edges = serialize_graph(result.graph)
    return LoadCampaignResponse(
        id=campaign_id,
        name=result.name,
        status=result.status,
        nodes=nodes,
        edges=edges,
        metadata=result.metadata,
    )


@router.post(
    '',
    description='Save a campaign. A missing, blank or transient (sim-) id creates a new campaign.',
    response_description='the durable id of the saved campaign',
)
async def save_campaign(
    body: Annotated[SaveCampaignRequest, Body(media_type='application/json')],
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
) -> SaveCampaignResponse:
    graph = _graph_from_payload(body.nodes, body.edges)
    result = await services.persistence(sessions).save_graph(
        body.id, graph, name=body.name, status=body.status, aux_metadata=body.metadata
    )
    if result.error is not None:
        raise_for(result.error)
    return SaveCampaignResponse(id=result.id)


@router.post(
    '/{campaign_id}/simulate',
    description='Simulate a campaign run; progress is streamed as server-sent events',
    response_description='"run" events per recipient stage change, then one "summary" event',
    response_model=RunEvent,
)
async def simulate_campaign(
    campaign_id: str,
    body: Annotated[SimulateCampaignRequest, Body(media_type='application/json')],
    services: Annotated[Services, Depends(get_services)],
    sessions: Annotated[StaticSessionProvider, Depends(get_sessions)],
):
    name = body.name
    if body.nodes is None:
        loaded = await services.persistence(sessions).load(campaign_id)
        if loaded.error is not None:
            raise_for(loaded.error)
        graph = loaded.graph
        name = name or loaded.name
    else:
        graph = _graph_from_payload(body.nodes, body.edges or [])

    run = await services.simulator(sessions).start(campaign_id, graph, body.recipients, name=name)
    if run.error is not None:
        raise_for(run.error)

    async def event_publisher():
        try:
            async for event in run.stream():
                yield {'event': 'run', 'data': event.model_dump_json()}
            result = await run.wait()
            if result.summary is not None:
                yield {'event': 'summary', 'data': result.summary.model_dump_json()}
        except asyncio.CancelledError as e:
            logger.info('client disconnected %s', e)
            run.stop()
            raise

    return EventSourceResponse(event_publisher(), headers={'X-Campaign-Id': run.campaign_id or ''})
