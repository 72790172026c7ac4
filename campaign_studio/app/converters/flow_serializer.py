"""
Converters between the in-memory campaign graph and the persisted flow definition.

Nodes serialize as ``{id, kind, position: {x, y}, data: {label, subLabel?, icon, ...}}``. Icons always come out
as a key from the icon vocabulary, whatever the node held in memory.
"""

from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from ..api.v1.endpoints.campaigns.models.graph import CampaignEdge, CampaignGraph, CampaignNode, normalize_icon

logger = structlog.stdlib.get_logger('campaign-studio.flow_serializer')

_node_adapter: TypeAdapter[Any] = TypeAdapter(CampaignNode)

DISPLAY_FIELDS = frozenset({'label', 'subLabel', 'audienceSize'})


def serialize_node(node: Any) -> dict[str, Any]:
    payload = node.model_dump(by_alias=True, exclude_none=True, mode='json')
    payload['data']['icon'] = normalize_icon(payload['data'].get('icon'))
    return payload


def serialize_edge(edge: CampaignEdge) -> dict[str, Any]:
    return edge.model_dump(by_alias=True, exclude_none=True, mode='json')


def serialize_graph(graph: CampaignGraph) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Return ``(nodes, edges)`` ready to be embedded in a flow definition."""
    return [serialize_node(node) for node in graph.nodes], [serialize_edge(edge) for edge in graph.edges]


def deserialize_node(raw: dict[str, Any]) -> Any:
    """Validate one stored node.

    Documents written by older editors carry ``type`` instead of ``kind`` and may hold a non-string icon.
    """
    payload = dict(raw)
    if 'kind' not in payload and 'type' in payload:
        payload['kind'] = payload.pop('type')
    data = dict(payload.get('data') or {})
    data['icon'] = normalize_icon(data.get('icon'))
    payload['data'] = data
    return _node_adapter.validate_python(payload)


def deserialize_graph(nodes: list[dict[str, Any]], edges: list[dict[str, Any]]) -> CampaignGraph:
    """Build a graph from stored nodes and edges.

    Nodes that fail validation are skipped with a warning, and edges left dangling by a skipped node are dropped,
    so one bad node never makes a whole campaign unloadable.
    """
    parsed_nodes = []
    seen_ids: set[str] = set()
    for raw in nodes:
        try:
            node = deserialize_node(raw)
        except ValidationError as e:
            logger.warning('skipping invalid node %s: %s', raw.get('id'), e.errors(include_url=False))
            continue
        if node.id in seen_ids:
            logger.warning('skipping duplicate node id %s', node.id)
            continue
        seen_ids.add(node.id)
        parsed_nodes.append(node)

    parsed_edges = []
    seen_edges: set[str] = set()
    for raw in edges:
        try:
            edge = CampaignEdge.model_validate(raw)
        except ValidationError as e:
            logger.warning('skipping invalid edge %s: %s', raw.get('id'), e.errors(include_url=False))
            continue
        if edge.source not in seen_ids or edge.target not in seen_ids or edge.id in seen_edges:
            logger.warning('dropping dangling or duplicate edge %s', edge.id)
            continue
        seen_edges.add(edge.id)
        parsed_edges.append(edge)

    return CampaignGraph(nodes=parsed_nodes, edges=parsed_edges)


def strip_display_fields(node_payload: dict[str, Any]) -> dict[str, Any]:
    """Drop cached display values from a serialized node, leaving only its configuration."""
    data = {key: value for key, value in node_payload.get('data', {}).items() if key not in DISPLAY_FIELDS}
    return {**node_payload, 'data': data}


def parse_graph(nodes: list[dict[str, Any]], edges: list[dict[str, Any]]) -> CampaignGraph:
    """Strict counterpart of ``deserialize_graph`` for graphs submitted by a client.

    Raises:
        ValidationError: a node or edge is invalid, or an edge references a node that is not in ``nodes``
    """
    return CampaignGraph(
        nodes=[deserialize_node(raw) for raw in nodes],
        edges=[CampaignEdge.model_validate(raw) for raw in edges],
    )
