"""
Owner of the live campaign graph being edited.

All mutations of node configuration go through ``CanvasController``. Other components read a snapshot and may only
write derived display fields back through the dedicated methods (``apply_audience_size``).
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from ..api.v1.endpoints.campaigns.models.catalog import Coupon, Product
from ..api.v1.endpoints.campaigns.models.common import field_name_for
from ..api.v1.endpoints.campaigns.models.graph import (
    NODE_TYPES,
    ActionNode,
    BaseNode,
    CampaignEdge,
    CampaignGraph,
    ChannelNode,
    LogicNode,
    Position,
    SegmentNode,
    TriggerConfig,
    TriggerNode,
)
from ..api.v1.endpoints.campaigns.models.segment import SegmentCriteria
from .errors import InvalidEdgeError, UnknownNodeKindError

if TYPE_CHECKING:
    from .audience_estimator import AudienceEstimator

logger = structlog.stdlib.get_logger('campaign-studio.canvas')

# kind -> (label, icon) used when a node is dropped from the palette
NODE_DEFAULTS: dict[str, tuple[str, str]] = {
    'trigger': ('Event Trigger', 'zap'),
    'segment': ('Audience Segment', 'users'),
    'action': ('Offer / Action', 'gift'),
    'channel': ('Omni-Channel Blast', 'message-square'),
    'logic': ('Condition Split', 'split'),
    'wait': ('Wait Duration', 'clock'),
}

MANUAL_PRODUCT_LABEL = 'Physical Item'


class CanvasController:
    def __init__(
        self,
        graph: CampaignGraph | None = None,
        *,
        products: Iterable[Product] = (),
        coupons: Iterable[Coupon] = (),
        estimator: AudienceEstimator | None = None,
    ) -> None:
        self._graph = graph.model_copy(deep=True) if graph is not None else CampaignGraph()
        self._products: dict[str, Product] = {}
        self._coupons: dict[str, Coupon] = {}
        self.set_catalog(products, coupons)
        self._estimator = estimator
        self.selected_node_id: str | None = None
        self.active_content_tab: str = 'sms'

    # Reading
    # ------------------------------------------------------------------------

    @property
    def graph(self) -> CampaignGraph:
        """The live graph. Treat as read-only; mutate through the controller."""
        return self._graph

    def snapshot(self) -> CampaignGraph:
        """Deep copy for consumers that must not see (or cause) later edits."""
        return self._graph.model_copy(deep=True)

    def get_node(self, node_id: str) -> BaseNode | None:
        return self._graph.get_node(node_id)

    @property
    def selected_node(self) -> BaseNode | None:
        if self.selected_node_id is None:
            return None
        return self._graph.get_node(self.selected_node_id)

    def set_catalog(self, products: Iterable[Product], coupons: Iterable[Coupon]) -> None:
        self._products = {product.id: product for product in products}
        self._coupons = {coupon.id: coupon for coupon in coupons}

    # Nodes
    # ------------------------------------------------------------------------

    def _new_node_id(self, kind: str) -> str:
        existing = self._graph.node_ids()
        while True:
            node_id = f'{kind}-{uuid.uuid4().hex[:8]}'
            if node_id not in existing:
                return node_id

    def add_node(
        self,
        kind: str,
        initial_config: Mapping[str, Any] | None = None,
        *,
        label: str | None = None,
        icon: str | None = None,
        position: Position | None = None,
    ) -> str:
        """Append a node below the existing ones and return its id."""
        node_cls = NODE_TYPES.get(kind)
        if node_cls is None:
            msg = f'Unknown node kind: {kind}'
            raise UnknownNodeKindError(msg)

        default_label, default_icon = NODE_DEFAULTS[kind]
        data: dict[str, Any] = {'label': label or default_label, 'icon': icon or default_icon}
        data.update(initial_config or {})
        node_id = self._new_node_id(kind)
        node = node_cls.model_validate(
            {
                'id': node_id,
                'position': position or Position(x=100, y=100 + len(self._graph.nodes) * 50),
                'data': data,
            }
        )
        self._graph.nodes.append(node)
        logger.debug('added %s node %s', kind, node_id)
        return node_id

    def move_node(self, node_id: str, x: float, y: float) -> None:
        node = self._graph.get_node(node_id)
        if node is not None:
            node.position = Position(x=x, y=y)

    def update_node_config(self, node_id: str, partial_config: Mapping[str, Any]) -> None:
        """Shallow-merge ``partial_config`` into a node's data, then apply kind-specific side effects.

        Keys may use either the camelCase document names or the field names. Unknown node ids are ignored.
        """
        node = self._graph.get_node(node_id)
        if node is None:
            return

        data_cls = type(node.data)
        changes = {field_name_for(data_cls, key): value for key, value in partial_config.items()}
        merged = {**node.data.model_dump(), **changes}

        if isinstance(node, ActionNode):
            self._apply_offer_rules(changes, merged)

        previous_criteria = node.data.segment_criteria if isinstance(node, SegmentNode) else None
        node.data = data_cls.model_validate(merged)

        if isinstance(node, ChannelNode) and node_id == self.selected_node_id:
            if self.active_content_tab not in node.data.selected_channels:
                self.active_content_tab = node.data.first_channel()

        if isinstance(node, SegmentNode) and node.data.segment_criteria != previous_criteria:
            self._request_estimate(node)

    def _apply_offer_rules(self, changes: dict[str, Any], merged: dict[str, Any]) -> None:
        # processed in the order given, so the later of product/coupon wins when both are supplied
        for key, value in changes.items():
            if key == 'product_id' and value:
                merged['product_id'] = value
                merged['coupon_id'] = None
                merged['coupon_name'] = None
                product = self._products.get(value)
                if product is not None:
                    merged['product_name'] = product.marketing_name
                    merged['sub_label'] = product.sub_label()
            elif key == 'coupon_id' and value:
                merged['coupon_id'] = value
                merged['product_id'] = None
                merged['product_name'] = None
                coupon = self._coupons.get(value)
                if coupon is not None:
                    merged['coupon_name'] = coupon.name
                    merged['sub_label'] = coupon.sub_label()

        manual_name = changes.get('product_name')
        if manual_name and 'product_id' not in changes and 'coupon_id' not in changes:
            merged['product_id'] = None
            merged['coupon_id'] = None
            merged['coupon_name'] = None
            merged['sub_label'] = MANUAL_PRODUCT_LABEL

    def update_trigger_config(self, node_id: str, partial_config: Mapping[str, Any]) -> None:
        """Merge into a trigger's config. Changing the category resets unit and threshold to its defaults."""
        node = self._graph.get_node(node_id)
        if not isinstance(node, TriggerNode):
            return

        current = node.data.trigger_config or TriggerConfig()
        changes = {field_name_for(TriggerConfig, key): value for key, value in partial_config.items()}
        config = TriggerConfig.model_validate({**current.model_dump(), **changes})
        if 'category' in changes and changes['category'] != current.category:
            config = config.with_category(config.category)
        node.data = node.data.model_copy(update={'trigger_config': config, 'sub_label': config.summary()})

    def delete_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it."""
        self._graph.nodes = [node for node in self._graph.nodes if node.id != node_id]
        self._graph.edges = [
            edge for edge in self._graph.edges if edge.source != node_id and edge.target != node_id
        ]
        if self.selected_node_id == node_id:
            self.selected_node_id = None

    # Edges
    # ------------------------------------------------------------------------

    def connect(self, source: str, target: str, source_handle: str | None = None) -> str:
        """Create an edge and return its id.

        Raises:
            InvalidEdgeError: an endpoint does not exist, a logic source lacks a 'true'/'false' handle, or the same
                connection already exists
        """
        source_node = self._graph.get_node(source)
        if source_node is None or self._graph.get_node(target) is None:
            msg = f'cannot connect {source} -> {target}: both nodes must exist'
            raise InvalidEdgeError(msg)

        if isinstance(source_node, LogicNode):
            if source_handle not in ('true', 'false'):
                msg = f"edges leaving logic node {source} need a 'true' or 'false' handle"
                raise InvalidEdgeError(msg)
        elif source_handle is not None:
            source_handle = None

        for edge in self._graph.edges:
            if edge.source == source and edge.target == target and edge.source_handle == source_handle:
                msg = f'edge {source} -> {target} already exists'
                raise InvalidEdgeError(msg)

        edge_id = f'e{source}-{target}' if source_handle is None else f'e{source}-{source_handle}-{target}'
        existing = {edge.id for edge in self._graph.edges}
        suffix = 1
        candidate = edge_id
        while candidate in existing:
            suffix += 1
            candidate = f'{edge_id}-{suffix}'

        self._graph.edges.append(
            CampaignEdge(id=candidate, source=source, target=target, source_handle=source_handle)
        )
        return candidate

    def disconnect(self, edge_id: str) -> bool:
        before = len(self._graph.edges)
        self._graph.edges = [edge for edge in self._graph.edges if edge.id != edge_id]
        return len(self._graph.edges) != before

    # Selection
    # ------------------------------------------------------------------------

    def select(self, node_id: str | None) -> None:
        """Set the single active selection. Unknown ids clear it."""
        node = self._graph.get_node(node_id) if node_id is not None else None
        self.selected_node_id = node.id if node is not None else None

        if isinstance(node, ChannelNode):
            self.active_content_tab = node.data.first_channel()
        elif isinstance(node, SegmentNode):
            self._request_estimate(node)

    # Derived fields
    # ------------------------------------------------------------------------

    def apply_audience_size(self, node_id: str, count: int | None) -> None:
        """Write an estimate onto a segment's display cache. Configuration is never touched."""
        node = self._graph.get_node(node_id)
        if isinstance(node, SegmentNode):
            node.data.audience_size = count

    def _request_estimate(self, node: SegmentNode) -> None:
        if self._estimator is None or node.id != self.selected_node_id:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # synchronous callers keep the previous count
            logger.debug('no running event loop, skipping estimate for %s', node.id)
            return
        criteria: SegmentCriteria | None = node.data.segment_criteria
        self._estimator.request(node.id, criteria, self.apply_audience_size)
