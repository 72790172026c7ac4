"""
Pydantic models for the campaign graph drawn on the canvas.

Each node kind owns its own data model, and nodes form a discriminated union on ``kind``, so reading a trigger
threshold off a segment node is an attribute error rather than a silent None.
"""

import datetime
from typing import Annotated, Any, Literal, Self, get_args

from pydantic import Field, field_serializer, field_validator, model_validator

from .common import CanvasModel, OptionalFloat, OptionalStr
from .segment import SegmentCriteria

NodeKind = Literal['trigger', 'segment', 'action', 'channel', 'logic', 'wait']
NODE_KINDS: tuple[str, ...] = get_args(NodeKind)

ChannelKey = Literal['sms', 'email', 'chatbox', 'ussd', 'push', 'facebook', 'instagram', 'linkedin']
CHANNEL_KEYS: tuple[str, ...] = get_args(ChannelKey)

LogicHandle = Literal['true', 'false']
LOGIC_HANDLES: tuple[str, ...] = get_args(LogicHandle)

DEFAULT_ICON = 'default'
ICON_KEYS = frozenset(
    {
        'users',
        'wifi',
        'gift',
        'message-square',
        'clock',
        'split',
        'zap',
        'bell',
        'mail',
        'smartphone',
        'globe',
        'calendar',
        'phone',
        'message-circle',
        'rotate-ccw',
        DEFAULT_ICON,
    }
)


def normalize_icon(value: Any) -> str:
    """Icons are persisted as vocabulary keys only; anything else becomes the default icon."""
    if isinstance(value, str) and value in ICON_KEYS:
        return value
    return DEFAULT_ICON


class Position(CanvasModel):
    """Canvas coordinates. Layout only."""

    x: float = 0.0
    y: float = 0.0


class NodeData(CanvasModel):
    """Fields shared by every node kind.

    ``label``, ``sub_label`` and (on segments) ``audience_size`` are display caches recomputed by other
    components. They are never read back as inputs.
    """

    label: str = ''
    sub_label: str | None = None
    icon: str = DEFAULT_ICON

    @field_validator('icon', mode='before')
    @classmethod
    def _coerce_icon(cls, value: Any) -> str:
        return normalize_icon(value)

    @field_serializer('icon')
    def _serialize_icon(self, value: Any) -> str:
        return normalize_icon(value)


# Trigger
# ----------------------------------------------------------------------------

TriggerCategory = Literal['topup', 'data', 'voice', 'location', 'app', 'schedule']
NUMERIC_TRIGGER_CATEGORIES = frozenset({'topup', 'data', 'voice'})

TRIGGER_CATEGORY_DEFAULTS: dict[str, dict[str, Any]] = {
    'topup': {'unit': 'Ks', 'threshold': 1000},
    'data': {'unit': 'MB', 'threshold': 500},
    'voice': {'unit': 'Minutes', 'threshold': 10},
    'location': {'unit': 'km', 'radius': 5},
}


class TriggerConditionItem(CanvasModel):
    """One entry of a multi-condition trigger (e.g. data usage AND app opened)."""

    id: str
    category: Literal['topup', 'data', 'voice', 'location', 'app']
    operator: OptionalStr = None
    threshold: OptionalFloat = None
    unit: OptionalStr = None
    location_name: OptionalStr = None
    radius: OptionalFloat = None
    app_name: OptionalStr = None
    app_url: OptionalStr = None
    relation_to_next: Literal['AND', 'OR'] | None = None


class TriggerConfig(CanvasModel):
    """Event that starts the journey for a subscriber.

    Numeric categories (topup, data, voice) use operator/threshold/unit, location uses location_name/radius,
    app uses app_name/app_url. The schedule fields bound when the trigger is live.
    """

    category: TriggerCategory = 'topup'
    operator: OptionalStr = None
    threshold: OptionalFloat = None
    unit: OptionalStr = None
    location_name: OptionalStr = None
    radius: OptionalFloat = None
    app_name: OptionalStr = None
    app_url: OptionalStr = None
    conditions: Annotated[list[TriggerConditionItem], Field(default_factory=list)]

    schedule_type: Literal['specific', 'ongoing'] = 'ongoing'
    start_date: datetime.date | None = None
    end_date: datetime.date | None = None
    all_day: bool = True
    daily_time_start: datetime.time | None = None
    daily_time_end: datetime.time | None = None
    weekly_days: Annotated[list[str], Field(default_factory=list)]
    weekly_time_start: datetime.time | None = None
    weekly_time_end: datetime.time | None = None

    @field_validator(
        'start_date',
        'end_date',
        'daily_time_start',
        'daily_time_end',
        'weekly_time_start',
        'weekly_time_end',
        mode='before',
    )
    @classmethod
    def _blank_schedule(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def with_category(self, category: TriggerCategory) -> Self:
        """Switch category and reset unit/threshold to that category's defaults."""
        updates: dict[str, Any] = {'category': category}
        updates.update(TRIGGER_CATEGORY_DEFAULTS.get(category, {}))
        return self.model_copy(update=updates)

    def summary(self) -> str:
        if self.category == 'location':
            return f'Loc {self.location_name or "Any"} ({self.radius or 0:g}km)'
        if self.category == 'app':
            return f'App {self.app_name or "Any"}'
        if self.category == 'schedule':
            return f'Date {self.start_date or "?"} - {self.end_date or "?"}'
        threshold = '' if self.threshold is None else f'{self.threshold:g}'
        return ' '.join(part for part in (self.operator, threshold, self.unit) if part)


class TriggerData(NodeData):
    trigger_config: TriggerConfig | None = None


# Segment
# ----------------------------------------------------------------------------


class SegmentData(NodeData):
    base_segment: OptionalStr = None
    segment_criteria: SegmentCriteria | None = None
    audience_size: int | None = None
    """Cached estimate written by the audience estimator."""


# Action (offer)
# ----------------------------------------------------------------------------


class ActionData(NodeData):
    """Offer attached to the journey.

    A product and a coupon are mutually exclusive; the canvas controller clears one when the other is chosen.
    """

    action_type: Literal['marketing', 'info'] = 'marketing'
    offer_category: OptionalStr = None
    product_id: OptionalStr = None
    product_name: OptionalStr = None
    coupon_id: OptionalStr = None
    coupon_name: OptionalStr = None
    offer_id: OptionalStr = None
    landing_page_url: OptionalStr = None
    message_content: OptionalStr = None

    @model_validator(mode='after')
    def _product_xor_coupon(self) -> Self:
        if self.product_id and self.coupon_id:
            msg = 'an action node may reference a product or a coupon, not both'
            raise ValueError(msg)
        return self

    def offer_reference(self) -> str | None:
        return self.offer_id or self.product_id

    def offer_name(self) -> str:
        return self.product_name or self.coupon_name or 'Campaign Offer'


# Channel
# ----------------------------------------------------------------------------


class ChannelContent(CanvasModel):
    subject: OptionalStr = None
    text: OptionalStr = None
    image: OptionalStr = None
    action_label: OptionalStr = None
    action_url: OptionalStr = None
    ussd_menu: OptionalStr = None


class ChannelData(NodeData):
    """Multi-channel send. There is exactly one content block per selected channel."""

    selected_channels: Annotated[list[ChannelKey], Field(default_factory=list)]
    channel_content: Annotated[dict[ChannelKey, ChannelContent], Field(default_factory=dict)]
    ai_content_tone: OptionalStr = None

    @model_validator(mode='after')
    def _content_per_channel(self) -> Self:
        selected = list(dict.fromkeys(self.selected_channels))
        self.selected_channels = selected
        self.channel_content = {
            channel: self.channel_content.get(channel) or ChannelContent() for channel in selected
        }
        return self

    def first_channel(self) -> str:
        return self.selected_channels[0] if self.selected_channels else 'sms'

    def message_text(self) -> str | None:
        for channel in ('email', 'sms'):
            content = self.channel_content.get(channel)
            if content is not None and content.text:
                return content.text
        return None


# Logic
# ----------------------------------------------------------------------------


class LogicCondition(CanvasModel):
    id: str
    field: str
    operator: str
    value: str


class LogicBranch(CanvasModel):
    id: str
    label: str
    conditions: Annotated[list[LogicCondition], Field(default_factory=list)]


class LogicData(NodeData):
    """Branch evaluation. Outgoing edges use the 'true' and 'false' handles."""

    branches: Annotated[list[LogicBranch], Field(default_factory=list)]


# Wait
# ----------------------------------------------------------------------------

DurationUnit = Literal['minutes', 'hours', 'days', 'weeks']

_UNIT_SECONDS: dict[str, int] = {
    'minutes': 60,
    'hours': 60 * 60,
    'days': 24 * 60 * 60,
    'weeks': 7 * 24 * 60 * 60,
}
DEFAULT_WAIT_SECONDS = 3 * _UNIT_SECONDS['days']


class WaitData(NodeData):
    wait_type: Literal['duration', 'date'] | None = None
    duration_value: OptionalFloat = None
    duration_unit: DurationUnit | None = None
    fixed_date: datetime.datetime | None = None
    enable_window: bool = False
    window_start: datetime.time | None = None
    window_end: datetime.time | None = None

    @field_validator('fixed_date', 'window_start', 'window_end', mode='before')
    @classmethod
    def _blank_moment(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def duration_seconds(self) -> float:
        """Relative wait in seconds; three days when the node has no usable duration."""
        if self.duration_unit is None or self.duration_unit not in _UNIT_SECONDS:
            return float(DEFAULT_WAIT_SECONDS)
        return (self.duration_value or 0.0) * _UNIT_SECONDS[self.duration_unit]

    def display(self) -> str:
        if self.duration_value is None:
            return '3 days'
        return f'{self.duration_value:g} {self.duration_unit or "days"}'


# Nodes, edges and the graph
# ----------------------------------------------------------------------------


class BaseNode(CanvasModel):
    id: str
    position: Annotated[Position, Field(default_factory=Position)]


class TriggerNode(BaseNode):
    kind: Literal['trigger'] = 'trigger'
    data: Annotated[TriggerData, Field(default_factory=TriggerData)]


class SegmentNode(BaseNode):
    kind: Literal['segment'] = 'segment'
    data: Annotated[SegmentData, Field(default_factory=SegmentData)]


class ActionNode(BaseNode):
    kind: Literal['action'] = 'action'
    data: Annotated[ActionData, Field(default_factory=ActionData)]


class ChannelNode(BaseNode):
    kind: Literal['channel'] = 'channel'
    data: Annotated[ChannelData, Field(default_factory=ChannelData)]


class LogicNode(BaseNode):
    kind: Literal['logic'] = 'logic'
    data: Annotated[LogicData, Field(default_factory=LogicData)]


class WaitNode(BaseNode):
    kind: Literal['wait'] = 'wait'
    data: Annotated[WaitData, Field(default_factory=WaitData)]


CampaignNode = Annotated[
    TriggerNode | SegmentNode | ActionNode | ChannelNode | LogicNode | WaitNode,
    Field(discriminator='kind'),
]

NODE_TYPES: dict[str, type[BaseNode]] = {
    'trigger': TriggerNode,
    'segment': SegmentNode,
    'action': ActionNode,
    'channel': ChannelNode,
    'logic': LogicNode,
    'wait': WaitNode,
}


class CampaignEdge(CanvasModel):
    """Directed connection. ``source_handle`` is only used by logic nodes."""

    id: str
    source: str
    target: str
    source_handle: LogicHandle | None = None


class CampaignGraph(CanvasModel):
    """Nodes and edges of one campaign.

    Node ids are unique and stable, edge ids are unique, and every edge endpoint names an existing node.
    """

    nodes: Annotated[list[CampaignNode], Field(default_factory=list)]
    edges: Annotated[list[CampaignEdge], Field(default_factory=list)]

    @model_validator(mode='after')
    def _check_references(self) -> Self:
        errors = []
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            errors.append('node ids must be unique')
        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            errors.append('edge ids must be unique')
        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                errors.append(f'edge {edge.id} references a node that does not exist')

        if errors:
            raise ValueError('\n'.join(errors))
        return self

    def get_node(self, node_id: str) -> BaseNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes}

    def first_of_kind(self, kind: NodeKind) -> BaseNode | None:
        return next((node for node in self.nodes if node.kind == kind), None)

    def outgoing(self, node_id: str) -> list[CampaignEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming(self, node_id: str) -> list[CampaignEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def find_downstream(self, node_id: str, kind: NodeKind) -> BaseNode | None:
        """Depth-first search along outgoing edges for the nearest node of ``kind``."""
        return self._search(node_id, kind, downstream=True, seen={node_id})

    def find_upstream(self, node_id: str, kind: NodeKind) -> BaseNode | None:
        return self._search(node_id, kind, downstream=False, seen={node_id})

    def _search(self, node_id: str, kind: NodeKind, *, downstream: bool, seen: set[str]) -> BaseNode | None:
        edges = self.outgoing(node_id) if downstream else self.incoming(node_id)
        for edge in edges:
            neighbour_id = edge.target if downstream else edge.source
            if neighbour_id in seen:
                continue
            seen.add(neighbour_id)
            neighbour = self.get_node(neighbour_id)
            if neighbour is not None and neighbour.kind == kind:
                return neighbour
            found = self._search(neighbour_id, kind, downstream=downstream, seen=seen)
            if found is not None:
                return found
        return None


def is_unconfigured(node: BaseNode) -> bool:
    """True when a node is missing the configuration its kind requires.

    Channel nodes are never flagged; they fall back to default content.
    """
    if isinstance(node, ActionNode):
        data = node.data
        return not (data.offer_id or data.landing_page_url or data.message_content)
    if isinstance(node, LogicNode):
        return not node.data.branches
    if isinstance(node, WaitNode):
        return node.data.wait_type is None
    if isinstance(node, SegmentNode):
        return node.data.segment_criteria is None
    if isinstance(node, TriggerNode):
        return node.data.trigger_config is None
    return False
