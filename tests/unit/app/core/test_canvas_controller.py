import asyncio

import pytest

from campaign_studio.app.api.v1.endpoints.campaigns.models.catalog import Coupon, Product
from campaign_studio.app.api.v1.endpoints.campaigns.models.graph import ChannelNode, SegmentNode
from campaign_studio.app.api.v1.endpoints.campaigns.models.segment import SegmentCriteria
from campaign_studio.app.core.audience_estimator import AudienceEstimator, InMemoryAudienceSource
from campaign_studio.app.core.canvas_controller import MANUAL_PRODUCT_LABEL, CanvasController
from campaign_studio.app.core.errors import InvalidEdgeError, UnknownNodeKindError

PRODUCTS = [Product(id='p4', marketing_name='Talk More 100', type='Voice', price=3000)]
COUPONS = [Coupon(id='c1', name='Welcome 20%', value='20%')]


@pytest.fixture
def controller():
    return CanvasController(products=PRODUCTS, coupons=COUPONS)


def test_add_node_assigns_unique_ids_and_defaults(controller):
    ids = {controller.add_node('wait') for _ in range(20)}
    assert len(ids) == 20

    node_id = controller.add_node('segment')
    node = controller.get_node(node_id)
    assert isinstance(node, SegmentNode)
    assert node_id.startswith('segment-')
    assert node.data.label == 'Audience Segment'
    assert node.data.icon == 'users'
    assert node.position.y == 100 + 20 * 50


def test_add_node_with_initial_config(controller):
    node_id = controller.add_node('channel', {'selectedChannels': ['email']}, label='Promo blast')
    node = controller.get_node(node_id)
    assert node.data.label == 'Promo blast'
    assert node.data.selected_channels == ['email']


def test_add_node_rejects_unknown_kind(controller):
    with pytest.raises(UnknownNodeKindError):
        controller.add_node('webhook')
    assert controller.graph.nodes == []


def test_update_unknown_node_is_a_no_op(controller):
    controller.add_node('action')
    before = controller.snapshot()

    controller.update_node_config('missing', {'productId': 'p4'})

    assert controller.graph == before


def test_update_merges_shallowly(controller):
    node_id = controller.add_node('action', {'messageContent': 'Hello'})
    controller.update_node_config(node_id, {'landingPageUrl': 'https://x.test'})

    data = controller.get_node(node_id).data
    assert data.message_content == 'Hello'
    assert data.landing_page_url == 'https://x.test'


@pytest.mark.parametrize(
    'updates',
    [
        [{'productId': 'p4'}, {'couponId': 'c1'}, {'productId': 'p4'}],
        [{'couponId': 'c1'}, {'productId': 'p4'}],
        [{'productId': 'unknown-product'}],
        [{'couponId': 'c1'}, {'productId': 'p4', 'couponId': None}],
    ],
)
def test_selecting_a_product_clears_the_coupon(controller, updates):
    node_id = controller.add_node('action')
    for update in updates:
        controller.update_node_config(node_id, update)

    data = controller.get_node(node_id).data
    assert data.product_id is not None
    assert data.coupon_id is None
    assert data.coupon_name is None


def test_selecting_a_coupon_clears_the_product(controller):
    node_id = controller.add_node('action')
    controller.update_node_config(node_id, {'productId': 'p4'})
    controller.update_node_config(node_id, {'couponId': 'c1'})

    data = controller.get_node(node_id).data
    assert data.product_id is None
    assert data.product_name is None
    assert data.coupon_name == 'Welcome 20%'
    assert data.sub_label == 'Val: 20%'


def test_product_selection_derives_sub_label(controller):
    node_id = controller.add_node('action')
    controller.update_node_config(node_id, {'product_id': 'p4'})

    data = controller.get_node(node_id).data
    assert data.product_name == 'Talk More 100'
    assert data.sub_label == 'Voice • 3000 Ks'


def test_product_and_coupon_in_one_update_keeps_the_last(controller):
    node_id = controller.add_node('action')
    controller.update_node_config(node_id, {'productId': 'p4', 'couponId': 'c1'})

    data = controller.get_node(node_id).data
    assert data.product_id is None
    assert data.coupon_id == 'c1'


def test_manual_product_name_marks_physical_item(controller):
    node_id = controller.add_node('action')
    controller.update_node_config(node_id, {'productId': 'p4'})
    controller.update_node_config(node_id, {'productName': 'Branded umbrella'})

    data = controller.get_node(node_id).data
    assert data.product_id is None
    assert data.product_name == 'Branded umbrella'
    assert data.sub_label == MANUAL_PRODUCT_LABEL


def test_trigger_category_change_resets_defaults(controller):
    node_id = controller.add_node('trigger')
    controller.update_trigger_config(node_id, {'category': 'data'})
    controller.update_trigger_config(node_id, {'operator': '>', 'threshold': 900})

    config = controller.get_node(node_id).data.trigger_config
    assert (config.unit, config.threshold) == ('MB', 900)
    assert controller.get_node(node_id).data.sub_label == '> 900 MB'

    controller.update_trigger_config(node_id, {'category': 'topup'})
    config = controller.get_node(node_id).data.trigger_config
    assert (config.unit, config.threshold) == ('Ks', 1000)


def test_delete_node_cascades_edges_and_selection(controller):
    a = controller.add_node('segment')
    b = controller.add_node('action')
    c = controller.add_node('channel')
    controller.connect(a, b)
    controller.connect(b, c)
    controller.connect(a, c)
    controller.select(b)

    controller.delete_node(b)

    assert controller.get_node(b) is None
    assert all(b not in (edge.source, edge.target) for edge in controller.graph.edges)
    assert len(controller.graph.edges) == 1
    assert controller.selected_node_id is None


@pytest.mark.parametrize(('source', 'target'), [('missing', None), (None, 'missing'), ('missing', 'gone')])
def test_connect_requires_existing_nodes(controller, source, target):
    existing = controller.add_node('wait')

    with pytest.raises(InvalidEdgeError):
        controller.connect(source or existing, target or existing)
    assert controller.graph.edges == []


def test_logic_node_branches_share_a_source(controller):
    logic = controller.add_node('logic')
    yes = controller.add_node('channel')
    no = controller.add_node('wait')

    true_edge = controller.connect(logic, yes, 'true')
    false_edge = controller.connect(logic, no, 'false')

    assert true_edge == f'e{logic}-true-{yes}'
    assert false_edge == f'e{logic}-false-{no}'
    assert {edge.source_handle for edge in controller.graph.outgoing(logic)} == {'true', 'false'}

    with pytest.raises(InvalidEdgeError):
        controller.connect(logic, yes)


def test_connect_rejects_duplicates_and_drops_stray_handles(controller):
    a = controller.add_node('segment')
    b = controller.add_node('action')

    edge_id = controller.connect(a, b, 'true')
    assert controller.graph.edges[0].source_handle is None
    assert edge_id == f'e{a}-{b}'

    with pytest.raises(InvalidEdgeError):
        controller.connect(a, b)
    assert controller.disconnect(edge_id)
    assert not controller.disconnect(edge_id)


def test_selecting_a_channel_resets_the_content_tab(controller):
    channel = controller.add_node('channel', {'selectedChannels': ['email', 'sms']})
    controller.active_content_tab = 'push'

    controller.select(channel)

    assert isinstance(controller.selected_node, ChannelNode)
    assert controller.active_content_tab == 'email'

    controller.update_node_config(channel, {'selectedChannels': ['ussd']})
    assert controller.active_content_tab == 'ussd'


def test_select_unknown_id_clears_selection(controller):
    controller.select(controller.add_node('wait'))
    controller.select('missing')
    assert controller.selected_node is None


def test_node_accessors(controller):
    segment = controller.add_node('segment')

    assert isinstance(controller.get_node(segment), SegmentNode)
    assert controller.get_node('missing') is None
    assert controller.selected_node is None

    controller.select(segment)
    assert controller.selected_node is controller.get_node(segment)


def test_segment_edits_without_event_loop_skip_estimate(sessions):
    estimator = AudienceEstimator(InMemoryAudienceSource([{'tier': 'Gold'}]), sessions, debounce_seconds=0)
    controller = CanvasController(estimator=estimator)
    segment = controller.add_node('segment')

    controller.select(segment)
    controller.update_node_config(segment, {'segmentCriteria': {'tier': 'Gold'}})

    data = controller.get_node(segment).data
    assert data.segment_criteria.tier == 'Gold'
    assert data.audience_size is None
    assert not estimator.loading


def test_snapshot_is_detached(controller):
    node_id = controller.add_node('action')
    snapshot = controller.snapshot()

    controller.update_node_config(node_id, {'messageContent': 'changed'})

    assert snapshot.get_node(node_id).data.message_content is None


@pytest.mark.asyncio
async def test_selected_segment_writes_back_audience_size(sessions):
    profiles = [{'tier': 'Diamond'}, {'tier': 'Diamond'}, {'tier': 'Gold'}]
    estimator = AudienceEstimator(InMemoryAudienceSource(profiles), sessions, debounce_seconds=0)
    controller = CanvasController(estimator=estimator)
    segment = controller.add_node('segment')

    controller.select(segment)
    controller.update_node_config(segment, {'segmentCriteria': SegmentCriteria(tier='Diamond').model_dump()})
    await estimator.wait_idle()

    data = controller.get_node(segment).data
    assert data.audience_size == 2
    assert data.segment_criteria.tier == 'Diamond'


@pytest.mark.asyncio
async def test_unselected_segment_is_not_estimated(sessions):
    estimator = AudienceEstimator(InMemoryAudienceSource([{'tier': 'Gold'}]), sessions, debounce_seconds=0)
    controller = CanvasController(estimator=estimator)
    segment = controller.add_node('segment')

    controller.update_node_config(segment, {'segmentCriteria': {'tier': 'Gold'}})
    await asyncio.sleep(0)

    assert controller.get_node(segment).data.audience_size is None
