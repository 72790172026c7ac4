import uuid
from datetime import UTC, datetime

import pytest

from campaign_studio.app.api.v1.endpoints.campaigns.models.campaign import CampaignDocument, FlowDefinition
from campaign_studio.app.api.v1.endpoints.campaigns.models.graph import SegmentNode
from campaign_studio.app.core.errors import ErrorKind
from campaign_studio.app.core.persistence import CampaignPersistence, default_campaign_name, merge_metadata


class BrokenStore:
    def get_campaign(self, campaign_id):
        raise TimeoutError('database timed out')

    def insert_campaign(self, document):
        raise TimeoutError('database timed out')

    def list_campaigns(self, limit=50):
        raise TimeoutError('database timed out')


@pytest.mark.asyncio
async def test_save_then_load_round_trip(persistence, scenario_graph):
    saved = await persistence.save_graph(None, scenario_graph)

    assert saved.error is None
    uuid.UUID(saved.id)  # This will raise if not a valid UUID

    loaded = await persistence.load(saved.id)
    assert loaded.error is None
    assert len(loaded.graph.nodes) == 4
    assert len(loaded.graph.edges) == 3
    assert loaded.graph.get_node('channel-1').data.selected_channels == ['sms', 'email']
    assert loaded.status == 'draft'
    assert loaded.name.startswith('Campaign ')


@pytest.mark.asyncio
async def test_transient_id_creates_a_new_campaign(persistence, campaign_store, scenario_graph):
    saved = await persistence.save_graph('sim-1718000000', scenario_graph, name='Night owls')

    assert saved.id != 'sim-1718000000'
    assert campaign_store.get_campaign(saved.id).name == 'Night owls'


@pytest.mark.asyncio
async def test_blank_id_creates_a_new_campaign(persistence, campaign_store, scenario_graph):
    saved = await persistence.save_graph('', scenario_graph)

    assert saved.error is None
    assert uuid.UUID(saved.id)
    assert campaign_store.get_campaign(saved.id) is not None


@pytest.mark.asyncio
async def test_update_merges_metadata(persistence, campaign_store, scenario_graph):
    created = await persistence.save_graph(
        None, scenario_graph, name='Original', aux_metadata={'demoEmails': ['a@x.test'], 'theme': 'dark'}
    )

    scenario_graph.nodes.append(SegmentNode(id='segment-2'))
    updated = await persistence.save_graph(
        created.id, scenario_graph, status='active', aux_metadata={'demoEmails': ['b@x.test', '  ']}
    )

    assert updated.id == created.id
    stored = campaign_store.get_campaign(created.id)
    assert stored.name == 'Original'
    assert stored.status == 'active'
    assert stored.flow_definition.metadata == {'demoEmails': ['b@x.test'], 'theme': 'dark'}
    assert len(stored.flow_definition.nodes) == 5


@pytest.mark.asyncio
async def test_update_of_missing_campaign_is_not_found(persistence, scenario_graph):
    result = await persistence.save_graph('4b4b0cf9-0000-0000-0000-000000000000', scenario_graph)
    assert result.id is None
    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_load_missing_campaign(persistence):
    result = await persistence.load('missing')
    assert result.graph is None
    assert result.error.kind == ErrorKind.NOT_FOUND
    assert not persistence.loading


@pytest.mark.asyncio
async def test_operations_require_a_session(campaign_store, no_sessions, scenario_graph):
    persistence = CampaignPersistence(campaign_store, no_sessions)

    saved = await persistence.save_graph(None, scenario_graph)
    loaded = await persistence.load('anything')
    listed = await persistence.list_campaigns()

    assert saved.error.kind == ErrorKind.NOT_AUTHENTICATED
    assert loaded.error.kind == ErrorKind.NOT_AUTHENTICATED
    assert listed.campaigns == []
    assert listed.error.kind == ErrorKind.NOT_AUTHENTICATED
    assert campaign_store.list_campaigns() == []


@pytest.mark.asyncio
async def test_store_failures_become_transient_errors(sessions, scenario_graph):
    persistence = CampaignPersistence(BrokenStore(), sessions)

    saved = await persistence.save_graph(None, scenario_graph)
    loaded = await persistence.load('c1')
    listed = await persistence.list_campaigns()

    assert saved.error.kind == ErrorKind.TRANSIENT_IO_FAILURE
    assert saved.error.message == 'database timed out'
    assert loaded.error.kind == ErrorKind.TRANSIENT_IO_FAILURE
    assert listed.error.kind == ErrorKind.TRANSIENT_IO_FAILURE
    assert not persistence.saving


@pytest.mark.asyncio
async def test_load_tolerates_legacy_nodes(persistence, campaign_store):
    campaign_store.insert_campaign(
        CampaignDocument(
            id='legacy',
            name='Legacy',
            flow_definition=FlowDefinition(
                nodes=[
                    {'id': 'w', 'type': 'wait', 'data': {'icon': {'type': 'svg'}}},
                    {'id': 'x', 'type': 'unknown', 'data': {}},
                ],
                edges=[{'id': 'e', 'source': 'w', 'target': 'x'}],
            ),
        )
    )

    loaded = await persistence.load('legacy')

    assert [node.id for node in loaded.graph.nodes] == ['w']
    assert loaded.graph.nodes[0].data.icon == 'default'
    assert loaded.graph.edges == []


@pytest.mark.asyncio
async def test_list_campaigns_most_recent_first(persistence, scenario_graph):
    first = await persistence.save_graph(None, scenario_graph, name='First')
    second = await persistence.save_graph(None, scenario_graph, name='Second')
    await persistence.save_graph(first.id, scenario_graph)

    listed = await persistence.list_campaigns()

    assert [summary.id for summary in listed.campaigns] == [first.id, second.id]


def test_merge_metadata_overlays_and_cleans():
    merged = merge_metadata({'demoEmails': ['old@x.test'], 'keep': 1}, {'demoEmails': [' a@x.test ', '', None]})
    assert merged == {'demoEmails': ['a@x.test'], 'keep': 1}
    assert merge_metadata({'keep': 1}, None) == {'keep': 1}


def test_default_campaign_name():
    assert default_campaign_name(datetime(2026, 3, 9, 23, 59, tzinfo=UTC)) == 'Campaign 2026-03-09'
