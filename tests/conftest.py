import pytest
from fastapi.testclient import TestClient

from campaign_studio.app.api.v1.endpoints.campaigns.models.graph import (
    ActionData,
    ActionNode,
    CampaignEdge,
    CampaignGraph,
    ChannelContent,
    ChannelData,
    ChannelNode,
    SegmentData,
    SegmentNode,
    TriggerConfig,
    TriggerData,
    TriggerNode,
)
from campaign_studio.app.api.v1.endpoints.campaigns.models.segment import SegmentCriteria
from campaign_studio.app.core.audience_estimator import InMemoryAudienceSource
from campaign_studio.app.core.catalog import InMemoryCatalogStore
from campaign_studio.app.core.environment import settings
from campaign_studio.app.core.persistence import CampaignPersistence
from campaign_studio.app.core.repository import InMemoryCampaignStore
from campaign_studio.app.core.services import Services, demo_profiles
from campaign_studio.app.core.session import Session, StaticSessionProvider
from campaign_studio.app.main import app


class ScriptedBehaviour:
    """Zero-latency recipient behaviour with fixed outcomes per recipient."""

    def __init__(self, fail=(), no_click=(), latency=0.0):
        self.fail = set(fail)
        self.no_click = set(no_click)
        self.latency = latency

    def delay(self):
        return self.latency

    def delivery_fails(self, recipient):
        return recipient in self.fail

    def clicks(self, recipient):
        return recipient not in self.no_click


@pytest.fixture
def scripted_behaviour():
    """Factory for deterministic recipient behaviours."""
    return ScriptedBehaviour


@pytest.fixture
def sessions():
    """Session provider holding a valid marketer session."""
    return StaticSessionProvider(Session(user_id='tester', access_token='token'))


@pytest.fixture
def no_sessions():
    """Session provider for a signed-out marketer."""
    return StaticSessionProvider(None)


@pytest.fixture
def campaign_store():
    return InMemoryCampaignStore()


@pytest.fixture
def persistence(campaign_store, sessions):
    return CampaignPersistence(campaign_store, sessions)


@pytest.fixture
def services(campaign_store):
    """Application wiring backed by in-memory stores and a zero-latency behaviour."""
    return Services(
        campaign_store=campaign_store,
        catalog_store=InMemoryCatalogStore(),
        audience_source=InMemoryAudienceSource(demo_profiles()),
        behaviour_factory=ScriptedBehaviour,
        landing_base_url='http://landing.test',
        wait_scale=0.0,
        debounce_seconds=0.0,
    )


@pytest.fixture
def client(services):
    """FastAPI test client with the in-memory wiring installed."""
    # lifespan does not run without a context manager, so install the wiring directly
    app.state.services = services
    return TestClient(app)


@pytest.fixture
def valid_api_key():
    """Valid API key for testing."""
    return settings.API_KEY


@pytest.fixture
def invalid_api_key():
    """Invalid API key for testing."""
    return 'invalid_key'


@pytest.fixture
def scenario_graph():
    """segment(tier=Diamond) -> trigger(data > 900 MB) -> action(productId=p4) -> channel(sms, email)."""
    return CampaignGraph(
        nodes=[
            SegmentNode(
                id='segment-1',
                data=SegmentData(
                    label='Diamond subscribers',
                    icon='users',
                    segment_criteria=SegmentCriteria(tier='Diamond'),
                ),
            ),
            TriggerNode(
                id='trigger-1',
                data=TriggerData(
                    label='Heavy data usage',
                    icon='wifi',
                    trigger_config=TriggerConfig(category='data', operator='>', threshold=900, unit='MB'),
                ),
            ),
            ActionNode(
                id='action-1',
                data=ActionData(label='Offer', icon='gift', product_id='p4', product_name='Talk More 100'),
            ),
            ChannelNode(
                id='channel-1',
                data=ChannelData(
                    label='Blast',
                    icon='message-square',
                    selected_channels=['sms', 'email'],
                    channel_content={
                        'sms': ChannelContent(text='Talk more for less'),
                        'email': ChannelContent(subject='Your offer', text='Talk More 100 is waiting for you'),
                    },
                ),
            ),
        ],
        edges=[
            CampaignEdge(id='e1', source='segment-1', target='trigger-1'),
            CampaignEdge(id='e2', source='trigger-1', target='action-1'),
            CampaignEdge(id='e3', source='action-1', target='channel-1'),
        ],
    )
