import asyncio

import pytest

from campaign_studio.app.api.v1.endpoints.campaigns.models.segment import SegmentCriteria
from campaign_studio.app.core.audience_estimator import AudienceEstimator, InMemoryAudienceSource
from campaign_studio.app.core.errors import ErrorKind


class GatedSource:
    """Answers each tier query only once its gate is opened, so responses can be reordered."""

    def __init__(self, counts):
        self.counts = counts
        self.gates = {tier: asyncio.Event() for tier in counts}
        self.calls = []

    async def count(self, query):
        tier = query.groups[0][0].value
        self.calls.append(tier)
        await self.gates[tier].wait()
        return self.counts[tier]


class FailingSource:
    async def count(self, query):
        raise ConnectionError('profiles backend unreachable')


@pytest.mark.asyncio
async def test_last_issued_request_wins_even_when_answered_first(sessions):
    source = GatedSource({'Gold': 10, 'Diamond': 2})
    estimator = AudienceEstimator(source, sessions, debounce_seconds=0)
    written = {}

    def sink(node_id, count):
        written[node_id] = count

    first = estimator.request('segment-1', SegmentCriteria(tier='Gold'), sink)
    await asyncio.sleep(0)
    second = estimator.request('segment-1', SegmentCriteria(tier='Diamond'), sink)
    await asyncio.sleep(0)
    assert source.calls == ['Gold', 'Diamond']
    assert estimator.loading

    source.gates['Diamond'].set()
    await second
    assert written == {'segment-1': 2}

    source.gates['Gold'].set()
    await first
    assert written == {'segment-1': 2}
    assert not estimator.loading


@pytest.mark.asyncio
async def test_debounce_skips_superseded_requests(sessions):
    source = GatedSource({'Gold': 10, 'Silver': 4, 'Diamond': 2})
    for gate in source.gates.values():
        gate.set()
    estimator = AudienceEstimator(source, sessions, debounce_seconds=0.01)
    written = []

    for tier in ('Gold', 'Silver', 'Diamond'):
        estimator.request('segment-1', SegmentCriteria(tier=tier), lambda _node, count: written.append(count))
    await estimator.wait_idle()

    assert source.calls == ['Diamond']
    assert written == [2]


@pytest.mark.asyncio
async def test_empty_criteria_skip_the_backend(sessions):
    source = GatedSource({})
    estimator = AudienceEstimator(source, sessions)

    result = await estimator.estimate(SegmentCriteria(gender='All'))

    assert result.count is None
    assert result.error is None
    assert source.calls == []


@pytest.mark.asyncio
async def test_estimate_counts_matching_profiles(sessions):
    source = InMemoryAudienceSource([{'tier': 'Gold'}, {'tier': 'Gold'}, {'tier': 'Silver'}])
    result = await AudienceEstimator(source, sessions).estimate(SegmentCriteria(tier='Gold'))
    assert result.count == 2


@pytest.mark.asyncio
async def test_estimate_requires_a_session(no_sessions):
    result = await AudienceEstimator(InMemoryAudienceSource(), no_sessions).estimate(SegmentCriteria(tier='Gold'))
    assert result.count is None
    assert result.error.kind == ErrorKind.NOT_AUTHENTICATED


@pytest.mark.asyncio
async def test_backend_failure_leaves_count_unset(sessions):
    estimator = AudienceEstimator(FailingSource(), sessions, debounce_seconds=0)
    written = {}

    result = await estimator.estimate(SegmentCriteria(tier='Gold'))
    await estimator.request('segment-1', SegmentCriteria(tier='Gold'), written.__setitem__)

    assert result.count is None
    assert result.error.kind == ErrorKind.TRANSIENT_IO_FAILURE
    assert 'unreachable' in result.error.message
    assert written == {'segment-1': None}
