"""
Reachable-audience estimates for segment nodes.

``AudienceEstimator.request`` is the debounced path used while a segment is being edited: every request gets a
monotonically increasing sequence number and only the result of the latest request is ever written back, no matter
in which order the backend answers. ``AudienceEstimator.estimate`` is the direct, undebounced lookup.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import structlog
from pydantic import BaseModel

from ..api.v1.endpoints.campaigns.models.segment import SegmentCriteria
from .audience_query import AudienceQuery, build_audience_query
from .errors import ErrorKind, OperationError
from .session import SessionProvider

logger = structlog.stdlib.get_logger('campaign-studio.audience_estimator')


class AudienceEstimate(BaseModel):
    count: int | None = None
    """None when the criteria have no meaningful values or the lookup failed."""
    loading: bool = False
    error: OperationError | None = None


class AudienceSource(Protocol):
    async def count(self, query: AudienceQuery) -> int:
        ...


class InMemoryAudienceSource:
    """Counts matching profiles held in memory. Profiles are plain dicts using the profile column names."""

    def __init__(self, profiles: Iterable[dict[str, Any]] = ()) -> None:
        self._profiles = list(profiles)

    def add_profiles(self, profiles: Iterable[dict[str, Any]]) -> None:
        self._profiles.extend(profiles)

    async def count(self, query: AudienceQuery) -> int:
        if query.matches_nothing():
            return 0
        return sum(1 for profile in self._profiles if query.matches(profile))


class MongoAudienceSource:
    """Counts matching documents in a ``profiles`` collection."""

    def __init__(self, client: Any, db_name: str = 'campaign_studio', collection: str = 'profiles') -> None:
        self._collection = client[db_name][collection]

    async def count(self, query: AudienceQuery) -> int:
        if query.matches_nothing():
            return 0
        return await asyncio.to_thread(self._collection.count_documents, query.to_mongo_filter())


ResultSink = Callable[[str, int | None], None]


class AudienceEstimator:
    def __init__(
        self,
        source: AudienceSource,
        sessions: SessionProvider,
        debounce_seconds: float = 0.5,
    ) -> None:
        self._source = source
        self._sessions = sessions
        self._debounce_seconds = debounce_seconds
        self._sequence = itertools.count(1)
        self._latest = 0
        self._applied = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def loading(self) -> bool:
        """True while the most recent request has not resolved yet."""
        return self._applied < self._latest

    async def estimate(self, criteria: SegmentCriteria | None) -> AudienceEstimate:
        if criteria is None or not criteria.has_criteria():
            return AudienceEstimate()
        if self._sessions.get_session() is None:
            return AudienceEstimate(
                error=OperationError(kind=ErrorKind.NOT_AUTHENTICATED, message='User not authenticated')
            )

        query = build_audience_query(criteria)
        try:
            count = await self._source.count(query)
        except Exception as e:
            logger.warning('audience estimate failed: %s', e)
            return AudienceEstimate(
                error=OperationError(kind=ErrorKind.TRANSIENT_IO_FAILURE, message=str(e))
            )
        return AudienceEstimate(count=count)

    def request(self, node_id: str, criteria: SegmentCriteria | None, sink: ResultSink) -> asyncio.Task[None]:
        """Schedule a debounced estimate whose count is passed to ``sink(node_id, count)``.

        Must be called from a running event loop. Results of superseded requests are dropped.
        """
        seq = next(self._sequence)
        self._latest = seq
        task = asyncio.get_running_loop().create_task(self._run(seq, node_id, criteria, sink))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, seq: int, node_id: str, criteria: SegmentCriteria | None, sink: ResultSink) -> None:
        if self._debounce_seconds > 0:
            await asyncio.sleep(self._debounce_seconds)
        if seq != self._latest:
            logger.debug('estimate %s superseded during debounce', seq)
            return

        result = await self.estimate(criteria)

        if seq != self._latest:
            logger.debug('discarding stale estimate %s for node %s (latest is %s)', seq, node_id, self._latest)
            return
        self._applied = seq
        sink(node_id, result.count)

    async def wait_idle(self) -> None:
        """Wait for every scheduled request to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
