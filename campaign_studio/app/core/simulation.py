"""
Simulated multi-recipient runs of a campaign graph.

A run resolves its inputs once (segment, offer, optional channel content, recipients), makes sure the campaign is
durably saved, then drives one ``RecipientLifecycle`` per recipient as an independent task. Every stage change is
reported to the progress callback and appended to the run log.
"""

from __future__ import annotations

import asyncio
import inspect
import random
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Protocol
from urllib.parse import quote, urlencode

import structlog
from pydantic import BaseModel, Field

from ..api.v1.endpoints.campaigns.models.campaign import CampaignStatus, is_transient_id
from ..api.v1.endpoints.campaigns.models.graph import (
    ActionData,
    ActionNode,
    CampaignGraph,
    ChannelNode,
    WaitNode,
)
from ..api.v1.endpoints.campaigns.models.run_events import RunEvent, RunSummary
from ..converters.recipient_lifecycle import RecipientLifecycle
from .errors import ErrorKind, OperationError
from .persistence import DEMO_EMAILS_KEY, CampaignPersistence

logger = structlog.stdlib.get_logger('campaign-studio.simulation')

ProgressCallback = Callable[[RunEvent], Awaitable[None] | None]


class SimulationResult(BaseModel):
    campaign_id: str | None = None
    summary: RunSummary | None = None
    events: Annotated[list[RunEvent], Field(default_factory=list)]
    error: OperationError | None = None


class RecipientBehaviour(Protocol):
    """Decides how simulated recipients react and how long each step takes."""

    def delay(self) -> float:
        ...

    def delivery_fails(self, recipient: str) -> bool:
        ...

    def clicks(self, recipient: str) -> bool:
        ...


class RandomBehaviour:
    def __init__(
        self,
        min_latency: float = 0.2,
        max_latency: float = 1.0,
        failure_rate: float = 0.05,
        click_rate: float = 0.6,
        seed: int | None = None,
    ) -> None:
        self._min_latency = min_latency
        self._max_latency = max(min_latency, max_latency)
        self._failure_rate = failure_rate
        self._click_rate = click_rate
        self._random = random.Random(seed)  # noqa: S311 (simulation only)

    def delay(self) -> float:
        return self._random.uniform(self._min_latency, self._max_latency)

    def delivery_fails(self, recipient: str) -> bool:
        return self._random.random() < self._failure_rate

    def clicks(self, recipient: str) -> bool:
        return self._random.random() < self._click_rate


@dataclass(frozen=True)
class FollowUp:
    wait_seconds: float
    message: str


@dataclass(frozen=True)
class RunPlan:
    """Everything a run needs, resolved from the graph before any recipient starts."""

    offer: ActionData
    marketing_copy: str
    recipients: list[str]
    follow_up: FollowUp | None


def default_marketing_copy(offer_name: str) -> str:
    return f"Don't miss out on this exclusive offer: {offer_name}!"


def build_magic_link(base_url: str, campaign_id: str, recipient: str, offer: ActionData) -> str:
    product_id = offer.product_id or ''
    if offer.offer_id:
        query = urlencode({'campaignId': campaign_id, 'userId': recipient, 'productId': product_id})
        return f'{base_url}/offer/{quote(offer.offer_id)}?{query}'
    return f'{base_url}/campaign/{quote(campaign_id)}/{quote(recipient)}/{quote(product_id)}'


def resolve_follow_up(graph: CampaignGraph) -> FollowUp | None:
    """Upsell sent after a conversion: first channel -> wait -> next channel, offer taken upstream of it."""
    channel = graph.first_of_kind('channel')
    if channel is None:
        return None
    wait = graph.find_downstream(channel.id, 'wait')
    if not isinstance(wait, WaitNode):
        return None
    next_channel = graph.find_downstream(wait.id, 'channel')
    if not isinstance(next_channel, ChannelNode):
        return None

    text = next_channel.data.message_text()
    if text is None:
        upsell = graph.find_upstream(next_channel.id, 'action')
        offer_name = upsell.data.offer_name() if isinstance(upsell, ActionNode) else 'our latest offers'
        text = f'Thanks for your purchase! You might also like: {offer_name}'
    return FollowUp(wait_seconds=wait.data.duration_seconds(), message=text)


class SimulationRun:
    """A started run. ``stop`` cancels recipients still in flight; recorded stages are kept as they are."""

    def __init__(self, campaign_id: str | None, on_progress: ProgressCallback | None = None) -> None:
        self.campaign_id = campaign_id
        self.error: OperationError | None = None
        self.events: list[RunEvent] = []
        self.stages: dict[str, str] = {}
        self._on_progress = on_progress
        self._stopped = False
        self._tasks: list[asyncio.Task[None]] = []
        self._supervisor: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[RunEvent | None] = asyncio.Queue()

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def emit(self, event: RunEvent) -> None:
        if self._stopped:
            return
        if not event.follow_up:
            self.stages[event.recipient] = event.stage
        self.events.append(event)
        self._queue.put_nowait(event)
        if self._on_progress is None:
            return
        try:
            outcome = self._on_progress(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception('progress callback failed for %s', event.recipient)

    def _launch(self, coroutines: Sequence[Awaitable[None]]) -> None:
        self._tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
        self._supervisor = asyncio.ensure_future(self._supervise())

    async def _supervise(self) -> None:
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning('recipient task ended with an error: %s', result)
        self._queue.put_nowait(None)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for task in self._tasks:
            task.cancel()
        logger.info('simulation of campaign %s stopped', self.campaign_id)

    async def stream(self) -> AsyncIterator[RunEvent]:
        """Yield events as they are emitted until every recipient has finished or the run is stopped."""
        if self._supervisor is None:
            return
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def wait(self) -> SimulationResult:
        if self._supervisor is not None:
            await self._supervisor
        if self.error is not None:
            return SimulationResult(campaign_id=self.campaign_id, error=self.error)
        summary = RunSummary(campaign_id=self.campaign_id or '', stages=self.stages, stopped=self._stopped)
        if not self._stopped:
            logger.info(
                'simulation of campaign %s finished: %d converted, %d failed',
                self.campaign_id,
                summary.converted(),
                summary.failed(),
            )
        return SimulationResult(campaign_id=self.campaign_id, summary=summary, events=list(self.events))


class CampaignSimulator:
    def __init__(
        self,
        persistence: CampaignPersistence,
        behaviour: RecipientBehaviour,
        *,
        landing_base_url: str = 'http://localhost:5173',
        wait_scale: float = 0.0,
    ) -> None:
        self._persistence = persistence
        self._behaviour = behaviour
        self._landing_base_url = landing_base_url.rstrip('/')
        self._wait_scale = wait_scale

    async def _stored_recipients(self, campaign_id: str | None) -> list[str]:
        if is_transient_id(campaign_id):
            return []
        loaded = await self._persistence.load(campaign_id)
        stored = loaded.metadata.get(DEMO_EMAILS_KEY) if loaded.error is None else None
        return list(stored) if isinstance(stored, list) else []

    async def _plan(
        self, graph: CampaignGraph, campaign_id: str | None, recipients: Sequence[str] | None
    ) -> RunPlan | OperationError:
        if graph.first_of_kind('segment') is None:
            return OperationError(kind=ErrorKind.MISSING_SEGMENT, message='Add a segment node before simulating')

        offer = next(
            (
                node.data
                for node in graph.nodes
                if isinstance(node, ActionNode) and node.data.offer_reference()
            ),
            None,
        )
        if offer is None:
            return OperationError(
                kind=ErrorKind.MISSING_OFFER, message='Select an offer or product on an action node'
            )

        channel = graph.first_of_kind('channel')
        channel_copy = channel.data.message_text() if isinstance(channel, ChannelNode) else None

        if recipients is None:
            recipients = await self._stored_recipients(campaign_id)
        cleaned = list(dict.fromkeys(r.strip() for r in recipients if r and r.strip()))
        if not cleaned:
            return OperationError(kind=ErrorKind.VALIDATION_FAILURE, message='Add at least one demo recipient')

        return RunPlan(
            offer=offer,
            marketing_copy=channel_copy or default_marketing_copy(offer.offer_name()),
            recipients=cleaned,
            follow_up=resolve_follow_up(graph),
        )

    async def start(
        self,
        campaign_id: str | None,
        graph: CampaignGraph,
        recipients: Sequence[str] | None = None,
        *,
        name: str | None = None,
        status: CampaignStatus = 'draft',
        on_progress: ProgressCallback | None = None,
    ) -> SimulationRun:
        """Validate, save, and launch one task per recipient.

        A run that cannot start carries ``error`` and never emits an event.
        """
        snapshot = graph.model_copy(deep=True)
        run = SimulationRun(campaign_id, on_progress)

        plan = await self._plan(snapshot, campaign_id, recipients)
        if isinstance(plan, OperationError):
            logger.info('simulation aborted: %s', plan.message, kind=plan.kind.value)
            run.error = plan
            return run

        saved = await self._persistence.save_graph(
            campaign_id,
            snapshot,
            name=name,
            status=status,
            aux_metadata={DEMO_EMAILS_KEY: plan.recipients},
        )
        if saved.error is not None:
            logger.warning('simulation cannot start, save failed: %s', saved.error.message)
            run.error = OperationError(
                kind=ErrorKind.CANNOT_START, message=f'Campaign could not be saved: {saved.error.message}'
            )
            return run

        run.campaign_id = saved.id
        logger.info('simulating campaign %s for %d recipients', saved.id, len(plan.recipients))
        run._launch([self._drive(run, plan, recipient) for recipient in plan.recipients])
        return run

    async def simulate(
        self,
        campaign_id: str | None,
        graph: CampaignGraph,
        recipients: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> SimulationResult:
        run = await self.start(campaign_id, graph, recipients, **kwargs)
        return await run.wait()

    async def _pause(self) -> None:
        await asyncio.sleep(self._behaviour.delay())

    async def _drive(self, run: SimulationRun, plan: RunPlan, recipient: str) -> None:
        lifecycle = RecipientLifecycle(recipient)
        try:
            await self._advance(run, plan, lifecycle)
        except Exception as e:
            logger.warning('recipient %s failed: %s', recipient, e)
            await self._force_terminal(run, lifecycle, str(e))

    async def _advance(self, run: SimulationRun, plan: RunPlan, lifecycle: RecipientLifecycle) -> None:
        recipient = lifecycle.recipient
        link = build_magic_link(self._landing_base_url, run.campaign_id or '', recipient, plan.offer)

        await run.emit(RunEvent(stage='queued', message=f'Queued {recipient}', recipient=recipient))
        await self._pause()
        lifecycle.fire('dispatch')
        await run.emit(RunEvent(stage='sending', message=f'Sending email to {recipient}...', recipient=recipient))

        await self._pause()
        if self._behaviour.delivery_fails(recipient):
            lifecycle.fire('fail_send')
            logger.warning('delivery to %s failed', recipient)
            await run.emit(
                RunEvent(stage='failed', message=f'Failed to send email to {recipient}', recipient=recipient)
            )
            return
        lifecycle.fire('deliver')
        await run.emit(
            RunEvent(
                stage='sent',
                message=f'Email sent to {recipient}: {plan.marketing_copy}',
                recipient=recipient,
                link=link,
            )
        )

        await self._pause()
        if not self._behaviour.clicks(recipient):
            lifecycle.fire('fail_delivered')
            await run.emit(RunEvent(stage='failed', message=f'No engagement from {recipient}', recipient=recipient))
            return
        lifecycle.fire('click')
        await run.emit(RunEvent(stage='clicked', message=f'{recipient} clicked the link!', recipient=recipient))

        await self._pause()
        lifecycle.fire('convert')
        await run.emit(
            RunEvent(
                stage='converted',
                message=f'Conversion! {recipient} purchased {plan.offer.offer_name()}.',
                recipient=recipient,
            )
        )

        if plan.follow_up is not None:
            await asyncio.sleep(plan.follow_up.wait_seconds * self._wait_scale)
            await run.emit(
                RunEvent(
                    stage='converted',
                    message=f'Upsell sent to {recipient}: {plan.follow_up.message}',
                    recipient=recipient,
                    follow_up=True,
                )
            )

    async def _force_terminal(self, run: SimulationRun, lifecycle: RecipientLifecycle, reason: str) -> None:
        stage = lifecycle.stage
        if stage in ('converted', 'failed'):
            return
        if stage == 'clicked':
            lifecycle.fire('convert')
        else:
            if stage == 'idle':
                lifecycle.fire('dispatch')
            lifecycle.fire('fail_send' if lifecycle.stage == 'sending' else 'fail_delivered')
        await run.emit(
            RunEvent(
                stage=lifecycle.stage,
                message=f'{lifecycle.recipient}: {reason}',
                recipient=lifecycle.recipient,
            )
        )
