from datetime import UTC, datetime
from typing import Annotated, Literal, get_args

from pydantic import BaseModel, Field

RunStage = Literal['queued', 'sending', 'sent', 'clicked', 'converted', 'failed']
RUN_STAGES: tuple[str, ...] = get_args(RunStage)
TERMINAL_STAGES = frozenset({'converted', 'failed'})


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunEvent(BaseModel):
    """Progress of one simulated recipient.

    Events for different recipients may arrive in any order; events for one recipient always follow the lifecycle
    order.
    """

    stage: RunStage
    message: str
    recipient: str
    timestamp: Annotated[datetime, Field(default_factory=_utcnow)]
    follow_up: bool = False
    """True for the informational message emitted after a conversion (e.g. an upsell); not a stage change."""
    link: str | None = None
    """Magic link embedded in the message, when one was sent."""


class RunSummary(BaseModel):
    """Final stage per recipient once a run has settled."""

    campaign_id: str
    stages: Annotated[dict[str, RunStage], Field(default_factory=dict)]
    stopped: bool = False

    def converted(self) -> int:
        return sum(1 for stage in self.stages.values() if stage == 'converted')

    def failed(self) -> int:
        return sum(1 for stage in self.stages.values() if stage == 'failed')
