"""Open/closed state of the node palette, with a debounced close on pointer-leave."""

from __future__ import annotations

import asyncio
from typing import Literal

PaletteState = Literal['closed', 'open']


class PaletteMenu:
    """
    closed -> open on click or pointer-enter.
    open -> closed on click, outside click, or ``close_delay`` seconds after pointer-leave. Re-entering before
    the delay elapses cancels the pending close.
    """

    def __init__(self, close_delay: float = 0.3, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.close_delay = close_delay
        self.state: PaletteState = 'closed'
        self._loop = loop
        self._pending_close: asyncio.TimerHandle | None = None

    @property
    def is_open(self) -> bool:
        return self.state == 'open'

    @property
    def close_pending(self) -> bool:
        return self._pending_close is not None

    def _cancel_pending_close(self) -> None:
        if self._pending_close is not None:
            self._pending_close.cancel()
            self._pending_close = None

    def _close_now(self) -> None:
        self._pending_close = None
        self.state = 'closed'

    def click(self) -> None:
        self._cancel_pending_close()
        self.state = 'closed' if self.is_open else 'open'

    def pointer_enter(self) -> None:
        self._cancel_pending_close()
        self.state = 'open'

    def pointer_leave(self) -> None:
        if not self.is_open:
            return
        self._cancel_pending_close()
        loop = self._loop or asyncio.get_running_loop()
        self._pending_close = loop.call_later(self.close_delay, self._close_now)

    def outside_click(self) -> None:
        self._cancel_pending_close()
        self.state = 'closed'
