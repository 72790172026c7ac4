"""Marketer sessions. The gateways only need to know whether a valid one exists."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol


@dataclass(frozen=True)
class Session:
    user_id: str
    access_token: str
    expires_at: datetime | None = None

    def is_valid(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return (now or datetime.now(UTC)) < self.expires_at


class SessionProvider(Protocol):
    def get_session(self) -> Session | None:
        ...


class StaticSessionProvider:
    """Returns a fixed session (or none). Used per request by the HTTP layer and directly by tests."""

    def __init__(self, session: Session | None) -> None:
        self._session = session

    def get_session(self) -> Session | None:
        if self._session is None or not self._session.is_valid():
            return None
        return self._session


def session_for_api_key(api_key: str | None, expected_key: str) -> Session | None:
    """A request carrying the configured API key is treated as the authenticated marketer."""
    if not api_key or api_key != expected_key:
        return None
    return Session(user_id='api-key', access_token=api_key)
