"""
Session manager.

The SessionManager keeps one Session per UI tab. It is the single source of
truth for which conversation a tab is talking to.

Invariants:
  - Tab ids are unique within the registry.
  - Restarting a tab closes its old session before registering the new one.
  - Looking up retries for an unknown tab yields DEFAULT_RETRY_LIMIT, so a
    closed tab never gets a fresh retry budget.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import structlog

from taskassist.core.constants import DEFAULT_RETRY_LIMIT
from taskassist.core.exceptions import SessionError
from taskassist.session.session import Session

logger = structlog.get_logger()


class SessionNotFoundError(SessionError):
    """Raised when a tab_id is not in the registry."""


class SessionManager:
    """
    In-memory session registry keyed by tab id.

    Meant for single-threaded asyncio use; lookups do no I/O.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, session: Session) -> None:
        """Add a new session to the registry."""
        if session.tab_id in self._sessions:
            raise ValueError(f"Session for tab {session.tab_id!r} already registered")
        self._sessions[session.tab_id] = session
        logger.info("session_registered", tab_id=session.tab_id)

    def get(self, tab_id: str) -> Session:
        """Return the session; raise SessionNotFoundError if not found."""
        try:
            return self._sessions[tab_id]
        except KeyError:
            raise SessionNotFoundError(f"No session for tab {tab_id!r}") from None

    def get_or_none(self, tab_id: str) -> Session | None:
        return self._sessions.get(tab_id)

    async def remove(self, tab_id: str) -> Session | None:
        """Close and forget the tab's session. Unknown tabs are ignored."""
        session = self._sessions.pop(tab_id, None)
        if session is not None:
            await session.close()
            logger.info("session_removed", tab_id=tab_id)
        return session

    async def restart(self, tab_id: str, factory: Callable[[str], Session]) -> Session:
        """Replace the tab's session with a fresh one built by *factory*."""
        await self.remove(tab_id)
        session = factory(tab_id)
        self.register(session)
        return session

    async def close_all(self) -> None:
        for tab_id in list(self._sessions):
            await self.remove(tab_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all_sessions(self) -> Iterator[Session]:
        yield from self._sessions.values()

    def active_sessions(self) -> list[Session]:
        return [s for s in self._sessions.values() if not s.is_terminal]

    def count_active(self) -> int:
        return sum(1 for s in self._sessions.values() if not s.is_terminal)

    def retries_for(self, tab_id: str) -> int:
        session = self._sessions.get(tab_id)
        if session is None:
            return DEFAULT_RETRY_LIMIT
        return session.retries

    def cancel(self, tab_id: str, reason: str = "") -> None:
        """Cancel whatever the tab's session is doing."""
        self.get(tab_id).cancel(reason)
