"""Unit tests for the tab-keyed SessionManager."""

from __future__ import annotations

import pytest

from taskassist.core.constants import DEFAULT_RETRY_LIMIT
from taskassist.core.exceptions import SessionError
from taskassist.session.manager import SessionManager, SessionNotFoundError
from taskassist.session.session import Session


@pytest.fixture
def factory(service, packager, uploader, cleanup, sink):
    def _make(tab_id: str) -> Session:
        return Session(
            tab_id, service, packager, telemetry=sink, uploader=uploader, cleanup=cleanup
        )

    return _make


class TestRegistration:
    def test_register_and_get(self, factory) -> None:
        mgr = SessionManager()
        s = factory("tab-1")
        mgr.register(s)
        assert mgr.get("tab-1") is s
        assert mgr.get_or_none("tab-1") is s

    def test_duplicate_registration_rejected(self, factory) -> None:
        mgr = SessionManager()
        mgr.register(factory("tab-1"))
        with pytest.raises(ValueError, match="already registered"):
            mgr.register(factory("tab-1"))

    def test_unknown_tab(self) -> None:
        mgr = SessionManager()
        assert mgr.get_or_none("nope") is None
        with pytest.raises(SessionNotFoundError):
            mgr.get("nope")

    def test_not_found_is_a_session_error(self) -> None:
        assert issubclass(SessionNotFoundError, SessionError)


class TestRetries:
    def test_unknown_tab_gets_default_retry_limit(self) -> None:
        assert SessionManager().retries_for("gone") == DEFAULT_RETRY_LIMIT

    def test_registered_tab_reports_session_retries(self, factory) -> None:
        mgr = SessionManager()
        s = factory("tab-1")
        mgr.register(s)
        s.decrease_retries()
        assert mgr.retries_for("tab-1") == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_remove_closes_session(self, factory) -> None:
        mgr = SessionManager()
        s = factory("tab-1")
        mgr.register(s)

        removed = await mgr.remove("tab-1")

        assert removed is s
        assert s.is_closed
        assert mgr.get_or_none("tab-1") is None
        assert mgr.retries_for("tab-1") == DEFAULT_RETRY_LIMIT

    @pytest.mark.asyncio
    async def test_remove_unknown_is_noop(self) -> None:
        assert await SessionManager().remove("nope") is None

    @pytest.mark.asyncio
    async def test_restart_replaces_session(self, factory) -> None:
        mgr = SessionManager()
        old = factory("tab-1")
        mgr.register(old)
        await old.preloader("task")

        new = await mgr.restart("tab-1", factory)

        assert new is not old
        assert old.is_closed
        assert mgr.get("tab-1") is new
        assert new.conversation_id is None

    @pytest.mark.asyncio
    async def test_active_sessions_excludes_closed(self, factory) -> None:
        mgr = SessionManager()
        a, b = factory("a"), factory("b")
        mgr.register(a)
        mgr.register(b)
        await a.close()

        assert mgr.active_sessions() == [b]
        assert mgr.count_active() == 1
        assert list(mgr.all_sessions()) == [a, b]

    @pytest.mark.asyncio
    async def test_close_all(self, factory) -> None:
        mgr = SessionManager()
        sessions = [factory(t) for t in ("a", "b", "c")]
        for s in sessions:
            mgr.register(s)

        await mgr.close_all()

        assert all(s.is_closed for s in sessions)
        assert mgr.count_active() == 0

    def test_cancel_fires_session_token(self, factory) -> None:
        mgr = SessionManager()
        s = factory("tab-1")
        mgr.register(s)
        mgr.cancel("tab-1", "tab closed")
        assert s.token.is_cancellation_requested
        assert s.token.reason == "tab closed"
