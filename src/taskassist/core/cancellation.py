"""
Cooperative cancellation for long-running session operations.

A Session owns one CancellationTokenSource and passes it by reference into
every Action. Operations check it before each step and again after every
awaited remote call; in-flight calls are never aborted, the next step is
simply skipped.
"""

from __future__ import annotations

import asyncio

import structlog

from taskassist.core.exceptions import OperationCancelledError

logger = structlog.get_logger()

CANCELLATION_MESSAGE = "The operation was cancelled."


class CancellationTokenSource:
    """A one-shot cancel signal shared between a Session and its states."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        """Fire the token. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason or "cancelled by user"
        self._event.set()
        logger.info("cancellation_requested", reason=self._reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(CANCELLATION_MESSAGE)

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for *seconds* unless the token fires first.

        Returns True if the token fired during (or before) the sleep.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True
