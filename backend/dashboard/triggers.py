"""
Refresh triggers: the periodic timer and the wallet/network change feed.

Both are injected into the RefreshScheduler so it can be driven by hand in
tests and torn down explicitly in the app lifespan.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Protocol

import structlog

logger = structlog.get_logger()


class TriggerReason(str, Enum):
    """Why a fetch cycle was requested."""

    INITIAL = "initial"
    TIMER = "timer"
    ACCOUNT_CHANGED = "account_changed"
    NETWORK_CHANGED = "network_changed"
    MANUAL = "manual"


# Wallet provider event names → trigger reasons
CHANGE_EVENTS = {
    "accountsChanged": TriggerReason.ACCOUNT_CHANGED,
    "chainChanged": TriggerReason.NETWORK_CHANGED,
}

ChangeHandler = Callable[[TriggerReason], None]


class IntervalTimer(Protocol):
    def start(self, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...


class ChangeEventSource(Protocol):
    def subscribe(self, handler: ChangeHandler) -> None: ...

    def unsubscribe(self, handler: ChangeHandler) -> None: ...


class AsyncioIntervalTimer:
    """Calls `callback` every `interval_seconds` on the running event loop."""

    def __init__(self, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: Callable[[], None]) -> None:
        if self.running:
            raise RuntimeError("timer already started")
        self._task = asyncio.get_running_loop().create_task(self._run(callback))

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, callback: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                callback()
            except Exception:
                logger.error("timer.callback_failed", exc_info=True)


class LocalChangeEventSource:
    """
    In-process change feed.

    The wallet provider (or the webhook route that fronts it) calls
    emit("accountsChanged") / emit("chainChanged"); every subscribed
    handler receives the mapped TriggerReason.
    """

    def __init__(self) -> None:
        self._handlers: list[ChangeHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: ChangeHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: ChangeHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, event_name: str) -> int:
        """Deliver a change event; returns how many handlers received it."""
        reason = CHANGE_EVENTS.get(event_name)
        if reason is None:
            raise ValueError(f"Unknown change event: {event_name!r}. Expected one of {sorted(CHANGE_EVENTS)}")

        delivered = 0
        for handler in list(self._handlers):
            try:
                handler(reason)
                delivered += 1
            except Exception:
                logger.error("change_events.handler_failed", event_name=event_name, exc_info=True)
        logger.info("change_events.emitted", event_name=event_name, delivered=delivered)
        return delivered
