from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class ScheduledTask:
    """One-shot callback handle. Cancelling is idempotent and safe after firing."""

    def __init__(self, delay: float, label: str = ""):
        self.delay = delay
        self.label = label
        self._cancelled = False
        self._fired = False
        self._handle: Any = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def attach(self, handle: Any) -> None:
        self._handle = handle

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        logger.debug("[timer-cancel] %s", self.label)
        return True

    def run(self, callback: Callable[..., Any], *args: Any) -> None:
        if not self.pending:
            return
        self._fired = True
        callback(*args)


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any, label: str = "") -> ScheduledTask:
        ...


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop via ``loop.call_later``."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any, label: str = "") -> ScheduledTask:
        task = ScheduledTask(delay, label)
        handle = self._get_loop().call_later(max(0.0, delay), task.run, callback, *args)
        task.attach(handle)
        return task
