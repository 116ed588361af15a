"""
Concurrency primitives: a bounded gate and a coalescing trigger.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class GateTicket:
    """Seat held in a ``ConcurrencyGate`` until released."""

    def __init__(self, gate: "ConcurrencyGate") -> None:
        self._gate = gate
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._gate._release()


class ConcurrencyGate:
    """Bound how many external lookups run at once.

    A limit of zero disables the bound. Waiters are not served in any
    guaranteed order.
    """

    def __init__(self, limit: int = 0) -> None:
        if limit < 0:
            raise ValueError(f"Concurrency limit must be >= 0, got {limit}")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit) if limit else None
        self.in_flight = 0
        self.peak = 0

    async def acquire(self) -> GateTicket:
        if self._semaphore is not None:
            await self._semaphore.acquire()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        return GateTicket(self)

    def _release(self) -> None:
        self.in_flight -= 1
        if self._semaphore is not None:
            self._semaphore.release()

    async def __aenter__(self) -> GateTicket:
        return await self.acquire()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._release()

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        ticket = await self.acquire()
        try:
            return await func(*args, **kwargs)
        finally:
            ticket.release()


class TriggerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PENDING = "running-with-pending"


class DebouncedTrigger:
    """Run ``work`` at most once at a time, coalescing calls made meanwhile.

    The first call made while idle runs after ``wait`` seconds. Calls made
    while a unit is running overwrite a single pending slot and return at
    once. After each unit completes the trigger sleeps ``delay`` seconds and
    then runs the pending call, if any, with the latest arguments.
    """

    def __init__(
        self,
        work: Callable[..., Awaitable[Any]],
        wait: float = 0.0,
        delay: float = 0.0,
    ) -> None:
        self.work = work
        self.wait = wait
        self.delay = delay
        self.state = TriggerState.IDLE
        self.runs = 0
        self._pending: Optional[Tuple[Tuple[Any, ...], Dict[str, Any]]] = None

    async def __call__(self, *args: Any, **kwargs: Any) -> None:
        if self.state is not TriggerState.IDLE:
            self._pending = (args, kwargs)
            self.state = TriggerState.PENDING
            return

        self.state = TriggerState.RUNNING
        call: Optional[Tuple[Tuple[Any, ...], Dict[str, Any]]] = (args, kwargs)
        try:
            if self.wait:
                await asyncio.sleep(self.wait)
            while call is not None:
                await self._run(*call)
                if self.delay:
                    await asyncio.sleep(self.delay)
                call, self._pending = self._pending, None
                self.state = TriggerState.RUNNING
        finally:
            self._pending = None
            self.state = TriggerState.IDLE

    async def _run(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        self.runs += 1
        try:
            await self.work(*args, **kwargs)
        except Exception as e:
            logger.error("Triggered work failed: %s", e, exc_info=True)
