"""
Concurrency gate for extractions sharing the remote browser connection.

Design:
- At most max_slots slots are granted-but-unreleased at any time
- Waiters are served strictly in arrival order: a released slot is handed
  directly to the earliest live waiter, so a later arrival can never take it
- The waiting queue is bounded by max_waiters; an optional acquire_timeout
  bounds how long a waiter stays queued. Both raise GateOverloadedError
- Release is guaranteed by the slot() context manager on every exit path
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from pgnfetch.errors import GateOverloadedError
from pgnfetch.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Slot:
    """A granted concurrency permit."""

    slot_id: int
    requested_at: float
    granted_at: float
    released: bool = False

    @property
    def waited_seconds(self) -> float:
        return self.granted_at - self.requested_at


@dataclass(eq=False)
class _Waiter:
    future: asyncio.Future[Slot]
    requested_at: float = field(default_factory=time.monotonic)


class ConcurrencyGate:
    """FIFO admission control for browser work.

    Example:
        gate = ConcurrencyGate(max_slots=3)
        async with gate.slot():
            ...  # at most 3 coroutines run this block at once

    Args:
        max_slots: Maximum concurrent slots.
        max_waiters: Maximum queued acquisitions (None = unbounded, 0 = no queue).
        acquire_timeout: Maximum seconds to wait in the queue (None = wait forever).
    """

    def __init__(
        self,
        max_slots: int = 3,
        *,
        max_waiters: int | None = 16,
        acquire_timeout: float | None = None,
    ) -> None:
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")
        if max_waiters is not None and max_waiters < 0:
            raise ValueError("max_waiters must be non-negative")
        if acquire_timeout is not None and acquire_timeout <= 0:
            raise ValueError("acquire_timeout must be positive")

        self._max_slots = max_slots
        self._max_waiters = max_waiters
        self._acquire_timeout = acquire_timeout
        self._active: set[int] = set()
        self._waiters: deque[_Waiter] = deque()
        self._ids = itertools.count(1)
        self._granted_total = 0
        self._rejected_total = 0

        logger.debug(
            "ConcurrencyGate initialized",
            max_slots=max_slots,
            max_waiters=max_waiters,
            acquire_timeout=acquire_timeout,
        )

    def _new_slot(self, requested_at: float) -> Slot:
        slot = Slot(
            slot_id=next(self._ids),
            requested_at=requested_at,
            granted_at=time.monotonic(),
        )
        self._active.add(slot.slot_id)
        self._granted_total += 1
        return slot

    def _reject(self, reason: str) -> GateOverloadedError:
        self._rejected_total += 1
        logger.warning(
            "Concurrency gate rejected request",
            reason=reason,
            in_flight=self.in_flight,
            waiting=self.waiting,
        )
        return GateOverloadedError(
            reason,
            waiting=self.waiting,
            max_waiters=self._max_waiters if self._max_waiters is not None else -1,
        )

    def _discard(self, waiter: _Waiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    async def acquire(self) -> Slot:
        """Acquire a slot, waiting in FIFO order if none is free.

        Returns:
            The granted Slot. Pass it to release() exactly once.

        Raises:
            GateOverloadedError: If the queue is full or acquire_timeout elapsed.
        """
        requested_at = time.monotonic()

        if self.in_flight < self._max_slots and not self.waiting:
            return self._new_slot(requested_at)

        if self._max_waiters is not None and self.waiting >= self._max_waiters:
            raise self._reject("queue_full")

        waiter = _Waiter(asyncio.get_running_loop().create_future(), requested_at)
        self._waiters.append(waiter)
        logger.debug(
            "Waiting for browser slot",
            in_flight=self.in_flight,
            waiting=self.waiting,
        )

        try:
            if self._acquire_timeout is None:
                return await waiter.future
            return await asyncio.wait_for(asyncio.shield(waiter.future), self._acquire_timeout)
        except TimeoutError:
            if waiter.future.done() and not waiter.future.cancelled():
                # Granted at the same moment the timer fired
                return waiter.future.result()
            waiter.future.cancel()
            self._discard(waiter)
            raise self._reject("acquire_timeout") from None
        except asyncio.CancelledError:
            if waiter.future.done() and not waiter.future.cancelled():
                # Slot was handed over but the caller is gone; pass it on
                self.release(waiter.future.result())
            else:
                waiter.future.cancel()
                self._discard(waiter)
            raise

    def release(self, slot: Slot) -> None:
        """Release a slot.

        Hands the slot to the earliest live waiter if there is one.

        Raises:
            RuntimeError: If the slot was already released or is unknown.
        """
        if slot.released or slot.slot_id not in self._active:
            raise RuntimeError(f"Slot {slot.slot_id} already released")

        slot.released = True
        self._active.discard(slot.slot_id)

        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.future.done():
                continue
            waiter.future.set_result(self._new_slot(waiter.requested_at))
            break

        logger.debug("Slot released", slot_id=slot.slot_id, in_flight=self.in_flight)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[Slot]:
        """Acquire a slot for the duration of the block."""
        granted = await self.acquire()
        try:
            yield granted
        finally:
            self.release(granted)

    @property
    def max_slots(self) -> int:
        return self._max_slots

    @property
    def in_flight(self) -> int:
        """Number of granted-but-unreleased slots."""
        return len(self._active)

    @property
    def waiting(self) -> int:
        """Number of callers currently queued."""
        return sum(1 for w in self._waiters if not w.future.done())

    def stats(self) -> dict[str, Any]:
        return {
            "max_slots": self._max_slots,
            "in_flight": self.in_flight,
            "waiting": self.waiting,
            "max_waiters": self._max_waiters,
            "acquire_timeout": self._acquire_timeout,
            "granted_total": self._granted_total,
            "rejected_total": self._rejected_total,
        }
