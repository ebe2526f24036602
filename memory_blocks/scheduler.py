from __future__ import annotations

import heapq
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from .clock import Clock


@dataclass(slots=True)
class TimerHandle:
    """Cancellation token returned by ``Scheduler.schedule``."""

    due_at_s: float
    _cancelled: bool = field(default=False, repr=False)
    _fired: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        # No-op once the callback has run.
        if not self._fired:
            self._cancelled = True


class Scheduler(Protocol):
    """Cooperative "run this callback after a delay" service.

    Callbacks scheduled with increasing delays must fire in that order.
    """

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class ClockScheduler:
    """Timer queue pumped explicitly from the owner's loop.

    - Time comes only from the injected Clock.
    - Due callbacks fire in (due time, insertion order), so equal due times are FIFO.
    - Nothing fires until ``update()`` is called.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._queue: list[tuple[float, int, TimerHandle, Callable[[], None]]] = []
        self._counter = 0

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        delay = float(delay_s)
        if delay < 0.0:
            raise ValueError("delay_s must be >= 0")
        due = self._clock.now() + delay
        handle = TimerHandle(due_at_s=due)
        heapq.heappush(self._queue, (due, self._counter, handle, callback))
        self._counter += 1
        return handle

    def update(self) -> int:
        """Fire every callback that is due. Returns how many fired."""

        now = self._clock.now()
        fired = 0
        # Callbacks may schedule more work; anything already due runs in this pass.
        while self._queue and self._queue[0][0] <= now:
            _, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            handle._fired = True
            callback()
            fired += 1
        return fired

    def pending_count(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if handle.pending)

    def next_due_s(self) -> float | None:
        live = [due for due, _, handle, _ in self._queue if handle.pending]
        return None if not live else min(live)

    def cancel_all(self) -> None:
        for _, _, handle, _ in self._queue:
            handle.cancel()
        self._queue.clear()
