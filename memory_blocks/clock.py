from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic time for the scheduler and the round engine.

    Tests drive the game with a fake clock; nothing in the core reads real time.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Wall-clock implementation used by the pygame front end."""

    def now(self) -> float:
        return time.monotonic()
