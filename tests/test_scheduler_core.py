from __future__ import annotations

from dataclasses import dataclass

import pytest

from memory_blocks.scheduler import ClockScheduler


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_increasing_delays_fire_in_order_even_after_one_large_jump() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[int] = []

    for idx in range(5):
        sched.schedule(idx * 0.3, lambda i=idx: fired.append(i))

    clock.advance(10.0)
    assert sched.update() == 5
    assert fired == [0, 1, 2, 3, 4]


def test_equal_due_times_fire_fifo() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[str] = []

    sched.schedule(1.0, lambda: fired.append("a"))
    sched.schedule(1.0, lambda: fired.append("b"))
    sched.schedule(1.0, lambda: fired.append("c"))

    clock.advance(1.0)
    sched.update()
    assert fired == ["a", "b", "c"]


def test_nothing_fires_before_due_or_without_update() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[int] = []

    sched.schedule(0.0, lambda: fired.append(0))
    sched.schedule(0.5, lambda: fired.append(1))
    assert fired == []

    assert sched.update() == 1
    assert fired == [0]

    clock.advance(0.25)
    assert sched.update() == 0
    assert sched.pending_count() == 1
    assert sched.next_due_s() == pytest.approx(0.5)

    clock.advance(0.25)
    assert sched.update() == 1
    assert fired == [0, 1]
    assert sched.pending_count() == 0
    assert sched.next_due_s() is None


def test_cancelled_handle_never_fires_and_cancel_after_fire_is_noop() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[str] = []

    keep = sched.schedule(0.1, lambda: fired.append("keep"))
    drop = sched.schedule(0.2, lambda: fired.append("drop"))
    drop.cancel()
    drop.cancel()

    clock.advance(1.0)
    sched.update()

    assert fired == ["keep"]
    assert drop.cancelled is True
    assert drop.pending is False
    assert keep.fired is True

    keep.cancel()
    assert keep.cancelled is False


def test_callback_scheduling_due_work_runs_in_same_pump() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[str] = []

    def outer() -> None:
        fired.append("outer")
        sched.schedule(0.0, lambda: fired.append("inner"))
        sched.schedule(0.5, lambda: fired.append("later"))

    sched.schedule(0.0, outer)
    assert sched.update() == 2
    assert fired == ["outer", "inner"]
    assert sched.pending_count() == 1


def test_cancel_all_clears_queue() -> None:
    clock = FakeClock()
    sched = ClockScheduler(clock=clock)
    fired: list[int] = []

    handles = [sched.schedule(0.1 * i, lambda i=i: fired.append(i)) for i in range(3)]
    sched.cancel_all()

    clock.advance(5.0)
    assert sched.update() == 0
    assert fired == []
    assert all(h.cancelled for h in handles)


def test_negative_delay_is_rejected() -> None:
    sched = ClockScheduler(clock=FakeClock())
    with pytest.raises(ValueError):
        sched.schedule(-0.01, lambda: None)
