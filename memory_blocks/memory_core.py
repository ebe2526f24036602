from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from .clock import Clock
from .scheduler import ClockScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemoryGameConfig:
    board_size: int = 9  # 3x3 grid
    base_step_delay_s: float = 1.0
    step_decrement_s: float = 0.05
    min_step_delay_s: float = 0.3  # fastest playable pace
    flash_duration_s: float = 0.4
    round_pause_s: float = 1.0


class RoundPhase(StrEnum):
    IDLE = "idle"
    PLAYBACK = "playback"
    AWAITING_INPUT = "awaiting_input"
    ROUND_COMPLETE = "round_complete"
    GAME_OVER = "game_over"


@dataclass(frozen=True, slots=True)
class TapEvent:
    game: int
    level: int
    position: int
    expected: int
    tapped: int
    is_correct: bool
    tapped_at_s: float


@dataclass(frozen=True, slots=True)
class RoundSnapshot:
    """View model for the UI (pure data)."""

    phase: RoundPhase
    level: int
    score: int
    best_score: int
    sequence_length: int
    progress_length: int
    accepts_input: bool
    highlighted_cell: int | None
    board_size: int
    message: str


class RoundListener(Protocol):
    """Notifications consumed by the presentation layer."""

    def on_flash(self, cell: int) -> None: ...
    def on_unflash(self, cell: int) -> None: ...
    def on_input_enabled(self) -> None: ...
    def on_level_changed(self, level: int) -> None: ...
    def on_game_over(self, final_score: int) -> None: ...


class NullListener:
    def on_flash(self, cell: int) -> None:
        pass

    def on_unflash(self, cell: int) -> None:
        pass

    def on_input_enabled(self) -> None:
        pass

    def on_level_changed(self, level: int) -> None:
        pass

    def on_game_over(self, final_score: int) -> None:
        pass


class CellGenerator(Protocol):
    def next_cell(self) -> int:
        ...


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(stop)


class RandomSequenceGenerator:
    """Uniform cell picker.

    Each draw is independent of the previous ones, so the same cell may
    appear twice in a row. That matches the classic game and is pinned by tests.
    """

    def __init__(self, *, seed: int, board_size: int = 9) -> None:
        if board_size < 1:
            raise ValueError("board_size must be >= 1")
        self._rng = SeededRng(seed)
        self._board_size = int(board_size)

    def next_cell(self) -> int:
        return self._rng.randrange(self._board_size)


def step_delay_for_level(level: int, config: MemoryGameConfig | None = None) -> float:
    """Time between playback flashes for ``level``; never below the floor."""

    cfg = config or MemoryGameConfig()
    return max(cfg.min_step_delay_s, cfg.base_step_delay_s - cfg.step_decrement_s * int(level))


def _validate_config(cfg: MemoryGameConfig) -> None:
    if cfg.board_size < 1:
        raise ValueError("board_size must be >= 1")
    if cfg.min_step_delay_s <= 0.0:
        raise ValueError("min_step_delay_s must be > 0")
    if cfg.base_step_delay_s < cfg.min_step_delay_s:
        raise ValueError("base_step_delay_s must be >= min_step_delay_s")
    if cfg.step_decrement_s < 0.0:
        raise ValueError("step_decrement_s must be >= 0")
    if cfg.flash_duration_s < 0.0:
        raise ValueError("flash_duration_s must be >= 0")
    if cfg.round_pause_s < 0.0:
        raise ValueError("round_pause_s must be >= 0")


class RoundEngine:
    """Simon-style round engine: playback -> input -> next round or game over.

    - Deterministic: cells come from an injected generator.
    - Time is entirely via the injected Scheduler; the engine never blocks.
    - Each game gets a generation number; callbacks from an earlier game are
      cancelled on restart and ignored if they fire anyway.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        generator: CellGenerator,
        config: MemoryGameConfig | None = None,
        listener: RoundListener | None = None,
        clock: Clock | None = None,
    ) -> None:
        cfg = config or MemoryGameConfig()
        _validate_config(cfg)

        self._scheduler = scheduler
        self._generator = generator
        self._cfg = cfg
        self._listener: RoundListener = listener or NullListener()
        self._clock = clock

        self._phase = RoundPhase.IDLE
        self._sequence: list[int] = []
        self._progress: list[int] = []
        self._level = 1
        self._best_score = 0
        self._highlighted: int | None = None

        self._generation = 0
        self._handles: list[TimerHandle] = []
        self._events: list[TapEvent] = []

    @property
    def config(self) -> MemoryGameConfig:
        return self._cfg

    @property
    def phase(self) -> RoundPhase:
        return self._phase

    @property
    def level(self) -> int:
        return self._level

    @property
    def score(self) -> int:
        return self._level - 1

    @property
    def best_score(self) -> int:
        return self._best_score

    @property
    def accepts_input(self) -> bool:
        return self._phase is RoundPhase.AWAITING_INPUT

    @property
    def sequence(self) -> tuple[int, ...]:
        return tuple(self._sequence)

    @property
    def user_progress(self) -> tuple[int, ...]:
        return tuple(self._progress)

    @property
    def highlighted_cell(self) -> int | None:
        return self._highlighted

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def step_delay_s(self) -> float:
        return step_delay_for_level(self._level, self._cfg)

    def start_game(self) -> None:
        self._cancel_pending()
        self._generation += 1
        self._sequence = []
        self._progress = []
        self._level = 1
        self._highlighted = None
        logger.info("Starting game %d", self._generation)
        self._listener.on_level_changed(self._level)
        self._begin_round()

    def reset_game(self) -> None:
        self.start_game()

    def dispose(self) -> None:
        """Drop all pending callbacks and return to IDLE."""

        self._cancel_pending()
        self._generation += 1
        self._phase = RoundPhase.IDLE
        self._progress = []
        self._highlighted = None

    def submit_input(self, cell: int) -> bool:
        """Submit a tap on ``cell``. Returns True if the tap was accepted."""

        if isinstance(cell, bool) or not isinstance(cell, int):
            raise ValueError(f"cell must be an int, got {type(cell).__name__}")
        if not (0 <= cell < self._cfg.board_size):
            raise ValueError(f"cell must be in [0, {self._cfg.board_size}), got {cell}")

        if self._phase is not RoundPhase.AWAITING_INPUT:
            return False

        self._flash(cell)
        self._progress.append(cell)
        position = len(self._progress) - 1
        expected = self._sequence[position]
        is_correct = cell == expected

        self._events.append(
            TapEvent(
                game=self._generation,
                level=self._level,
                position=position,
                expected=expected,
                tapped=cell,
                is_correct=is_correct,
                tapped_at_s=self._now(),
            )
        )

        if not is_correct:
            self._phase = RoundPhase.GAME_OVER
            final_score = self.score
            self._best_score = max(self._best_score, final_score)
            logger.info("Game %d over at level %d (score %d)", self._generation, self._level, final_score)
            self._listener.on_game_over(final_score)
            return True

        if len(self._progress) < len(self._sequence):
            return True

        self._phase = RoundPhase.ROUND_COMPLETE
        self._level += 1
        self._listener.on_level_changed(self._level)
        self._schedule(self._cfg.round_pause_s, self._begin_round)
        return True

    def events(self) -> list[TapEvent]:
        return list(self._events)

    def current_message(self) -> str:
        if self._phase is RoundPhase.IDLE:
            return "Press Enter to start."
        if self._phase is RoundPhase.PLAYBACK:
            return "Watch the sequence."
        if self._phase is RoundPhase.AWAITING_INPUT:
            return f"Your turn: {len(self._progress)}/{len(self._sequence)}"
        if self._phase is RoundPhase.ROUND_COMPLETE:
            return "Correct!"
        return f"Game over at Level {self._level}. Final score: {self.score}"

    def snapshot(self) -> RoundSnapshot:
        return RoundSnapshot(
            phase=self._phase,
            level=self._level,
            score=self.score,
            best_score=self._best_score,
            sequence_length=len(self._sequence),
            progress_length=len(self._progress),
            accepts_input=self.accepts_input,
            highlighted_cell=self._highlighted,
            board_size=self._cfg.board_size,
            message=self.current_message(),
        )

    def _begin_round(self) -> None:
        self._progress = []
        self._phase = RoundPhase.PLAYBACK

        cell = int(self._generator.next_cell())
        if not (0 <= cell < self._cfg.board_size):
            raise ValueError(f"generator produced cell {cell} outside [0, {self._cfg.board_size})")
        self._sequence.append(cell)

        delay = self.step_delay_s
        logger.debug("Round %d: %d cells, step %.2fs", self._level, len(self._sequence), delay)
        for idx, target in enumerate(self._sequence):
            self._schedule(idx * delay, lambda c=target: self._flash(c))
        self._schedule(len(self._sequence) * delay, self._enable_input)

    def _enable_input(self) -> None:
        self._phase = RoundPhase.AWAITING_INPUT
        self._listener.on_input_enabled()

    def _flash(self, cell: int) -> None:
        self._highlighted = cell
        self._listener.on_flash(cell)
        self._schedule(self._cfg.flash_duration_s, lambda: self._unflash(cell))

    def _unflash(self, cell: int) -> None:
        # A later flash may already own the highlight.
        if self._highlighted == cell:
            self._highlighted = None
        self._listener.on_unflash(cell)

    def _schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        generation = self._generation

        def guarded() -> None:
            if generation != self._generation:
                return
            callback()

        self._handles = [h for h in self._handles if h.pending]
        self._handles.append(self._scheduler.schedule(delay_s, guarded))

    def _cancel_pending(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    def _now(self) -> float:
        return 0.0 if self._clock is None else float(self._clock.now())


def build_memory_game(
    *,
    clock: Clock,
    seed: int,
    config: MemoryGameConfig | None = None,
    listener: RoundListener | None = None,
    generator: CellGenerator | None = None,
    scheduler: ClockScheduler | None = None,
) -> tuple[RoundEngine, ClockScheduler]:
    """Wire an engine to a clock-driven scheduler.

    Returns the engine and the scheduler the caller must pump (``update()``).
    """

    cfg = config or MemoryGameConfig()
    sched = scheduler or ClockScheduler(clock=clock)
    gen = generator or RandomSequenceGenerator(seed=seed, board_size=cfg.board_size)
    engine = RoundEngine(
        scheduler=sched,
        generator=gen,
        config=cfg,
        listener=listener,
        clock=clock,
    )
    return engine, sched
