"""Pygame UI shell for Memory Blocks.

Screens:
- Main menu (start game, sound toggle, quit)
- Game screen: 3x3 grid, level banner, restart, game-over overlay

Deterministic sequence/timing/state lives in memory_blocks/memory_core.py.
This module only renders engine notifications and forwards cell selections.
"""

from __future__ import annotations

import logging
import math
import os
import random
from array import array
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .clock import RealClock
from .memory_core import RoundEngine, RoundListener, RoundPhase, build_memory_game
from .scheduler import ClockScheduler

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "MEMORY_BLOCKS_LOG_LEVEL"
SOUND_ENV = "MEMORY_BLOCKS_SOUND"


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _sound_enabled_from_env() -> bool:
    raw = os.environ.get(SOUND_ENV, "1").strip().lower()
    return raw not in ("0", "false", "off", "no")


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class GameAudio:
    """Pygame audio for the game: a looping background track and a tap cue.

    Passed explicitly to the screens that need it. If the mixer cannot be
    initialised the adapter stays silent.
    """

    _amp = 32767
    _background_notes_hz: tuple[float, ...] = (523.25, 659.25, 783.99, 659.25, 587.33, 698.46, 880.0, 698.46)

    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = bool(enabled)
        self._available = False
        self._sample_rate = 22050
        self._channels = 1

        self._tap_sound: pygame.mixer.Sound | None = None
        self._background: pygame.mixer.Sound | None = None
        self._bg_channel: pygame.mixer.Channel | None = None
        self._cue_channel: pygame.mixer.Channel | None = None

        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            init = pygame.mixer.get_init()
            if init is not None:
                self._sample_rate = int(init[0])
                self._channels = max(1, int(init[2]))
            pygame.mixer.set_num_channels(max(4, int(pygame.mixer.get_num_channels())))

            self._tap_sound = self._build_tone_sound(1320.0, 0.07, gain=0.45)
            self._background = self._build_background_loop()

            self._bg_channel = pygame.mixer.Channel(0)
            self._cue_channel = pygame.mixer.Channel(1)
            self._available = True
        except (pygame.error, NotImplementedError) as exc:
            logger.warning("Audio disabled: %s", exc)
            self._available = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def available(self) -> bool:
        return self._available

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        if self._enabled:
            self.start_background()
        else:
            self.stop()

    def toggle(self) -> None:
        self.set_enabled(not self._enabled)
        logger.info("Sound %s", "on" if self._enabled else "off")

    def is_playing(self) -> bool:
        if not self._available or self._bg_channel is None:
            return False
        return bool(self._bg_channel.get_busy())

    def start_background(self) -> None:
        if not (self._enabled and self._available) or self.is_playing():
            return
        assert self._bg_channel is not None
        assert self._background is not None
        self._bg_channel.set_volume(0.35)
        self._bg_channel.play(self._background, loops=-1)

    def play_tap(self) -> None:
        if not (self._enabled and self._available):
            return
        assert self._cue_channel is not None
        assert self._tap_sound is not None
        self._cue_channel.set_volume(0.8)
        self._cue_channel.play(self._tap_sound)

    def stop(self) -> None:
        if not self._available:
            return
        for channel in (self._bg_channel, self._cue_channel):
            if channel is not None:
                channel.stop()

    def _build_background_loop(self) -> pygame.mixer.Sound:
        parts: list[array[int]] = []
        for freq in self._background_notes_hz:
            parts.append(self._render_tone_pcm(freq, 0.22, gain=0.16))
            parts.append(self._render_silence_pcm(0.03))
        return pygame.mixer.Sound(buffer=self._interleave(self._concat_pcm(tuple(parts))).tobytes())

    def _build_tone_sound(self, frequency_hz: float, duration_s: float, *, gain: float) -> pygame.mixer.Sound:
        pcm = self._render_tone_pcm(frequency_hz, duration_s, gain=gain)
        return pygame.mixer.Sound(buffer=self._interleave(pcm).tobytes())

    def _render_tone_pcm(self, frequency_hz: float, duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.008))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / float(fade_n)
            tail = sample_count - idx - 1
            if tail < fade_n:
                envelope = min(envelope, tail / float(fade_n))
            phase = (2.0 * math.pi * float(frequency_hz) * idx) / float(self._sample_rate)
            sample = math.sin(phase) * gain * max(0.0, envelope)
            out.append(int(max(-1.0, min(1.0, sample)) * self._amp))
        return out

    def _render_silence_pcm(self, duration_s: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        return array("h", [0] * sample_count)

    def _interleave(self, mono: array[int]) -> array[int]:
        # Mixer may already be running in stereo (pygame.init() opens it).
        if self._channels == 1:
            return mono
        out = array("h")
        for sample in mono:
            out.extend([sample] * self._channels)
        return out

    @staticmethod
    def _concat_pcm(parts: tuple[array[int], ...]) -> array[int]:
        out = array("h")
        for part in parts:
            out.extend(part)
        return out


WINDOW_SIZE = (540, 760)
TARGET_FPS = 60


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(
        self,
        app: App,
        title: str,
        items: list[MenuItem],
        *,
        is_root: bool = False,
        status: Callable[[], str] | None = None,
    ) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._status = status
        self._title_font = pygame.font.Font(None, 84)
        self._item_font = pygame.font.Font(None, 40)
        self._hint_font = pygame.font.Font(None, 24)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
            return

        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            for idx, rect in enumerate(self._item_rects(self._app_surface_size())):
                if rect.collidepoint(event.pos):
                    self._selected = idx
                    self._activate()
                    return

    def _handle_key(self, key: int) -> None:
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    @staticmethod
    def _app_surface_size() -> tuple[int, int]:
        surface = pygame.display.get_surface()
        return WINDOW_SIZE if surface is None else surface.get_size()

    def _item_rects(self, size: tuple[int, int]) -> list[pygame.Rect]:
        w, h = size
        row_w = min(360, w - 80)
        row_h = 58
        gap = 16
        top = int(h * 0.52)
        return [
            pygame.Rect((w - row_w) // 2, top + idx * (row_h + gap), row_w, row_h)
            for idx in range(len(self._items))
        ]

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill((28, 24, 58))

        title = self._title_font.render(self._title, True, (255, 255, 255))
        surface.blit(title, title.get_rect(center=(w // 2, int(h * 0.26))))

        for idx, (item, row) in enumerate(zip(self._items, self._item_rects((w, h)))):
            selected = idx == self._selected
            pygame.draw.rect(surface, (64, 112, 230) if selected else (44, 52, 120), row, border_radius=18)
            pygame.draw.rect(surface, (226, 236, 255), row, 2, border_radius=18)
            text = self._item_font.render(item.label, True, (255, 255, 255))
            surface.blit(text, text.get_rect(center=row.center))

        footer = "Enter/Click: Select  |  Esc: Back"
        if self._status is not None:
            footer = f"{self._status()}  |  {footer}"
        foot = self._hint_font.render(footer, True, (186, 200, 224))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 18)))


class MemoryGameScreen:
    """Presentation adapter: renders engine notifications, forwards cell taps."""

    _TILE_IDLE = (236, 92, 150)
    _TILE_LIT = (250, 222, 60)
    _TILE_DIM = (150, 70, 108)

    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[RoundListener], tuple[RoundEngine, ClockScheduler]],
        audio: GameAudio,
    ) -> None:
        self._app = app
        self._audio = audio
        self._lit: int | None = None
        self._level = 1
        self._game_over_score: int | None = None

        self._big_font = pygame.font.Font(None, 72)
        self._mid_font = pygame.font.Font(None, 40)
        self._small_font = pygame.font.Font(None, 24)

        self._tile_rects: list[pygame.Rect] = []
        self._restart_rect: pygame.Rect | None = None

        self._engine, self._scheduler = engine_factory(self)
        self._audio.start_background()
        self._engine.start_game()

    # RoundListener

    def on_flash(self, cell: int) -> None:
        self._lit = cell
        self._audio.play_tap()

    def on_unflash(self, cell: int) -> None:
        if self._lit == cell:
            self._lit = None

    def on_input_enabled(self) -> None:
        logger.debug("Input enabled at level %d", self._level)

    def on_level_changed(self, level: int) -> None:
        self._level = level
        if level == 1:
            self._game_over_score = None

    def on_game_over(self, final_score: int) -> None:
        self._game_over_score = final_score

    # Screen

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
            return

        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            if self._restart_rect is not None and self._restart_rect.collidepoint(event.pos):
                self._restart()
                return
            for idx, rect in enumerate(self._tile_rects):
                if rect.collidepoint(event.pos):
                    self._tap(idx)
                    return

    def _handle_key(self, key: int) -> None:
        if key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._leave()
            return
        if key == pygame.K_r:
            self._restart()
            return
        if key == pygame.K_m:
            self._audio.toggle()
            return
        if key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._engine.phase is RoundPhase.GAME_OVER:
                self._restart()
            return

        cell = self._cell_from_key(key)
        if cell is not None:
            self._tap(cell)

    def _tap(self, cell: int) -> None:
        if cell >= self._engine.config.board_size:
            return
        self._engine.submit_input(cell)

    def _restart(self) -> None:
        self._lit = None
        self._engine.reset_game()

    def _leave(self) -> None:
        self._engine.dispose()
        self._app.pop()

    @staticmethod
    def _cell_from_key(key: int) -> int | None:
        mapping = {
            pygame.K_1: 0,
            pygame.K_2: 1,
            pygame.K_3: 2,
            pygame.K_4: 3,
            pygame.K_5: 4,
            pygame.K_6: 5,
            pygame.K_7: 6,
            pygame.K_8: 7,
            pygame.K_9: 8,
            # Keypad rows are laid out bottom-up.
            pygame.K_KP7: 0,
            pygame.K_KP8: 1,
            pygame.K_KP9: 2,
            pygame.K_KP4: 3,
            pygame.K_KP5: 4,
            pygame.K_KP6: 5,
            pygame.K_KP1: 6,
            pygame.K_KP2: 7,
            pygame.K_KP3: 8,
        }
        return mapping.get(key)

    def render(self, surface: pygame.Surface) -> None:
        self._scheduler.update()
        snap = self._engine.snapshot()

        w, h = surface.get_size()
        surface.fill((28, 24, 58))

        level = self._big_font.render(f"Level {snap.level}", True, (255, 255, 255))
        surface.blit(level, level.get_rect(center=(w // 2, int(h * 0.12))))

        status = self._small_font.render(
            f"Best: {snap.best_score}   Sound: {'On' if self._audio.enabled else 'Off'}",
            True,
            (186, 200, 224),
        )
        surface.blit(status, status.get_rect(center=(w // 2, int(h * 0.19))))

        self._tile_rects = self._layout_tiles(w, h, snap.board_size)
        for idx, rect in enumerate(self._tile_rects):
            if idx == self._lit:
                color = self._TILE_LIT
            elif snap.accepts_input:
                color = self._TILE_IDLE
            else:
                color = self._TILE_DIM
            pygame.draw.rect(surface, color, rect, border_radius=12)

        grid_bottom = self._tile_rects[-1].bottom if self._tile_rects else int(h * 0.7)
        msg = self._mid_font.render(snap.message, True, (235, 235, 245))
        surface.blit(msg, msg.get_rect(center=(w // 2, grid_bottom + 40)))

        self._restart_rect = pygame.Rect(0, 0, 200, 52)
        self._restart_rect.center = (w // 2, grid_bottom + 110)
        pygame.draw.rect(surface, (240, 150, 40), self._restart_rect, border_radius=15)
        label = self._mid_font.render("Restart", True, (255, 255, 255))
        surface.blit(label, label.get_rect(center=self._restart_rect.center))

        hint = self._small_font.render("1-9/Click: Select  |  R: Restart  |  M: Sound  |  Esc: Back", True, (186, 200, 224))
        surface.blit(hint, hint.get_rect(midbottom=(w // 2, h - 14)))

        if self._game_over_score is not None:
            self._render_game_over(surface, snap.level, self._game_over_score)

    def _render_game_over(self, surface: pygame.Surface, level: int, score: int) -> None:
        w, h = surface.get_size()
        shade = pygame.Surface((w, h), pygame.SRCALPHA)
        shade.fill((0, 0, 0, 150))
        surface.blit(shade, (0, 0))

        panel = pygame.Rect(0, 0, min(440, w - 40), 220)
        panel.center = (w // 2, h // 2)
        pygame.draw.rect(surface, (250, 250, 252), panel, border_radius=16)

        lines = [
            (self._mid_font, "Game Over", (20, 20, 30)),
            (self._small_font, f"You failed at Level {level}. Final score: {score}", (40, 40, 52)),
            (self._small_font, "Press Enter to play again", (64, 112, 230)),
        ]
        y = panel.y + 50
        for font, text, color in lines:
            rendered = font.render(text, True, color)
            surface.blit(rendered, rendered.get_rect(center=(panel.centerx, y)))
            y += 56

    @staticmethod
    def _layout_tiles(w: int, h: int, board_size: int) -> list[pygame.Rect]:
        cols = max(1, math.ceil(math.sqrt(board_size)))
        rows = max(1, math.ceil(board_size / cols))
        gap = 10
        cell = min(100, (w - 40 - gap * (cols - 1)) // cols, (int(h * 0.5) - gap * (rows - 1)) // rows)
        grid_w = cols * cell + gap * (cols - 1)
        left = (w - grid_w) // 2
        top = int(h * 0.25)
        rects: list[pygame.Rect] = []
        for idx in range(board_size):
            r, c = divmod(idx, cols)
            rects.append(pygame.Rect(left + c * (cell + gap), top + r * (cell + gap), cell, cell))
        return rects


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    configure_logging()
    pygame.init()

    pygame.display.set_caption("Memory Blocks")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    audio = GameAudio(enabled=_sound_enabled_from_env())
    real_clock = RealClock()

    def open_game() -> None:
        seed = _new_seed()
        app.push(
            MemoryGameScreen(
                app,
                engine_factory=lambda listener: build_memory_game(
                    clock=real_clock,
                    seed=seed,
                    listener=listener,
                ),
                audio=audio,
            )
        )

    main_items = [
        MenuItem("Start Game", open_game),
        MenuItem("Toggle Sound", audio.toggle),
        MenuItem("Quit", app.quit),
    ]

    app.push(
        MenuScreen(
            app,
            "Memory Blocks",
            main_items,
            is_root=True,
            status=lambda: f"Sound: {'On' if audio.enabled else 'Off'}",
        )
    )

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        audio.stop()
        pygame.quit()

    return 0
