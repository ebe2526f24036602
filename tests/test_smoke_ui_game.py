from __future__ import annotations

import os


def test_ui_smoke_start_game_tap_restart_and_leave() -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from memory_blocks.app import run

    def key(k: int) -> None:
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": k, "unicode": ""}))

    def inject(frame: int) -> None:
        # Main Menu -> Start Game -> tap (ignored during playback) -> sound -> restart -> back
        if frame == 1:
            key(pygame.K_RETURN)
        elif frame == 3:
            key(pygame.K_5)
        elif frame == 4:
            pygame.event.post(pygame.event.Event(pygame.MOUSEBUTTONDOWN, {"button": 1, "pos": (270, 300)}))
        elif frame == 5:
            key(pygame.K_m)
        elif frame == 6:
            key(pygame.K_m)
        elif frame == 7:
            key(pygame.K_r)
        elif frame == 9:
            key(pygame.K_ESCAPE)
        elif frame == 10:
            key(pygame.K_DOWN)

    assert run(max_frames=14, event_injector=inject) == 0


def test_ui_smoke_quit_from_menu() -> None:
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from memory_blocks.app import run

    def inject(frame: int) -> None:
        if frame == 1:
            pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": pygame.K_ESCAPE, "unicode": ""}))

    assert run(max_frames=50, event_injector=inject) == 0
