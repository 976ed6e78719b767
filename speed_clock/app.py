"""Pygame UI shell for Speed Clock.

Draws the analog face, a digital readout, the current second-hand speed and
the sync status. Timekeeping, hand angles and synchronisation live in
speed_clock/* (core modules); this module only reads ``ClockSnapshot``s and
forwards key presses.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Protocol

import pygame

from .clock import RealClock, SystemWallClock
from .config import ClockConfig
from .engine import ClockEngine, ClockSnapshot
from .hands import format_speed
from .preferences import THEMES, PreferencesStore
from .scheduling import BackgroundTasks
from .time_provider import HttpTimeProvider, TimeProvider, build_time_provider

logger = logging.getLogger(__name__)

WINDOW_SIZE = (340, 340)
TARGET_FPS = 60

THEME_PALETTES: dict[str, dict[str, tuple[int, ...]]] = {
    "dark": {
        "background": (10, 10, 14),
        "face_fill": (22, 26, 36),
        "face_border": (200, 206, 220),
        "major_tick": (240, 242, 248),
        "minor_tick": (120, 126, 140),
        "numeral": (220, 224, 235),
        "hand_hour": (240, 242, 248),
        "hand_minute": (220, 224, 235),
        "hand_second": (255, 96, 96),
        "center_dot": (245, 247, 250),
        "readout": (235, 235, 245),
        "muted": (150, 150, 165),
        "status": (255, 190, 120),
    },
    "light": {
        "background": (236, 238, 242),
        "face_fill": (250, 252, 255),
        "face_border": (38, 54, 79),
        "major_tick": (40, 58, 85),
        "minor_tick": (140, 150, 170),
        "numeral": (25, 35, 50),
        "hand_hour": (22, 39, 61),
        "hand_minute": (40, 58, 85),
        "hand_second": (214, 52, 52),
        "center_dot": (22, 39, 61),
        "readout": (25, 35, 50),
        "muted": (90, 100, 120),
        "status": (170, 90, 20),
    },
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


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
        # Never pop the clock face itself.
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
        # Window may have been resized since the last frame.
        self._surface = pygame.display.get_surface() or self._surface
        self._screens[-1].render(self._surface)


def hand_endpoint(cx: float, cy: float, angle_deg: float, length: float) -> tuple[int, int]:
    """Screen point ``length`` px from the centre, clockwise from 12 o'clock."""

    rad = math.radians(angle_deg)
    return (int(round(cx + math.sin(rad) * length)), int(round(cy - math.cos(rad) * length)))


class _FontCache:
    def __init__(self) -> None:
        self._fonts: dict[int, pygame.font.Font] = {}

    def get(self, size: float) -> pygame.font.Font:
        px = max(10, int(size))
        font = self._fonts.get(px)
        if font is None:
            font = pygame.font.Font(None, px)
            self._fonts[px] = font
        return font


class ClockScreen:
    def __init__(self, app: App, *, engine: ClockEngine, prefs: PreferencesStore) -> None:
        self._app = app
        self._engine = engine
        self._prefs = prefs
        self._theme = prefs.theme()
        self._fonts = _FontCache()
        self._help = HelpScreen(app, theme_getter=lambda: self._theme)

    @property
    def theme(self) -> str:
        return self._theme

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.MOUSEWHEEL:
            if event.y > 0:
                self._change_speed(+1)
            elif event.y < 0:
                self._change_speed(-1)
            return
        if event.type != pygame.KEYDOWN:
            return

        key = event.key
        if key in (pygame.K_ESCAPE, pygame.K_q):
            self._app.quit()
        elif key in (pygame.K_UP, pygame.K_RIGHT, pygame.K_PLUS, pygame.K_EQUALS, pygame.K_KP_PLUS):
            self._change_speed(+1)
        elif key in (pygame.K_DOWN, pygame.K_LEFT, pygame.K_MINUS, pygame.K_KP_MINUS):
            self._change_speed(-1)
        elif key == pygame.K_r:
            self._manual_sync()
        elif key == pygame.K_t:
            self._toggle_theme()
        elif key in (pygame.K_h, pygame.K_F1):
            self._app.push(self._help)

    def _change_speed(self, delta: int) -> None:
        speed = self._engine.step_speed(delta)
        self._prefs.set_speed(speed)

    def _manual_sync(self) -> None:
        # The resync affordance is disabled while an attempt is running.
        if self._engine.syncing:
            return
        self._engine.request_manual_sync()

    def _toggle_theme(self) -> None:
        idx = THEMES.index(self._theme) if self._theme in THEMES else 0
        self._theme = THEMES[(idx + 1) % len(THEMES)]
        self._prefs.set_theme(self._theme)

    def render(self, surface: pygame.Surface) -> None:
        palette = THEME_PALETTES[self._theme]
        snap = self._engine.snapshot()

        w, h = surface.get_size()
        surface.fill(palette["background"])

        status_h = max(18, h // 12)
        cx = w / 2.0
        cy = (h - status_h) / 2.0
        radius = max(40.0, min(w, h - status_h) / 2.0 - 10.0)

        self._draw_face(surface, palette, cx, cy, radius)
        self._draw_readouts(surface, palette, snap, cx, cy, radius)
        self._draw_hands(surface, palette, snap, cx, cy, radius)
        self._draw_status(surface, palette, snap, w, h, status_h)

    def _draw_face(
        self,
        surface: pygame.Surface,
        palette: dict[str, tuple[int, ...]],
        cx: float,
        cy: float,
        radius: float,
    ) -> None:
        center = (int(round(cx)), int(round(cy)))
        pygame.draw.circle(surface, palette["face_fill"], center, int(radius))
        pygame.draw.circle(surface, palette["face_border"], center, int(radius), 2)

        for step in range(60):
            major = step % 5 == 0
            outer = radius - 4
            inner = radius - (14 if major else 8)
            p0 = hand_endpoint(cx, cy, step * 6.0, inner)
            p1 = hand_endpoint(cx, cy, step * 6.0, outer)
            color = palette["major_tick"] if major else palette["minor_tick"]
            pygame.draw.line(surface, color, p0, p1, 3 if major else 1)

        if radius >= 70:
            font = self._fonts.get(radius * 0.2)
            for hour in range(1, 13):
                tx, ty = hand_endpoint(cx, cy, hour * 30.0, radius - 28)
                label = font.render(str(hour), True, palette["numeral"])
                surface.blit(label, label.get_rect(center=(tx, ty)))

    def _draw_readouts(
        self,
        surface: pygame.Surface,
        palette: dict[str, tuple[int, ...]],
        snap: ClockSnapshot,
        cx: float,
        cy: float,
        radius: float,
    ) -> None:
        font = self._fonts.get(radius * 0.22)
        digital = font.render(snap.digital_time, True, palette["readout"])
        surface.blit(digital, digital.get_rect(center=(int(cx), int(cy + radius * 0.38))))

        small = self._fonts.get(radius * 0.15)
        speed = small.render(f"x{format_speed(snap.speed)}", True, palette["muted"])
        surface.blit(speed, speed.get_rect(center=(int(cx), int(cy - radius * 0.36))))

    def _draw_hands(
        self,
        surface: pygame.Surface,
        palette: dict[str, tuple[int, ...]],
        snap: ClockSnapshot,
        cx: float,
        cy: float,
        radius: float,
    ) -> None:
        center = (int(round(cx)), int(round(cy)))
        hour_tip = hand_endpoint(cx, cy, snap.hour_deg, radius * 0.5)
        minute_tip = hand_endpoint(cx, cy, snap.minute_deg, radius * 0.75)
        second_tip = hand_endpoint(cx, cy, snap.second_deg, radius * 0.85)
        second_tail = hand_endpoint(cx, cy, snap.second_deg + 180.0, radius * 0.14)

        pygame.draw.line(surface, palette["hand_hour"], center, hour_tip, max(3, int(radius * 0.05)))
        pygame.draw.line(surface, palette["hand_minute"], center, minute_tip, max(2, int(radius * 0.03)))
        pygame.draw.line(surface, palette["hand_second"], second_tail, second_tip, 2)
        pygame.draw.circle(surface, palette["hand_second"], center, max(3, int(radius * 0.04)))
        pygame.draw.circle(surface, palette["center_dot"], center, max(1, int(radius * 0.02)))

    def _draw_status(
        self,
        surface: pygame.Surface,
        palette: dict[str, tuple[int, ...]],
        snap: ClockSnapshot,
        w: int,
        h: int,
        status_h: int,
    ) -> None:
        text = snap.status_message
        if snap.syncing and not text:
            text = "Syncing..."
        if not text:
            return
        font = self._fonts.get(status_h * 0.8)
        color = palette["status"] if "failed" in text else palette["muted"]
        label = font.render(self._fit_label(font, text, w - 12), True, color)
        surface.blit(label, label.get_rect(center=(w // 2, h - status_h // 2 - 2)))

    @staticmethod
    def _fit_label(font: pygame.font.Font, label: str, max_width: int) -> str:
        if font.size(label)[0] <= max_width:
            return label
        ellipsis = "..."
        trimmed = label
        while trimmed and font.size(trimmed + ellipsis)[0] > max_width:
            trimmed = trimmed[:-1]
        return trimmed + ellipsis


HELP_LINES: tuple[str, ...] = (
    "Speed Clock",
    "",
    "Up, Right, +, wheel up: faster",
    "Down, Left, -, wheel down: slower",
    "R: sync time now",
    "T: toggle theme",
    "H, F1: show this help",
    "Esc, Q: quit",
    "",
    "Esc, H, F1: back to the clock",
)


class HelpScreen:
    def __init__(self, app: App, *, theme_getter: Callable[[], str]) -> None:
        self._app = app
        self._theme_getter = theme_getter

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_h, pygame.K_F1):
            self._app.pop()
        elif event.key == pygame.K_q:
            self._app.quit()

    def render(self, surface: pygame.Surface) -> None:
        palette = THEME_PALETTES.get(self._theme_getter(), THEME_PALETTES["dark"])
        surface.fill(palette["background"])
        font = self._app.font
        y = 20
        for line in HELP_LINES:
            if line:
                surf = font.render(line, True, palette["readout"])
                surface.blit(surf, (16, y))
            y += font.get_linesize()


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: ClockConfig | None = None,
    provider: TimeProvider | None = None,
    prefs: PreferencesStore | None = None,
) -> int:
    cfg = config or ClockConfig.from_env()
    prefs = prefs or PreferencesStore(PreferencesStore.default_path())
    owned_provider: HttpTimeProvider | None = None
    if provider is None and cfg.sync_enabled:
        provider = build_time_provider(cfg)
        if isinstance(provider, HttpTimeProvider):
            owned_provider = provider

    pygame.init()
    pygame.display.set_caption("Speed Clock")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 24)
    frame_clock = pygame.time.Clock()

    engine = ClockEngine(
        clock=RealClock(),
        wall_clock=SystemWallClock(),
        tasks=BackgroundTasks(),
        provider=provider,
        time_zone=cfg.time_zone,
        speed=prefs.speed(),
        sync_interval_s=cfg.sync_interval_s,
    )

    app = App(surface=surface, font=font)
    app.push(ClockScreen(app, engine=engine, prefs=prefs))
    engine.start()
    logger.info("Speed Clock started (zone %s, speed x%s)", cfg.time_zone, format_speed(engine.speed))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            engine.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        engine.shutdown()
        if owned_provider is not None:
            owned_provider.close()
        pygame.quit()

    return 0
