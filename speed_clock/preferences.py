from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .hands import DEFAULT_SPEED, format_speed, match_speed

logger = logging.getLogger(__name__)

PREFS_PATH_ENV = "SPEED_CLOCK_PREFS_PATH"

THEMES: tuple[str, ...] = ("dark", "light")
DEFAULT_THEME = "dark"


class PreferencesStore:
    """String-valued key/value preferences persisted as a small JSON file.

    Anything missing or unreadable reads back as the default.
    """

    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path
        self._values: dict[str, str] = {}
        self._load()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(PREFS_PATH_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".speed_clock_prefs.json"

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable preferences %s: %s", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        raw_values = payload.get("values")
        if not isinstance(raw_values, dict):
            return
        self._values = {
            str(k): v for k, v in raw_values.items() if isinstance(v, str)
        }

    def save(self) -> None:
        payload = {"version": self._version, "values": dict(self._values)}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not save preferences to %s: %s", self._path, exc)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if self._values.get(key) == value:
            return
        self._values[key] = str(value)
        self.save()

    def speed(self) -> float:
        raw = self._values.get("speed")
        if raw is None:
            return DEFAULT_SPEED
        try:
            parsed = float(raw)
        except ValueError:
            return DEFAULT_SPEED
        matched = match_speed(parsed)
        return DEFAULT_SPEED if matched is None else matched

    def set_speed(self, speed: float) -> None:
        self.set("speed", format_speed(speed))

    def theme(self) -> str:
        raw = self._values.get("theme")
        return raw if raw in THEMES else DEFAULT_THEME

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"unknown theme: {theme!r}")
        self.set("theme", theme)
