from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

TIME_ZONE_ENV = "SPEED_CLOCK_TIME_ZONE"
TIME_URL_ENV = "SPEED_CLOCK_TIME_URL"
SYNC_INTERVAL_ENV = "SPEED_CLOCK_SYNC_INTERVAL_S"
REQUEST_TIMEOUT_ENV = "SPEED_CLOCK_REQUEST_TIMEOUT_S"
TIME_COMMAND_ENV = "SPEED_CLOCK_TIME_COMMAND"
DISABLE_SYNC_ENV = "SPEED_CLOCK_DISABLE_SYNC"
LOG_LEVEL_ENV = "SPEED_CLOCK_LOG_LEVEL"

DEFAULT_TIME_ZONE = "Etc/UTC"
DEFAULT_TIME_URL = "https://timeapi.io/api/Time/current/zone"
DEFAULT_SYNC_INTERVAL_S = 15.0 * 60.0
DEFAULT_REQUEST_TIMEOUT_S = 5.0


@dataclass(frozen=True, slots=True)
class ClockConfig:
    time_zone: str = DEFAULT_TIME_ZONE
    time_url: str = DEFAULT_TIME_URL
    sync_interval_s: float = DEFAULT_SYNC_INTERVAL_S
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    time_command: tuple[str, ...] = ()
    sync_enabled: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.sync_interval_s <= 0:
            raise ValueError("sync_interval_s must be > 0")
        if self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be > 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClockConfig":
        env = os.environ if environ is None else environ
        return cls(
            time_zone=_resolve_time_zone(env.get(TIME_ZONE_ENV) or env.get("TZ")),
            time_url=(env.get(TIME_URL_ENV) or "").strip() or DEFAULT_TIME_URL,
            sync_interval_s=_positive_float(env.get(SYNC_INTERVAL_ENV), DEFAULT_SYNC_INTERVAL_S),
            request_timeout_s=_positive_float(env.get(REQUEST_TIMEOUT_ENV), DEFAULT_REQUEST_TIMEOUT_S),
            time_command=tuple(shlex.split(env.get(TIME_COMMAND_ENV, ""))),
            sync_enabled=env.get(DISABLE_SYNC_ENV, "0") != "1",
            log_level=(env.get(LOG_LEVEL_ENV) or "INFO").strip().upper(),
        )


def _resolve_time_zone(candidate: str | None) -> str:
    name = (candidate or "").strip().lstrip(":")
    if name == "":
        return DEFAULT_TIME_ZONE
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r; using %s", name, DEFAULT_TIME_ZONE)
        return DEFAULT_TIME_ZONE
    return name


def _positive_float(value: str | None, fallback: float) -> float:
    if value is None:
        return fallback
    try:
        parsed = float(value)
    except ValueError:
        return fallback
    return parsed if parsed > 0 else fallback
