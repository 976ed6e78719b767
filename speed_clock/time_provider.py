"""Authoritative time sources.

Two interchangeable providers return real time in epoch milliseconds for an
IANA time-zone identifier:

* ``HttpTimeProvider`` queries a time-zone-scoped JSON endpoint.
* ``CommandTimeProvider`` runs a local helper that prints
  ``{"epoch_millis": <number>}``; preferred when one is configured.

Both raise ``TimeSyncError`` subclasses; callers treat any of them as a
recoverable failed attempt.
"""

from __future__ import annotations

import json
import logging
import math
import re
import shutil
import subprocess
from calendar import timegm
from datetime import datetime, timezone
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from .config import ClockConfig

logger = logging.getLogger(__name__)

UNIX_SECONDS_FIELD = "unixTime"
ISO_FIELDS: tuple[str, ...] = ("utcDateTime", "utc_datetime", "dateTime", "datetime")
CALENDAR_FIELDS: tuple[str, ...] = ("year", "month", "day", "hour", "minute", "seconds")

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class TimeSyncError(Exception):
    """Base class for a failed attempt to obtain authoritative time."""


class TimeRequestError(TimeSyncError):
    """Transport failure or non-success status."""


class TimeDecodeError(TimeSyncError):
    """The response did not contain a recognisable timestamp."""


class TimeProvider(Protocol):
    def fetch_epoch_ms(self, time_zone: str) -> float:
        """Return current real time in epoch milliseconds (blocking)."""
        ...


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _zone_or_utc(time_zone: str | None) -> Any:
    if not time_zone:
        return timezone.utc
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_iso_epoch_ms(text: str, *, time_zone: str | None = None) -> float | None:
    """Parse an ISO-8601 timestamp; naive values are read in ``time_zone``."""

    raw = text.strip()
    if raw == "":
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    # datetime only keeps microseconds; some services send 7 fractional digits.
    raw = _FRACTION_RE.sub(r"\1", raw)
    try:
        dt = datetime.fromisoformat(raw)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=_zone_or_utc(time_zone))
        return dt.timestamp() * 1000.0
    except (OverflowError, ValueError):
        return None


def _calendar_epoch_ms(payload: dict[str, Any]) -> float | None:
    if not all(_is_number(payload.get(name)) for name in CALENDAR_FIELDS):
        return None
    millis = payload.get("milliseconds", 0)
    if not _is_number(millis):
        millis = 0
    year, month, day, hour, minute, seconds = (int(payload[name]) for name in CALENDAR_FIELDS)
    try:
        # Validates ranges (month 13, day 32, year 1e20, ...).
        datetime(year, month, day, hour, minute, seconds)
    except (OverflowError, ValueError):
        return None
    return float(timegm((year, month, day, hour, minute, seconds))) * 1000.0 + float(millis)


def decode_epoch_millis(payload: object, *, time_zone: str | None = None) -> float:
    """Extract epoch milliseconds from a provider response.

    Priority, first match wins: numeric Unix seconds, the first parseable ISO
    string among ISO_FIELDS, then discrete calendar fields read as UTC.
    """

    if not isinstance(payload, dict):
        raise TimeDecodeError("response is not a JSON object")
    return checked_epoch_ms(_first_match(payload, time_zone))


def _first_match(payload: dict[str, Any], time_zone: str | None) -> float:
    unix_time = payload.get(UNIX_SECONDS_FIELD)
    if _is_number(unix_time):
        return float(unix_time) * 1000.0

    for name in ISO_FIELDS:
        value = payload.get(name)
        if isinstance(value, str):
            parsed = parse_iso_epoch_ms(value, time_zone=time_zone)
            if parsed is not None:
                return parsed

    composed = _calendar_epoch_ms(payload)
    if composed is not None:
        return composed

    raise TimeDecodeError("failed to parse response")


def checked_epoch_ms(epoch_ms: float) -> float:
    """Reject timestamps a ``datetime`` cannot represent."""

    try:
        datetime.fromtimestamp(float(epoch_ms) / 1000.0, tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as exc:
        raise TimeDecodeError(f"timestamp out of range: {epoch_ms!r}") from exc
    return float(epoch_ms)


class HttpTimeProvider:
    """Fetches the current time for a zone from a JSON time API."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._base_url = base_url
        self._timeout_s = float(timeout_s)
        self._session = session or requests.Session()

    def fetch_epoch_ms(self, time_zone: str) -> float:
        try:
            response = self._session.get(
                self._base_url,
                params={"timeZone": time_zone},
                headers={"Accept": "application/json"},
                timeout=self._timeout_s,
            )
        except requests.exceptions.RequestException as exc:
            raise TimeRequestError(f"network request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise TimeRequestError(f"unexpected status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TimeDecodeError("failed to parse response") from exc

        epoch_ms = decode_epoch_millis(payload, time_zone=time_zone)
        logger.debug("Remote time for %s: %.0f", time_zone, epoch_ms)
        return epoch_ms

    def close(self) -> None:
        self._session.close()


class CommandTimeProvider:
    """Asks a local helper executable for the time.

    The helper receives the zone as its last argument and prints
    ``{"epoch_millis": <number>}`` on stdout.
    """

    def __init__(self, argv: list[str], *, timeout_s: float = 5.0) -> None:
        if not argv:
            raise ValueError("argv must not be empty")
        self._argv = list(argv)
        self._timeout_s = float(timeout_s)

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    def fetch_epoch_ms(self, time_zone: str) -> float:
        try:
            proc = subprocess.run(
                [*self._argv, time_zone],
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise TimeRequestError(f"time command failed: {exc}") from exc

        if proc.returncode != 0:
            detail = proc.stderr.strip() or f"exit status {proc.returncode}"
            raise TimeRequestError(f"time command failed: {detail}")

        try:
            payload = json.loads(proc.stdout)
        except ValueError as exc:
            raise TimeDecodeError("time command returned invalid JSON") from exc

        value = payload.get("epoch_millis") if isinstance(payload, dict) else None
        if not _is_number(value):
            raise TimeDecodeError("time command returned no epoch_millis")
        return checked_epoch_ms(value)


def build_time_provider(config: ClockConfig, *, session: requests.Session | None = None) -> TimeProvider:
    """Prefer the local time command when one is configured and installed."""

    if config.time_command:
        if shutil.which(config.time_command[0]) is not None:
            logger.info("Using local time command %s", config.time_command[0])
            return CommandTimeProvider(list(config.time_command), timeout_s=config.request_timeout_s)
        logger.warning("Time command %s not found; using %s", config.time_command[0], config.time_url)
    return HttpTimeProvider(
        base_url=config.time_url,
        timeout_s=config.request_timeout_s,
        session=session,
    )
