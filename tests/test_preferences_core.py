from __future__ import annotations

import json
from pathlib import Path

import pytest

from speed_clock.preferences import DEFAULT_THEME, PREFS_PATH_ENV, PreferencesStore


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    store = PreferencesStore(tmp_path / "prefs.json")

    assert store.speed() == 1.0
    assert store.theme() == DEFAULT_THEME
    assert store.get("speed") is None


def test_corrupt_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text("{ not json", encoding="utf-8")

    store = PreferencesStore(path)

    assert store.speed() == 1.0
    assert store.theme() == "dark"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("0.5", 0.5), ("0.6667", 2.0 / 3.0), ("1.5", 1.5), ("4", 4.0), ("1.25", 1.0), ("fast", 1.0), ("nan", 1.0)],
)
def test_speed_values_are_matched_to_known_set(tmp_path: Path, raw: str, expected: float) -> None:
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"version": 1, "values": {"speed": raw}}), encoding="utf-8")

    assert PreferencesStore(path).speed() == pytest.approx(expected)


def test_non_string_values_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"version": 1, "values": {"speed": 2, "theme": "light"}}), encoding="utf-8")

    store = PreferencesStore(path)

    assert store.speed() == 1.0
    assert store.theme() == "light"


def test_round_trip_persists_strings(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "prefs.json"
    store = PreferencesStore(path)

    store.set_speed(2.0 / 3.0)
    store.set_theme("light")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["values"] == {"speed": "0.6667", "theme": "light"}

    reloaded = PreferencesStore(path)
    assert reloaded.speed() == pytest.approx(2.0 / 3.0)
    assert reloaded.theme() == "light"


def test_unknown_theme_rejected_and_ignored(tmp_path: Path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"version": 1, "values": {"theme": "neon"}}), encoding="utf-8")
    store = PreferencesStore(path)

    assert store.theme() == "dark"
    with pytest.raises(ValueError):
        store.set_theme("neon")


def test_default_path_honours_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv(PREFS_PATH_ENV, str(target))

    assert PreferencesStore.default_path() == target
