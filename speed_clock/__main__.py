from __future__ import annotations

import logging
import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    Lets ``python speed_clock/__main__.py`` work as well as
    ``python -m speed_clock``.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m speed_clock
    from .app import run  # type: ignore[attr-defined]
    from .config import ClockConfig  # type: ignore[attr-defined]
except ImportError:
    # Works when executed as a script
    _ensure_repo_root_on_path()
    from speed_clock.app import run  # type: ignore[attr-defined]
    from speed_clock.config import ClockConfig  # type: ignore[attr-defined]


def main() -> int:
    """Entry point for running the clock from the command line."""
    config = ClockConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(config=config)


if __name__ == "__main__":
    raise SystemExit(main())
