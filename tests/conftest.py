"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from locshare.lib.store import MemoryStore

ROUTE_ROWS = [
    ("40.712800", "-74.006000", "5.0", "1700000000000", "1.5", "90"),
    ("40.713800", "-74.006000", "4.0", "1700000010000", "", ""),
    ("40.714800", "-74.006000", "6.5", "1700000020000", "2.0", "0"),
]


@pytest.fixture(autouse=True)
def _reset_locshare_logger() -> Iterator[None]:
    """Drop handlers bound to streams of a finished CLI invocation."""
    yield
    logger = logging.getLogger("locshare")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def clock() -> Callable[[], int]:
    """Deterministic millisecond clock advancing one second per call."""
    state = {"now": 1_700_000_000_000}

    def tick() -> int:
        state["now"] += 1000
        return state["now"]

    return tick


@pytest.fixture
def route_csv(tmp_path: Path) -> Path:
    """Three-point track heading north along a meridian."""
    path = tmp_path / "route.csv"
    lines = ["latitude,longitude,accuracy,timestamp,speed,heading"]
    lines.extend(",".join(row) for row in ROUTE_ROWS)
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def cli_data_dir(tmp_path: Path) -> Path:
    """Data directory used by CLI tests."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def cli_env(tmp_path: Path, cli_data_dir: Path) -> dict[str, str]:
    """Environment isolating CLI tests from any user configuration."""
    return {
        "LOCSHARE_CONFIG": str(tmp_path / "no-config.toml"),
        "LOCSHARE_DATA_DIR": str(cli_data_dir),
        "LOCSHARE_BASE_URL": "http://viewer.test",
    }
