"""Tests for server startup error scenarios.

Covers wrong-type and out-of-range config values, which must abort the
process before uvicorn binds a socket.
"""

from __future__ import annotations

import os
import subprocess
import sys
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    env = os.environ.copy()
    env["MDGATE__CACHE__DB_PATH"] = str(tmp_path / "store.db")
    env["MDGATE__SERVER__HOST"] = "127.0.0.1"
    return env


def _run_and_wait(env: dict[str, str], timeout: int = 10) -> subprocess.CompletedProcess[str]:
    """Start the server with stdin closed and wait for it to exit.

    Suitable for crash scenarios where the server exits before serving.
    """
    return subprocess.run(
        [sys.executable, "-m", "mdgate.server"],
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
    )


class TestBadConfig:
    def test_crashes_on_wrong_port_type(self, subprocess_env: dict[str, str]) -> None:
        """A non-integer port value causes a non-zero exit."""
        env = {**subprocess_env, "MDGATE__SERVER__PORT": "not-a-number"}
        result = _run_and_wait(env)
        assert result.returncode != 0
        assert "ValidationError" in result.stderr

    def test_crashes_on_unknown_log_level(self, subprocess_env: dict[str, str]) -> None:
        env = {**subprocess_env, "MDGATE__LOGGING__LEVEL": "CHATTY"}
        result = _run_and_wait(env)
        assert result.returncode != 0

    def test_crashes_on_unknown_converter_backend(self, subprocess_env: dict[str, str]) -> None:
        env = {**subprocess_env, "MDGATE__CONVERTER__BACKEND": "magic"}
        result = _run_and_wait(env)
        assert result.returncode != 0
