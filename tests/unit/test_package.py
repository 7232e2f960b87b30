"""Tests for goal-sync package structure and imports."""

from __future__ import annotations

import re
import subprocess
import sys


def test_package_is_importable() -> None:
    """``import goal_sync`` must succeed without errors."""
    import goal_sync  # noqa: F401


def test_package_has_version() -> None:
    """``goal_sync.__version__`` must be defined."""
    import goal_sync

    assert goal_sync.__version__ == "0.1.0"


def test_package_version_is_semver() -> None:
    """Version string must match semantic versioning format."""
    import goal_sync

    assert re.match(r"^\d+\.\d+\.\d+$", goal_sync.__version__)


def test_public_api_exports() -> None:
    """Everything in ``__all__`` is importable from the package root."""
    import goal_sync

    for name in goal_sync.__all__:
        assert hasattr(goal_sync, name), name


def test_main_module_help() -> None:
    """``python -m goal_sync --help`` must run and exit cleanly."""
    result = subprocess.run(
        [sys.executable, "-m", "goal_sync", "--help"],
        capture_output=True,
        text=True,
        timeout=30,
    )
    assert result.returncode == 0
    assert "push" in result.stdout
    assert "Traceback" not in result.stderr
