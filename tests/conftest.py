"""
Shared pytest fixtures and configuration for cronspine tests.

This module provides:
- Settings isolation (no CRONSPINE_* leakage from the environment or .env)
- Automatic markers based on test location
"""

import sys
from pathlib import Path

import pytest

# Ensure cronspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cronspine.core.config import clear_settings_cache  # noqa: E402


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Settings Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Run every test with clean settings and a private lock directory."""
    import os

    for key in list(os.environ):
        if key.startswith("CRONSPINE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CRONSPINE_LOCK_DIR", str(tmp_path / "locks"))
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reap_forked_children():
    """Kill supervisor children a failed e2e test left running, so the run can exit."""
    yield
    import multiprocessing

    for child in multiprocessing.active_children():
        child.kill()
        child.join()
