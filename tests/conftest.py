"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for gcp_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from gcp_mock import MockCloud  # noqa: E402


@pytest.fixture
def cloud() -> MockCloud:
    """Fresh in-memory cloud with synchronous-looking, immediately-done operations."""
    return MockCloud()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host environment out of configuration tests."""
    for key in (
        "GOOGLE_CLOUD_PROJECT",
        "GCLOUD_PROJECT",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "RECONCILE_ADOPT",
        "RECONCILE_LOCAL",
        "POLL_MAX_ATTEMPTS",
        "ZONE_POLL_INTERVAL",
        "REGION_POLL_INTERVAL",
        "GLOBAL_POLL_INTERVAL",
    ):
        monkeypatch.delenv(key, raising=False)
