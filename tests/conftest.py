from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from helpers import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the developer's .env and provider keys out of the tests."""
    for name in (
        "GOOGLE_MAPS_API_KEY",
        "NOMINATIM_URL",
        "NOMINATIM_USER_AGENT",
        "GEOCODING_GOOGLE_API_KEY",
        "GEOCODING_BATCH_SIZE",
        "GEOCODING_ENABLED",
        "GEOCODING_PREFERRED_PROVIDER",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
