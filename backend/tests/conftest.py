"""
Pytest configuration and fixtures for the B-roll inserter backend tests.
"""
import os
from unittest.mock import patch

import pytest

# Set test environment variables before importing settings
os.environ.update({
    "REDIS_URL": "redis://localhost:6379",
    "CLEANUP_TTL_SECONDS": "300",
})

from config import Settings, get_settings
from services.models import CandidateMatch, MediaAsset


class FakeRedis:
    """In-memory stand-in for the few Redis commands the store uses."""

    def __init__(self):
        self.data = {}

    def set(self, key, value):
        self.data[key] = value
        return True

    def get(self, key):
        return self.data.get(key)

    def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def scan_iter(self, match=None):
        prefix = (match or "").rstrip("*")
        return [key for key in list(self.data) if key.startswith(prefix)]


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; start every test from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with renders written under the test's temp directory."""
    return Settings(export_dir=str(tmp_path / "exports"))


@pytest.fixture
def fake_redis():
    """Patch the timeline store's Redis client with an in-memory fake."""
    redis = FakeRedis()
    with patch("services.timeline_store.get_redis", return_value=redis):
        yield redis


@pytest.fixture
def make_candidate():
    """Factory for candidate matches with sensible defaults."""

    def _make(broll_id, start_sec, confidence, aroll_id="aroll_1", **kwargs):
        fields = {
            "aroll_id": aroll_id,
            "segment_id": f"seg_{aroll_id}_{start_sec}",
            "broll_id": broll_id,
            "start_sec": start_sec,
            "end_sec": start_sec + 3,
            "confidence": confidence,
            "text": "We hiked up the mountain trail at sunrise",
        }
        fields.update(kwargs)
        return CandidateMatch(**fields)

    return _make


@pytest.fixture
def media_files(tmp_path):
    """Create an A-roll and three B-roll files on disk."""
    media_dir = tmp_path / "media"
    media_dir.mkdir()

    paths = {}
    for name in ["aroll", "b1", "b2", "b3"]:
        path = media_dir / f"{name}.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        paths[name] = str(path)
    return paths


@pytest.fixture
def primary_asset(media_files) -> MediaAsset:
    return MediaAsset(id="aroll_1", file_path=media_files["aroll"], duration_sec=10.0)


@pytest.fixture
def broll_assets(media_files) -> dict[str, MediaAsset]:
    return {
        "b1": MediaAsset(id="b1", file_path=media_files["b1"], duration_sec=3.0, description="Mountain trail at dawn"),
        "b2": MediaAsset(id="b2", file_path=media_files["b2"], duration_sec=4.5, description="City traffic at night"),
        "b3": MediaAsset(id="b3", file_path=media_files["b3"], description="Coffee being poured"),
    }
