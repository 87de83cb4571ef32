"""Shared pytest fixtures and configuration."""

import pytest

from app.core.config import Settings
from app.core.logging_config import get_logger
from app.models.schemas import Second, SoundCue, Timeline
from app.utils.rate_limiter import reset_provider_limiters


@pytest.fixture(autouse=True)
def _fresh_rate_limiters():
    """Provider limiters are process-wide; keep tests independent."""
    reset_provider_limiters()
    yield
    reset_provider_limiters()


@pytest.fixture
def settings(tmp_path):
    """Create test settings instance with every path under tmp_path."""
    return Settings(
        work_dir=str(tmp_path / "jobs"),
        local_storage_path=str(tmp_path / "published"),
        job_store_path=str(tmp_path / "job_store"),
        music_cache_dir=str(tmp_path / "music"),
        provider_poll_interval_seconds=0.01,
        provider_max_wait_seconds=1.0,
        download_attempts=3,
        min_clip_bytes=100,
        openai_api_key=None,
        elevenlabs_api_key=None,
        freesound_api_key=None,
        fal_api_key=None,
        runway_api_key=None,
        replicate_api_token=None,
    )


@pytest.fixture
def logger():
    """Create test logger instance."""
    return get_logger(__name__)


def build_timeline(duration, cues=None, visual_style="cinematic", extras=None):
    """Timeline of `duration` seconds; `cues` gives one sound cue per second, `extras` maps t to extra fields."""
    seconds = []
    for t in range(duration):
        fields = {"t": t, "visual": f"shot {t}"}
        if cues:
            fields["sound_cue"] = SoundCue(cues[t])
        fields.update((extras or {}).get(t, {}))
        seconds.append(Second(**fields))
    return Timeline(seconds=seconds, visual_style=visual_style)


@pytest.fixture
def timeline_factory():
    """Factory for simple timelines."""
    return build_timeline
