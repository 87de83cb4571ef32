"""Tests for Generation Scheduler."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from app.core.exceptions import DownloadIntegrityError, NoClipsError, ProviderError
from app.models.schemas import Segment
from app.services.generation_scheduler import GenerationScheduler
from app.services.provider_registry import ProviderRegistry


class FakeProvider:
    """Fails for segments whose prompt is listed in `failing`, otherwise returns a URL."""

    def __init__(self, name, failing, calls, delay=0.0, tracker=None):
        self.name = name
        self.failing = failing
        self.calls = calls
        self.delay = delay
        self.tracker = tracker

    def generate(self, request):
        self.calls.append((self.name, request.prompt, request.duration))
        if self.tracker:
            self.tracker.enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if request.prompt in self.failing:
                raise ProviderError(self.name, "forced failure")
            return f"https://cdn/{self.name}/{request.prompt}.mp4"
        finally:
            if self.tracker:
                self.tracker.leave()


class ConcurrencyTracker:
    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def leave(self):
        with self.lock:
            self.active -= 1


def fake_downloader(size=50_000):
    downloader = MagicMock()

    def download(url, destination):
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"\0" * 16)
        return size

    downloader.download.side_effect = download
    return downloader


def make_segments(count, duration=10):
    return [
        Segment(
            index=i,
            start=i * duration,
            end=(i + 1) * duration - 1,
            duration=duration,
            provider="kling-pro",
            prompt=f"seg{i}",
        )
        for i in range(count)
    ]


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.publish_verified.side_effect = lambda path, key, content_type=None: f"https://store/{key}"
    return storage


def build_scheduler(settings, logger, storage, failing=(), calls=None, delay=0.0, tracker=None, downloader=None):
    calls = calls if calls is not None else []

    def factory(capability, _settings, _logger):
        return FakeProvider(capability.name, set(failing), calls, delay, tracker)

    return GenerationScheduler(
        settings,
        logger,
        ProviderRegistry(settings, logger),
        storage,
        downloader=downloader or fake_downloader(),
        provider_factory=factory,
    )


def test_all_segments_succeed_in_order(settings, logger, storage, tmp_path):
    scheduler = build_scheduler(settings, logger, storage)

    results = scheduler.run(make_segments(3), tmp_path, "job_1")

    assert [r.segment_index for r in results] == [0, 1, 2]
    assert all(r.success and r.validated for r in results)
    assert all(r.provider == "kling-pro" for r in results)
    assert results[1].published_url == "https://store/jobs/job_1/clips/seg_001_kling-pro.mp4"


def test_fallback_chain_walked_sequentially_on_failure(settings, logger, storage, tmp_path):
    calls = []
    settings.general_fallback_order = ["kling-pro", "runway-gen4", "ltx-video"]

    def factory(capability, _settings, _logger):
        failing = {"seg0"} if capability.name in ("kling-pro", "runway-gen4") else set()
        return FakeProvider(capability.name, failing, calls)

    scheduler = GenerationScheduler(
        settings, logger, ProviderRegistry(settings, logger), storage,
        downloader=fake_downloader(), provider_factory=factory,
    )

    result = scheduler.generate_segment(make_segments(1)[0], tmp_path, "job_1")

    assert result.provider == "ltx-video"
    assert [name for name, _, _ in calls] == ["kling-pro", "runway-gen4", "ltx-video"]


def test_exhausted_segment_is_dropped_siblings_survive(settings, logger, storage, tmp_path):
    """Every provider fails for one of three segments -> two results, no exception."""
    scheduler = build_scheduler(settings, logger, storage, failing={"seg1"})

    results = scheduler.run(make_segments(3), tmp_path, "job_1")

    assert [r.segment_index for r in results] == [0, 2]


def test_zero_survivors_raise_no_clips(settings, logger, storage, tmp_path):
    scheduler = build_scheduler(settings, logger, storage, failing={"seg0", "seg1"})

    with pytest.raises(NoClipsError):
        scheduler.run(make_segments(2), tmp_path, "job_1")


def test_download_integrity_failure_drops_segment(settings, logger, storage, tmp_path):
    downloader = MagicMock()
    downloader.download.side_effect = [DownloadIntegrityError("too small"), 50_000]
    settings.generation_concurrency = 1
    scheduler = build_scheduler(settings, logger, storage, downloader=downloader)

    results = scheduler.run(make_segments(2), tmp_path, "job_1")

    assert [r.segment_index for r in results] == [1]


def test_concurrency_is_bounded(settings, logger, storage, tmp_path):
    settings.generation_concurrency = 2
    tracker = ConcurrencyTracker()
    scheduler = build_scheduler(settings, logger, storage, delay=0.05, tracker=tracker)

    results = scheduler.run(make_segments(6), tmp_path, "job_1")

    assert len(results) == 6
    assert tracker.peak <= 2


def test_publish_failure_keeps_clip(settings, logger, storage, tmp_path):
    storage.publish_verified.side_effect = OSError("bucket gone")
    scheduler = build_scheduler(settings, logger, storage)

    results = scheduler.run(make_segments(1), tmp_path, "job_1")

    assert len(results) == 1
    assert results[0].published_url is None
    assert results[0].local_path.exists()


def test_corrected_segment_requests_supported_duration(settings, logger, storage, tmp_path):
    calls = []
    scheduler = build_scheduler(settings, logger, storage, calls=calls)
    segment = make_segments(1, duration=7)[0]
    segment.corrected = True

    scheduler.generate_segment(segment, tmp_path, "job_1")

    # kling-pro supports 5 and 10: the smallest duration covering 7s is requested
    assert calls[0] == ("kling-pro", "seg0", 10)
