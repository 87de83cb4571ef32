"""Tests for RateLimiter."""

import threading
import time

import pytest

from app.utils.rate_limiter import RateLimiter, get_provider_limiter


def test_calls_within_limit_do_not_wait():
    limiter = RateLimiter(max_calls=3, time_window=60)

    assert [limiter.wait_if_needed("fal") for _ in range(3)] == [0.0, 0.0, 0.0]


def test_call_over_limit_waits_for_window():
    limiter = RateLimiter(max_calls=2, time_window=0.1)
    limiter.wait_if_needed("fal")
    limiter.wait_if_needed("fal")

    assert limiter.wait_if_needed("fal") > 0
    assert limiter.wait_if_needed("runway") == 0.0


def test_provider_limiters_are_shared():
    assert get_provider_limiter("kling-pro") is get_provider_limiter("kling-pro")
    assert get_provider_limiter("kling-pro") is not get_provider_limiter("ltx-video")


def test_wait_gives_up_at_max_wait():
    limiter = RateLimiter(max_calls=1, time_window=30)
    limiter.wait_if_needed("fal")

    started = time.time()
    waited = limiter.wait_if_needed("fal", max_wait=0.05)

    assert waited == pytest.approx(0.05, abs=0.01)
    assert time.time() - started < 1
    assert len(limiter.calls["fal"]) == 1


def test_sleeping_caller_does_not_block_other_endpoints():
    limiter = RateLimiter(max_calls=1, time_window=0.5)
    limiter.wait_if_needed("fal")
    waiter = threading.Thread(target=limiter.wait_if_needed, args=("fal",))
    waiter.start()
    time.sleep(0.05)

    started = time.time()
    limiter.wait_if_needed("runway")

    assert time.time() - started < 0.2
    waiter.join()
