"""Rate Limiter - throttles provider API calls made from concurrent segment tasks."""

import time
from collections import defaultdict
from threading import Lock
from typing import Optional


class RateLimiter:
    """Thread-safe sliding-window rate limiter."""

    def __init__(self, max_calls: int = 60, time_window: float = 60.0):
        """
        Initialize rate limiter.

        Args:
            max_calls: Maximum number of calls allowed in time_window
            time_window: Time window in seconds (default: 60 seconds)
        """
        self.max_calls = max_calls
        self.time_window = time_window
        self.calls = defaultdict(list)
        self.lock = Lock()

    def _prune(self, endpoint: str, now: float) -> list[float]:
        calls = self.calls[endpoint]
        calls[:] = [call_time for call_time in calls if now - call_time < self.time_window]
        return calls

    def wait_if_needed(self, endpoint: str = "default", max_wait: Optional[float] = None) -> float:
        """
        Block until a call to `endpoint` fits in the window, then record it.

        The lock is only held while checking the window, never while sleeping.

        Args:
            endpoint: Endpoint key
            max_wait: Give up after this many seconds without recording the call

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        while True:
            with self.lock:
                now = time.time()
                calls = self._prune(endpoint, now)
                if len(calls) < self.max_calls:
                    calls.append(now)
                    return waited
                wait_time = (calls[0] + self.time_window) - now
            if max_wait is not None:
                if max_wait - waited <= 0:
                    return waited
                wait_time = min(wait_time, max_wait - waited)
            wait_time = max(wait_time, 0.001)
            time.sleep(wait_time)
            waited += wait_time

    def reset(self, endpoint: Optional[str] = None) -> None:
        """Reset one endpoint, or all endpoints when None."""
        with self.lock:
            if endpoint:
                self.calls[endpoint] = []
            else:
                self.calls.clear()


_provider_limiters: dict[str, RateLimiter] = {}
_registry_lock = Lock()


def get_provider_limiter(provider: str, max_calls: int = 30, time_window: float = 60.0) -> RateLimiter:
    """Get or create the shared limiter for one generation provider."""
    with _registry_lock:
        if provider not in _provider_limiters:
            _provider_limiters[provider] = RateLimiter(max_calls=max_calls, time_window=time_window)
        return _provider_limiters[provider]


def reset_provider_limiters() -> None:
    """Forget every shared limiter."""
    with _registry_lock:
        _provider_limiters.clear()
