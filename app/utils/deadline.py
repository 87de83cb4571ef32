"""Deadline-bound calls - one timeout mechanism for network calls, polling and ffmpeg."""

import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, Sequence

from app.core.exceptions import DeadlineExceeded


class Deadline:
    """A wall-clock budget started at construction."""

    def __init__(self, seconds: float, operation: str = "operation", clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.operation = operation
        self._clock = clock
        self._started = clock()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed())

    @property
    def expired(self) -> bool:
        return self.elapsed() >= self.seconds

    def check(self) -> None:
        """Raise DeadlineExceeded once the budget is spent."""
        if self.expired:
            raise DeadlineExceeded(self.operation, self.seconds)

    def cap(self, timeout: float) -> float:
        """Clamp a per-call timeout to what is left of the budget."""
        return max(0.001, min(timeout, self.remaining()))


def call_with_deadline(fn: Callable[[], Any], seconds: float, operation: str = "call") -> Any:
    """
    Run fn on a helper thread and stop waiting after `seconds`.

    The abandoned thread is left to finish on its own; its result is discarded.

    Raises:
        DeadlineExceeded: If fn has not returned in time
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="deadline")
    future = executor.submit(fn)
    try:
        return future.result(timeout=seconds)
    except FutureTimeout:
        future.cancel()
        raise DeadlineExceeded(operation, seconds) from None
    finally:
        executor.shutdown(wait=False)


def run_command(
    cmd: Sequence[str],
    seconds: float,
    operation: str = "command",
    cwd: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external process under a hard deadline.

    subprocess.run kills the child when the timeout fires.

    Raises:
        DeadlineExceeded: If the process outlives the deadline
        subprocess.CalledProcessError: If the process exits non-zero
    """
    try:
        return subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            check=True,
            timeout=seconds,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        raise DeadlineExceeded(operation, seconds) from None
