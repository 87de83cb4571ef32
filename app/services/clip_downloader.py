"""Clip Downloader - streams provider outputs to disk and rejects undersized files."""

from pathlib import Path
from typing import Any

import requests

from app.core.config import Settings
from app.core.exceptions import DeadlineExceeded, DownloadIntegrityError
from app.utils.deadline import Deadline

CHUNK_SIZE = 1024 * 256


class ClipDownloader:
    """Downloads one clip with a bounded number of attempts."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize downloader.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.attempts = max(1, settings.download_attempts)
        self.min_bytes = settings.min_clip_bytes

    def download(self, url: str, destination: Path) -> int:
        """
        Stream `url` to `destination` and validate the result.

        Args:
            url: Source URL
            destination: Local file path (overwritten)

        Returns:
            Size of the validated file in bytes

        Raises:
            DownloadIntegrityError: If no attempt yields a file above the size threshold
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        last_problem = "no attempt made"

        for attempt in range(1, self.attempts + 1):
            try:
                self._stream(url, destination)
            except (requests.exceptions.RequestException, DeadlineExceeded) as e:
                last_problem = f"transfer error: {e}"
                self.logger.warning(f"Download attempt {attempt}/{self.attempts} failed: {e}")
                destination.unlink(missing_ok=True)
                continue

            size = self.validate(destination)
            if size is not None:
                self.logger.debug(f"Downloaded {destination.name} ({size} bytes) on attempt {attempt}")
                return size

            last_problem = f"file missing or <= {self.min_bytes} bytes"
            self.logger.warning(
                f"Download attempt {attempt}/{self.attempts} produced an undersized file: {destination.name}"
            )
            destination.unlink(missing_ok=True)

        raise DownloadIntegrityError(f"{url}: {last_problem} after {self.attempts} attempts")

    def validate(self, path: Path):
        """Return the file size when the file exists and exceeds the threshold, else None."""
        if not path.is_file():
            return None
        size = path.stat().st_size
        return size if size > self.min_bytes else None

    def _stream(self, url: str, destination: Path) -> None:
        deadline = Deadline(self.settings.download_timeout_seconds, operation="clip download")
        with requests.get(url, stream=True, timeout=deadline.cap(self.settings.http_timeout_seconds)) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    deadline.check()
                    if chunk:
                        f.write(chunk)
