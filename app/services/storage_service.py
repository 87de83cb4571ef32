"""Durable storage - publish local files and verify that published URLs answer."""

import shutil
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import requests

from app.core.config import Settings
from app.core.exceptions import PublishVerificationWarning


class StorageService:
    """publish(local_path, key) -> public URL; verify(url) -> reachable."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize storage.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger

    def publish(self, local_path: Path, key: str, content_type: Optional[str] = None) -> str:
        raise NotImplementedError("Subclass must implement publish()")

    def verify(self, url: str) -> bool:
        """HEAD-style reachability check. Never raises."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path)).exists()
        try:
            response = requests.head(url, timeout=self.settings.verify_timeout_seconds, allow_redirects=True)
            return response.status_code < 400
        except requests.exceptions.RequestException as e:
            self.logger.debug(f"HEAD {url} failed: {e}")
            return False

    def publish_verified(self, local_path: Path, key: str, content_type: Optional[str] = None) -> str:
        """
        Publish, then check reachability.

        An unreachable URL is logged as a PublishVerificationWarning and still returned.
        """
        url = self.publish(local_path, key, content_type)
        if self.verify(url):
            self.logger.info(f"✅ Published and reachable: {url}")
        else:
            warning = PublishVerificationWarning(f"Published asset not reachable (HEAD failed): {url}")
            self.logger.warning(f"⚠️ {type(warning).__name__}: {warning}")
        return url

    @staticmethod
    def _require_file(local_path: Path) -> None:
        if not Path(local_path).is_file():
            raise FileNotFoundError(f"File to publish does not exist: {local_path}")


class LocalStorageService(StorageService):
    """Copies files under a local root. For development and tests."""

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger)
        self.base_path = Path(settings.local_storage_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_public_url(self, key: str) -> str:
        if self.settings.local_storage_base_url:
            return f"{self.settings.local_storage_base_url.rstrip('/')}/{key}"
        return (self.base_path / key).as_uri()

    def publish(self, local_path: Path, key: str, content_type: Optional[str] = None) -> str:
        self._require_file(local_path)
        destination = self.base_path / key
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, destination)
        return self.get_public_url(key)


class GCSStorageService(StorageService):
    """Google Cloud Storage bucket with public objects."""

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger)
        from google.cloud import storage

        if not settings.gcs_bucket_name:
            raise ValueError("GCS bucket not configured. Set GCS_BUCKET_NAME in .env")
        self._client = storage.Client(project=settings.gcs_project_id)
        self._bucket = self._client.bucket(settings.gcs_bucket_name)

    def get_public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.settings.gcs_bucket_name}/{key}"

    def publish(self, local_path: Path, key: str, content_type: Optional[str] = None) -> str:
        self._require_file(local_path)
        blob = self._bucket.blob(key)
        blob.cache_control = "public, max-age=86400"
        blob.upload_from_filename(str(local_path), content_type=content_type)
        return self.get_public_url(key)


def get_storage_service(settings: Settings, logger: Any) -> StorageService:
    """Storage backend selected by settings.storage_backend."""
    if settings.storage_backend == "gcs":
        return GCSStorageService(settings, logger)
    return LocalStorageService(settings, logger)
