"""Job stores - in-memory and JSON-file persistence for render jobs."""

import json
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from app.core.config import Settings
from app.models.schemas import Job, JobStatus, PublishedAsset, RenderRequest

JOB_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class JobStore:
    """create / get / update for render jobs. Implementations must be thread-safe."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the store.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self._lock = threading.Lock()

    def create(self, job_id: str, request: Optional[RenderRequest] = None) -> Job:
        job = Job(id=job_id, status=JobStatus.PENDING, request=request)
        with self._lock:
            self._save(job)
        self.logger.debug(f"Job created: {job_id}")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._load(job_id)

    def update(
        self,
        job_id: str,
        status: JobStatus,
        result: Optional[PublishedAsset] = None,
        error: Optional[str] = None,
    ) -> Job:
        """
        Move a job to a new status.

        Raises:
            KeyError: If the job does not exist
        """
        with self._lock:
            job = self._load(job_id)
            if job is None:
                raise KeyError(job_id)
            job.status = status
            job.result = result
            job.error = error
            job.updated_at = datetime.utcnow()
            self._save(job)
        self.logger.debug(f"Job {job_id} -> {status.value}")
        return job

    def _save(self, job: Job) -> None:
        raise NotImplementedError("Subclass must implement _save()")

    def _load(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError("Subclass must implement _load()")


class InMemoryJobStore(JobStore):
    """Process-local store. Jobs are lost on restart."""

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger)
        self._jobs: dict[str, Job] = {}

    def _save(self, job: Job) -> None:
        self._jobs[job.id] = job.model_copy(deep=True)

    def _load(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None


class JsonFileJobStore(JobStore):
    """One JSON file per job under `job_store_path`."""

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger)
        self.storage_path = Path(settings.job_store_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def _path(self, job_id: str) -> Path:
        return self.storage_path / f"{job_id}.json"

    def _save(self, job: Job) -> None:
        file_path = self._path(job.id)
        tmp_path = file_path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(job.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        tmp_path.replace(file_path)

    def _load(self, job_id: str) -> Optional[Job]:
        if not JOB_ID_PATTERN.fullmatch(job_id):
            return None
        file_path = self._path(job_id)
        if not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return Job.model_validate(json.load(f))

    def list_jobs(self) -> list[str]:
        return sorted(f.stem for f in self.storage_path.glob("*.json"))


def get_job_store(settings: Settings, logger: Any) -> JobStore:
    """Job store selected by settings.job_store."""
    if settings.job_store == "json":
        return JsonFileJobStore(settings, logger)
    return InMemoryJobStore(settings, logger)
