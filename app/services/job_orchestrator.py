"""Job Orchestrator - submit returns at once; renders run as background tasks."""

import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Literal, Optional, Union

from app.core.config import Settings
from app.core.logging_config import get_logger
from app.models.schemas import Job, JobStatus, RenderRequest
from app.pipelines.render_pipeline import RenderPipeline
from app.storage.job_store import JobStore, get_job_store
from app.utils.error_handler import format_error_message, get_fallback_suggestion

NOT_FOUND = "not_found"


class JobOrchestrator:
    """
    pending -> done | error, one background task per job.

    Only the task that owns a job id ever updates that job.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        store: Optional[JobStore] = None,
        pipeline_factory: Optional[Callable[[], RenderPipeline]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            logger: Logger instance
            store: Job store (selected by settings when omitted)
            pipeline_factory: Builds the pipeline used for each job
        """
        self.settings = settings
        self.logger = logger
        self.store = store or get_job_store(settings, logger)
        self.pipeline_factory = pipeline_factory or (lambda: RenderPipeline(settings, logger))
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, settings.max_parallel_jobs), thread_name_prefix="render-job"
        )
        self._futures: dict[str, Future] = {}

    def submit(self, request: RenderRequest) -> str:
        """Create a pending job and schedule it. Returns the job id immediately."""
        job_id = f"job_{uuid.uuid4().hex[:12]}"
        self.store.create(job_id, request)
        self.logger.info(f"Job submitted: {job_id} ({request.duration}s, {request.visual_style})")
        future = self._executor.submit(self._run, job_id, request)
        self._futures[job_id] = future
        future.add_done_callback(lambda _: self._futures.pop(job_id, None))
        return job_id

    def status(self, job_id: str) -> Union[JobStatus, Literal["not_found"]]:
        job = self.store.get(job_id)
        return job.status if job else NOT_FOUND

    def result(self, job_id: str) -> Optional[Job]:
        """The job record (asset on done, message on error), or None for an unknown id."""
        return self.store.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Block until the job's task finishes. Finished jobs are answered from the store."""
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.store.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job_id: str, request: RenderRequest) -> None:
        log = get_logger(__name__, job_id=job_id)
        log.info("=" * 60)
        log.info(f"Starting render job {job_id}")
        log.info("=" * 60)
        try:
            asset = self.pipeline_factory().run(job_id, request)
        except Exception as e:
            message = format_error_message(
                "Render job", e, context={"job_id": job_id}, suggestion=get_fallback_suggestion(e)
            )
            log.error(f"❌ {message}")
            self.store.update(job_id, JobStatus.ERROR, error=message)
            return

        self.store.update(job_id, JobStatus.DONE, result=asset)
        log.info(f"✅ Job {job_id} done: {asset.url}")
