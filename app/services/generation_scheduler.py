"""Generation Scheduler - runs segments on a bounded pool with ordered provider fallback."""

from pathlib import Path
from typing import Any, Callable, Optional

from app.core.config import Settings
from app.core.exceptions import (
    ExhaustedProvidersError,
    NoClipsError,
    ProviderError,
)
from app.core.logging_config import get_logger
from app.models.schemas import GenerationRequest, GenerationResult, ProviderCapability, Segment
from app.services.clip_downloader import ClipDownloader
from app.services.generation_providers import GenerationProvider, build_provider
from app.services.provider_registry import ProviderRegistry
from app.services.storage_service import StorageService
from app.utils.io_utils import segment_clip_path
from app.utils.parallel_executor import ParallelExecutor

ProviderFactory = Callable[[ProviderCapability, Settings, Any], GenerationProvider]


class GenerationScheduler:
    """Drives every segment to a validated local clip, dropping the ones that cannot be made."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        registry: ProviderRegistry,
        storage: StorageService,
        downloader: Optional[ClipDownloader] = None,
        provider_factory: ProviderFactory = build_provider,
    ):
        """
        Initialize scheduler.

        Args:
            settings: Application settings
            logger: Logger instance
            registry: Provider capability table
            storage: Durable storage for per-segment clips
            downloader: Clip downloader (built from settings when omitted)
            provider_factory: Builds an adapter for a capability
        """
        self.settings = settings
        self.logger = logger
        self.registry = registry
        self.storage = storage
        self.downloader = downloader or ClipDownloader(settings, logger)
        self.provider_factory = provider_factory
        self.parallel_executor = ParallelExecutor(settings, logger)
        self.aspect_ratio = "16:9" if settings.video_width >= settings.video_height else "9:16"

    def run(self, segments: list[Segment], work_dir: Path, job_id: str) -> list[GenerationResult]:
        """
        Generate every segment with at most `generation_concurrency` active at once.

        Args:
            segments: Ordered segments
            work_dir: Per-job scratch directory
            job_id: Owning job (used for storage keys and log context)

        Returns:
            Surviving results in original segment order

        Raises:
            NoClipsError: If no segment survived
        """
        self.logger.info(
            f"🎥 Generating {len(segments)} segments (concurrency {self.settings.generation_concurrency})"
        )
        tasks = [self._segment_task(segment, work_dir, job_id) for segment in segments]
        names = [f"segment {s.index} [{s.start}-{s.end}] {s.provider}" for s in segments]
        outcomes = self.parallel_executor.execute_batch(
            tasks, task_names=names, max_workers=self.settings.generation_concurrency
        )

        survivors: list[GenerationResult] = []
        for segment, (result, error) in zip(segments, outcomes):
            if error is not None:
                self.logger.warning(f"Dropping segment {segment.index}: {error}")
                continue
            survivors.append(result)

        self.logger.info(f"Generation finished: {len(survivors)}/{len(segments)} segments survived")
        if not survivors:
            raise NoClipsError(f"All {len(segments)} segments failed; nothing to assemble")
        return survivors

    def _segment_task(self, segment: Segment, work_dir: Path, job_id: str) -> Callable[[], GenerationResult]:
        def run_segment() -> GenerationResult:
            return self.generate_segment(segment, work_dir, job_id)

        return run_segment

    def generate_segment(self, segment: Segment, work_dir: Path, job_id: str) -> GenerationResult:
        """
        Fallback chain -> download -> validate -> publish for one segment.

        Raises:
            ExhaustedProvidersError: If every provider in the chain failed
            DownloadIntegrityError: If the chosen output could not be downloaded intact
        """
        log = get_logger(__name__, job_id=job_id, segment=segment.index)
        chain = self.registry.fallback_chain(segment)
        attempted: list[str] = []
        source_url: Optional[str] = None
        chosen: Optional[ProviderCapability] = None

        for capability in chain:
            attempted.append(capability.name)
            request = GenerationRequest(
                prompt=segment.prompt,
                duration=capability.request_duration_for(segment.duration) if segment.corrected else segment.duration,
                style=segment.style,
                aspect_ratio=self.aspect_ratio,
                overrides=segment.overrides,
            )
            try:
                provider = self.provider_factory(capability, self.settings, log)
                log.info(f"Trying {capability.name} for {request.duration}s")
                source_url = provider.generate(request)
                chosen = capability
                break
            except ProviderError as e:
                log.warning(f"Provider attempt failed, moving on: {e}")
            except ValueError as e:
                log.warning(f"Provider {capability.name} unusable: {e}")

        if chosen is None or not source_url:
            raise ExhaustedProvidersError(segment.index, attempted)

        local_path = segment_clip_path(work_dir, segment.index, chosen.name)
        byte_size = self.downloader.download(source_url, local_path)

        result = GenerationResult(
            segment_index=segment.index,
            start=segment.start,
            duration=segment.duration,
            success=True,
            provider=chosen.name,
            source_url=source_url,
            local_path=local_path,
            byte_size=byte_size,
            validated=True,
        )

        try:
            result.published_url = self.storage.publish_verified(
                local_path, f"jobs/{job_id}/clips/{local_path.name}", content_type="video/mp4"
            )
        except Exception as e:
            log.warning(f"Publishing clip failed (clip kept locally): {e}")

        return result

