"""Render pipeline - timeline -> segments -> clips + audio -> assembled, published asset."""

import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional

from app.core.config import Settings
from app.core.logging_config import get_logger
from app.models.schemas import AssemblyJob, PublishedAsset, RenderRequest, Timeline
from app.services.assembler import Assembler
from app.services.audio_mixer import AudioMixer
from app.services.generation_scheduler import GenerationScheduler
from app.services.music_service import MusicService
from app.services.plan_provider import LLMPlanProvider, PlanProvider, validate_timeline
from app.services.provider_registry import ProviderRegistry
from app.services.segmenter import Segmenter
from app.services.storage_service import StorageService, get_storage_service
from app.services.tts_client import NarrationBuilder
from app.utils.io_utils import create_job_work_dir, write_json


class RenderPipeline:
    """One end-to-end render. Collaborators are injectable for tests."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        plan_provider: Optional[PlanProvider] = None,
        storage: Optional[StorageService] = None,
        registry: Optional[ProviderRegistry] = None,
        scheduler: Optional[GenerationScheduler] = None,
        mixer: Optional[AudioMixer] = None,
        narration: Optional[NarrationBuilder] = None,
        music: Optional[MusicService] = None,
        assembler: Optional[Assembler] = None,
    ):
        """
        Initialize pipeline.

        Args:
            settings: Application settings
            logger: Logger instance
            plan_provider: Timeline source (LLM by default)
            storage: Durable storage
            registry: Provider capability table
            scheduler: Generation scheduler
            mixer: Audio mixer
            narration: Narration track builder
            music: Background music source
            assembler: Assembler
        """
        self.settings = settings
        self.logger = logger
        self.storage = storage or get_storage_service(settings, logger)
        self.registry = registry or ProviderRegistry(settings, logger)
        self.plan_provider = plan_provider or LLMPlanProvider(settings, logger)
        self.segmenter = Segmenter(settings, logger, registry=self.registry)
        self.scheduler = scheduler or GenerationScheduler(settings, logger, self.registry, self.storage)
        self.mixer = mixer or AudioMixer(settings, logger)
        self.narration = narration or NarrationBuilder(settings, logger)
        self.music = music or MusicService(settings, logger)
        self.assembler = assembler or Assembler(settings, logger, self.storage)

    def run(self, job_id: str, request: RenderRequest) -> PublishedAsset:
        """
        Render one request.

        Args:
            job_id: Job identifier (work directory and storage prefix)
            request: Render request

        Returns:
            Published asset with the dropped segment indices filled in

        Raises:
            RenderError subclasses on fatal failures
        """
        log = get_logger(__name__, job_id=job_id)
        started = time.time()
        work_dir = create_job_work_dir(self.settings.work_dir, job_id)

        stage_start = time.time()
        log.info(f"Step 1: Planning timeline ({request.duration}s, style {request.visual_style})...")
        timeline = validate_timeline(self.plan_provider.plan(request), request.duration)
        log.info(f"✅ Timeline validated in {time.time() - stage_start:.1f}s")
        if request.demo_mode:
            write_json(work_dir / "demo" / "plan.json", timeline.model_dump(mode="json"))

        stage_start = time.time()
        log.info("Step 2: Segmenting timeline...")
        segments = self.segmenter.segment(timeline)
        log.info(f"✅ {len(segments)} segments in {time.time() - stage_start:.2f}s")
        if request.demo_mode:
            write_json(work_dir / "demo" / "segments.json", [s.model_dump(mode="json") for s in segments])

        stage_start = time.time()
        log.info("Step 3: Generating clips and mixing audio in parallel...")
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"audio-{job_id}") as audio_pool:
            audio_future = audio_pool.submit(self.build_audio, timeline, work_dir, job_id)
            results = self.scheduler.run(segments, work_dir, job_id)
            audio_path = audio_future.result()
        log.info(f"✅ Clips and audio ready in {time.time() - stage_start:.1f}s")

        survivors = {r.segment_index for r in results}
        dropped = [s.index for s in segments if s.index not in survivors]
        if request.demo_mode:
            write_json(work_dir / "demo" / "results.json", [r.model_dump(mode="json") for r in results])

        stage_start = time.time()
        log.info(f"Step 4: Assembling {len(results)} clips ({len(dropped)} dropped)...")
        ordered = sorted(results, key=lambda r: r.start)
        assembly_job = AssemblyJob(
            job_id=job_id,
            clips=[r.local_path for r in ordered],
            clip_durations=[r.duration for r in ordered],
            audio_path=audio_path,
            work_dir=work_dir,
            timeline=timeline,
            auxiliary_urls=[r.published_url for r in ordered if r.published_url],
        )
        asset = self.assembler.assemble(assembly_job)
        asset.dropped_segments = dropped
        log.info(f"✅ Assembled in {time.time() - stage_start:.1f}s")

        log.info(f"🎥 Render complete in {time.time() - started:.1f}s: {asset.url}")
        return asset

    def build_audio(self, timeline: Timeline, work_dir: Path, job_id: str) -> Path:
        """Narration + music -> mixed track. Missing inputs are tolerated by the mixer."""
        log = get_logger(__name__, job_id=job_id, stage="audio")
        stage_start = time.time()
        narration_path = self.narration.build(timeline, work_dir)
        mood = timeline.music_mood or next((s.scene_mood for s in timeline.seconds if s.scene_mood), None)
        music_path = self.music.fetch(mood)
        audio_path = self.mixer.render(timeline, work_dir / "audio" / "mix.wav", narration_path, music_path)
        log.info(f"✅ Audio mixed in {time.time() - stage_start:.1f}s")
        return audio_path
