"""Assembler - normalize/concat, mux, HLS packaging and publishing through ffmpeg."""

import subprocess
from pathlib import Path
from typing import Any, Optional, Sequence

from app.core.config import Settings
from app.core.exceptions import AssemblyStageError, DeadlineExceeded, NoClipsError
from app.models.schemas import AssemblyJob, PublishedAsset, Timeline
from app.services.storage_service import StorageService
from app.utils.deadline import call_with_deadline, run_command

# Approximate peak bandwidth per rendition height, for the master playlist
HLS_BANDWIDTH = {
    360: 800_000,
    480: 1_400_000,
    720: 2_800_000,
    1080: 5_000_000,
}

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
}


def _enable_between(start: float, end: float) -> str:
    return f"enable='between(t,{start:g},{end:g})'"


def _escape_filter_path(path: str) -> str:
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


def build_normalize_graph(
    clip_count: int,
    durations: Sequence[float],
    width: int,
    height: int,
    fps: int,
    timeline: Optional[Timeline] = None,
    first_overlay_input: Optional[int] = None,
) -> tuple[str, str]:
    """
    Filter graph that trims, scales, letterboxes and concatenates the clips.

    Per-second LUTs and overlays from the timeline are layered on top of the
    concatenated stream, each enabled only during its own second.

    Returns:
        (filter_complex, output label)
    """
    chains: list[str] = []
    labels: list[str] = []
    for i in range(clip_count):
        trim = f"trim=duration={durations[i]:g}," if i < len(durations) and durations[i] else ""
        chains.append(
            f"[{i}:v]{trim}setpts=PTS-STARTPTS,"
            f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,"
            f"setsar=1,fps={fps},format=yuv420p[v{i}]"
        )
        labels.append(f"[v{i}]")
    chains.append(f"{''.join(labels)}concat=n={clip_count}:v=1:a=0[base]")
    current = "base"

    if timeline is not None:
        step = 0
        for second in timeline.seconds:
            start, end = second.t, second.t + 1
            for lut in second.luts:
                lut_filter = f"lut3d=file='{_escape_filter_path(lut.path)}'"
                if lut.intensity is not None and lut.intensity < 1:
                    chains.append(f"[{current}]split[dry{step}][wet{step}]")
                    chains.append(f"[wet{step}]{lut_filter}[graded{step}]")
                    chains.append(
                        f"[dry{step}][graded{step}]blend=all_mode=normal:all_opacity={lut.intensity:g}:"
                        f"{_enable_between(start, end)}[fx{step}]"
                    )
                else:
                    chains.append(f"[{current}]{lut_filter}:{_enable_between(start, end)}[fx{step}]")
                current = f"fx{step}"
                step += 1

        overlay_input = first_overlay_input if first_overlay_input is not None else clip_count
        for second in timeline.seconds:
            start, end = second.t, second.t + 1
            for overlay in second.overlays:
                source = f"[{overlay_input}:v]"
                if overlay.opacity is not None:
                    chains.append(
                        f"{source}format=rgba,colorchannelmixer=aa={overlay.opacity:g}[ol{step}]"
                    )
                    source = f"[ol{step}]"
                chains.append(
                    f"[{current}]{source}overlay={overlay.x}:{overlay.y}:{_enable_between(start, end)}[fx{step}]"
                )
                current = f"fx{step}"
                overlay_input += 1
                step += 1

    return ";".join(chains), current


def master_playlist(renditions: Sequence[int], width: int, height: int) -> str:
    """HLS master playlist pointing at one media playlist per rendition height."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for rendition in renditions:
        rendition_width = int(round(width * rendition / height / 2)) * 2
        bandwidth = HLS_BANDWIDTH.get(rendition, rendition * 4000)
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},RESOLUTION={rendition_width}x{rendition}")
        lines.append(f"{rendition}p/index.m3u8")
    return "\n".join(lines) + "\n"


class Assembler:
    """Turns ordered clips and one audio track into a published MP4 and HLS package."""

    def __init__(self, settings: Settings, logger: Any, storage: StorageService):
        """
        Initialize assembler.

        Args:
            settings: Application settings
            logger: Logger instance
            storage: Durable storage for the outputs
        """
        self.settings = settings
        self.logger = logger
        self.storage = storage
        self.ffmpeg = settings.ffmpeg_path
        self.stage_timeout = settings.assembly_stage_timeout_seconds
        self.attempts = 1 + max(0, settings.assembly_stage_retries)

    def assemble(self, job: AssemblyJob) -> PublishedAsset:
        """
        Run every stage in order and publish the results.

        Stages: normalize (trim/scale/pad/concat + visual overrides), mux
        (video + audio, stopping at the shorter), hls (one rendition per
        configured height), publish.

        Raises:
            NoClipsError: If the job has no clips
            AssemblyStageError: If a stage fails on every attempt
        """
        if not job.clips:
            raise NoClipsError("Nothing to assemble")
        for clip in job.clips:
            if not Path(clip).is_file():
                raise AssemblyStageError("normalize", f"clip not found: {clip}")

        out_dir = job.work_dir / "output"
        out_dir.mkdir(parents=True, exist_ok=True)
        video_path = out_dir / "video.mp4"
        final_path = out_dir / "final.mp4"
        hls_dir = out_dir / "hls"

        self.logger.info(f"🎬 Assembling {len(job.clips)} clips for job {job.job_id}")
        self.run_stage("normalize", self.normalize_command(job, video_path))
        self.run_stage("mux", self.mux_command(video_path, job.audio_path, final_path))
        master = self.package_hls(final_path, hls_dir)
        asset = self.publish(job, final_path, hls_dir, master)
        self.logger.info(f"✅ Assembly complete: {asset.url}")
        return asset

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def normalize_command(self, job: AssemblyJob, output: Path) -> list[str]:
        cmd = [self.ffmpeg, "-y"]
        for clip in job.clips:
            cmd += ["-i", str(clip)]

        total = float(sum(job.clip_durations)) if job.clip_durations else None
        if job.timeline is not None:
            for second in job.timeline.seconds:
                for overlay in second.overlays:
                    cmd += ["-loop", "1"]
                    if total:
                        cmd += ["-t", f"{total:g}"]
                    cmd += ["-i", overlay.path]

        graph, label = build_normalize_graph(
            clip_count=len(job.clips),
            durations=job.clip_durations,
            width=self.settings.video_width,
            height=self.settings.video_height,
            fps=self.settings.video_fps,
            timeline=job.timeline,
            first_overlay_input=len(job.clips),
        )
        cmd += [
            "-filter_complex", graph,
            "-map", f"[{label}]",
            "-c:v", "libx264",
            "-preset", self.settings.video_preset,
            "-pix_fmt", "yuv420p",
            "-an",
            "-movflags", "+faststart",
            str(output),
        ]
        return cmd

    def mux_command(self, video: Path, audio: Path, output: Path) -> list[str]:
        return [
            self.ffmpeg, "-y",
            "-i", str(video),
            "-i", str(audio),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", "192k",
            "-shortest",
            "-movflags", "+faststart",
            str(output),
        ]

    def hls_command(self, source: Path, rendition: int, rendition_dir: Path) -> list[str]:
        return [
            self.ffmpeg, "-y",
            "-i", str(source),
            "-vf", f"scale=-2:{rendition}",
            "-c:v", "libx264",
            "-preset", self.settings.video_preset,
            "-c:a", "aac",
            "-hls_time", str(self.settings.hls_segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(rendition_dir / "seg_%03d.ts"),
            str(rendition_dir / "index.m3u8"),
        ]

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def run_stage(self, stage: str, cmd: list[str]) -> None:
        """
        Run one stage with a hard timeout, retrying on failure.

        Raises:
            AssemblyStageError: After the last failed attempt
        """
        last_error = ""
        for attempt in range(1, self.attempts + 1):
            self.logger.debug(f"[{stage}] attempt {attempt}/{self.attempts}: {' '.join(cmd)}")
            try:
                run_command(cmd, self.stage_timeout, operation=f"ffmpeg {stage}")
                self.logger.info(f"✅ Stage '{stage}' done")
                return
            except DeadlineExceeded as e:
                last_error = str(e)
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or "").strip().splitlines()
                last_error = f"exit {e.returncode}: {stderr[-1] if stderr else 'no output'}"
            except OSError as e:
                last_error = f"could not start ffmpeg: {e}"
            self.logger.warning(f"⚠️ Stage '{stage}' attempt {attempt}/{self.attempts} failed: {last_error}")
        raise AssemblyStageError(stage, last_error)

    def package_hls(self, source: Path, hls_dir: Path) -> Path:
        """Encode every rendition and write the master playlist."""
        renditions = self.settings.hls_renditions
        for rendition in renditions:
            rendition_dir = hls_dir / f"{rendition}p"
            rendition_dir.mkdir(parents=True, exist_ok=True)
            self.run_stage(f"hls-{rendition}p", self.hls_command(source, rendition, rendition_dir))

        master = hls_dir / "master.m3u8"
        master.write_text(
            master_playlist(renditions, self.settings.video_width, self.settings.video_height),
            encoding="utf-8",
        )
        return master

    def publish(self, job: AssemblyJob, final_path: Path, hls_dir: Path, master: Path) -> PublishedAsset:
        """
        Upload the MP4 and the HLS tree; the master playlist goes last.

        Each attempt uploads everything again under the stage timeout.

        Raises:
            AssemblyStageError: If every attempt failed or timed out
        """
        last_error = ""
        for attempt in range(1, self.attempts + 1):
            try:
                asset = call_with_deadline(
                    lambda: self._upload(job, final_path, hls_dir, master),
                    self.stage_timeout,
                    operation="publish",
                )
                self.logger.info("✅ Stage 'publish' done")
                return asset
            except DeadlineExceeded as e:
                last_error = str(e)
            except Exception as e:
                # Storage backends raise their own error types (GCS, OSError, ...)
                last_error = f"{type(e).__name__}: {e}"
            self.logger.warning(f"⚠️ Stage 'publish' attempt {attempt}/{self.attempts} failed: {last_error}")
        raise AssemblyStageError("publish", last_error)

    def _upload(self, job: AssemblyJob, final_path: Path, hls_dir: Path, master: Path) -> PublishedAsset:
        prefix = f"jobs/{job.job_id}"
        url = self.storage.publish_verified(final_path, f"{prefix}/final.mp4", CONTENT_TYPES[".mp4"])
        for path in sorted(hls_dir.rglob("*")):
            if not path.is_file() or path == master:
                continue
            key = f"{prefix}/hls/{path.relative_to(hls_dir).as_posix()}"
            self.storage.publish(path, key, CONTENT_TYPES.get(path.suffix))
        manifest_url = self.storage.publish_verified(master, f"{prefix}/hls/master.m3u8", CONTENT_TYPES[".m3u8"])
        return PublishedAsset(
            url=url,
            manifest_url=manifest_url,
            auxiliary_urls=list(job.auxiliary_urls),
            clip_count=len(job.clips),
        )
