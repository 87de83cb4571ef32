"""Pydantic models and schemas for the render pipeline."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


ALLOWED_DURATIONS = (10, 15, 30, 45, 60)


# ============================================================================
# Enums
# ============================================================================


class SoundCue(str, Enum):
    """Per-second music intensity cue."""

    QUIET = "quiet"
    RISE = "rise"
    CLIMAX = "climax"
    FADE = "fade"


class JobStatus(str, Enum):
    """Lifecycle of a render job. DONE and ERROR are terminal."""

    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


# ============================================================================
# Timeline Models
# ============================================================================


class CameraSpec(BaseModel):
    """Camera framing for one second."""

    shot: str = Field(default="medium", description="Shot type (close-up, medium, wide, drone, ...)")
    movement: str = Field(default="none", description="Camera movement (pan, tilt, zoom, dolly-in, ...)")


class OverlaySpec(BaseModel):
    """Image overlay drawn on top of the video for one second."""

    path: str = Field(..., description="Local path of the overlay image")
    x: int = Field(default=0, description="Horizontal offset in pixels")
    y: int = Field(default=0, description="Vertical offset in pixels")
    opacity: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Overlay opacity")


class LutSpec(BaseModel):
    """Colour lookup table applied for one second."""

    path: str = Field(..., description="Local path of the .cube file")
    intensity: Optional[float] = Field(default=None, description="Interpolation hint passed to lut3d")


class Second(BaseModel):
    """One second of the timeline."""

    t: int = Field(..., ge=0, description="Second index, contiguous from 0")
    visual: str = Field(..., min_length=1, description="Visual description of the second")
    camera: CameraSpec = Field(default_factory=CameraSpec, description="Camera spec")
    emotion: str = Field(default="neutral", description="Emotion tag")
    scene_mood: Optional[str] = Field(default=None, description="Scene mood tag (calm, tense, epic, ...)")
    style: Optional[str] = Field(default=None, description="Visual style tag (cinematic, anime, ...)")
    sound_cue: SoundCue = Field(default=SoundCue.QUIET, description="Music intensity cue")
    transition: str = Field(default="cut", description="Transition tag (cut, fade, wipe, none)")
    dialogue: Optional[str] = Field(default=None, description="On-screen dialogue")
    voice_line: Optional[str] = Field(default=None, description="Narration line, optionally 'Name: text'")
    effects: Optional[str] = Field(default=None, description="Free-form effect tags (reverb, eq, ...)")
    style_reference: Optional[str] = Field(default=None, description="Style reference image URL")
    lora: Optional[str] = Field(default=None, description="LoRA-style reference")
    lora_scale: Optional[float] = Field(default=None, description="LoRA strength")
    seed: Optional[Union[int, str]] = Field(default=None, description="Random seed override")
    model_order: list[str] = Field(default_factory=list, description="Explicit provider preference")
    overlays: list[OverlaySpec] = Field(default_factory=list, description="Overlays for this second")
    luts: list[LutSpec] = Field(default_factory=list, description="LUTs for this second")


class CharacterVoice(BaseModel):
    """Voice assigned to a named speaker."""

    name: str = Field(..., description="Character name as used in 'Name: text' voice lines")
    voice_id: Optional[str] = Field(default=None, description="Provider voice id")
    gender: str = Field(default="male", description="male or female")


class Timeline(BaseModel):
    """Ordered per-second scene description."""

    seconds: list[Second] = Field(..., description="One record per second")
    visual_style: str = Field(default="cinematic", description="Global visual style")
    music_mood: Optional[str] = Field(default=None, description="Mood used to search background music")
    characters: list[CharacterVoice] = Field(default_factory=list, description="Voices for narration")

    @property
    def duration(self) -> int:
        return len(self.seconds)


# ============================================================================
# Segmentation Models
# ============================================================================


class ProviderCapability(BaseModel):
    """Static capability record for a generation provider."""

    name: str = Field(..., description="Provider name")
    kind: str = Field(default="replicate", description="Adapter kind (fal, runway, replicate)")
    model: Optional[str] = Field(default=None, description="Model identifier passed to the adapter")
    durations: list[int] = Field(..., min_length=1, description="Supported clip durations (seconds)")
    quality: int = Field(default=0, description="Quality rank, higher preferred")

    def supports(self, duration: int) -> bool:
        return duration in self.durations

    def request_duration_for(self, duration: int) -> int:
        """Smallest supported duration >= duration, else the largest supported one."""
        longer = sorted(d for d in self.durations if d >= duration)
        return longer[0] if longer else max(self.durations)


class SegmentOverrides(BaseModel):
    """Per-segment overrides taken from the segment's seconds."""

    seed: Optional[Union[int, str]] = None
    style_reference: Optional[str] = None
    lora: Optional[str] = None
    lora_scale: Optional[float] = None
    model_order: list[str] = Field(default_factory=list)


class Segment(BaseModel):
    """A contiguous sub-range [start, end] of the timeline assigned to one provider."""

    index: int = Field(..., description="Position in the segment list")
    start: int = Field(..., description="First second (inclusive)")
    end: int = Field(..., description="Last second (inclusive)")
    duration: int = Field(..., description="Assigned clip duration")
    provider: str = Field(..., description="Assigned provider name")
    corrected: bool = Field(default=False, description="True when remainder correction changed duration")
    prompt: str = Field(default="", description="Derived generation prompt")
    style: str = Field(default="cinematic", description="Visual style of the segment")
    overrides: SegmentOverrides = Field(default_factory=SegmentOverrides)


# ============================================================================
# Generation Models
# ============================================================================


class GenerationRequest(BaseModel):
    """Uniform request handed to every provider adapter."""

    prompt: str
    duration: int
    style: str = "cinematic"
    aspect_ratio: str = "16:9"
    overrides: SegmentOverrides = Field(default_factory=SegmentOverrides)


class GenerationResult(BaseModel):
    """Outcome of one segment."""

    segment_index: int = Field(..., description="Index of the segment")
    start: int = Field(..., description="Segment start second")
    duration: int = Field(..., description="Segment duration")
    success: bool = Field(default=False, description="Whether the segment produced a clip")
    provider: Optional[str] = Field(default=None, description="Provider that produced the clip")
    source_url: Optional[str] = Field(default=None, description="Provider output URL")
    local_path: Optional[Path] = Field(default=None, description="Downloaded clip path")
    byte_size: int = Field(default=0, description="Downloaded size in bytes")
    validated: bool = Field(default=False, description="Passed the integrity check")
    published_url: Optional[str] = Field(default=None, description="Durable storage URL")


# ============================================================================
# Audio Models
# ============================================================================


class GainInterval(BaseModel):
    """Constant-gain interval [start, end] in seconds. On a shared boundary the earlier interval wins."""

    start: float
    end: float
    gain: float


# ============================================================================
# Assembly Models
# ============================================================================


class PublishedAsset(BaseModel):
    """Final published outputs of a job."""

    url: str = Field(..., description="Muxed MP4 URL")
    manifest_url: Optional[str] = Field(default=None, description="HLS master playlist URL")
    auxiliary_urls: list[str] = Field(default_factory=list, description="Per-segment clip URLs")
    clip_count: int = Field(default=0, description="Clips assembled")
    dropped_segments: list[int] = Field(default_factory=list, description="Segments dropped")


class AssemblyJob(BaseModel):
    """Everything the assembler needs for one job."""

    job_id: str
    clips: list[Path] = Field(..., description="Local clip paths ordered by segment start")
    clip_durations: list[int] = Field(default_factory=list, description="Target duration per clip")
    audio_path: Path = Field(..., description="Mixed audio track")
    work_dir: Path = Field(..., description="Per-job scratch directory")
    timeline: Optional[Timeline] = Field(default=None, description="Timeline for per-second visual overrides")
    auxiliary_urls: list[str] = Field(default_factory=list)


# ============================================================================
# Job Models
# ============================================================================


class RenderRequest(BaseModel):
    """Request to render a timeline into a finished asset."""

    prompt: str = Field(..., min_length=1, description="Free-form prompt handed to the plan provider")
    duration: int = Field(default=30, description="Target duration in seconds")
    visual_style: str = Field(default="cinematic", description="Visual style")
    mode: str = Field(default="story", description="Render mode passed to the plan provider")
    demo_mode: bool = Field(default=False, description="Persist plan/segments/results next to the work dir")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("duration")
    @classmethod
    def _allowed_duration(cls, value: int) -> int:
        if value not in ALLOWED_DURATIONS:
            raise ValueError(f"duration must be one of {ALLOWED_DURATIONS}")
        return value


class Job(BaseModel):
    """Render job tracked through pending/done/error."""

    id: str = Field(..., description="Job identifier")
    status: JobStatus = Field(default=JobStatus.PENDING)
    request: Optional[RenderRequest] = Field(default=None)
    result: Optional[PublishedAsset] = Field(default=None, description="Set when status is done")
    error: Optional[str] = Field(default=None, description="Human-readable message when status is error")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE, JobStatus.ERROR)


# ============================================================================
# API Request/Response Models
# ============================================================================


class SubmitResponse(BaseModel):
    """Response to a render submission."""

    job_id: str
    status: JobStatus = JobStatus.PENDING


class StatusResponse(BaseModel):
    """Job status lookup."""

    job_id: str
    status: Union[JobStatus, Literal["not_found"]]
