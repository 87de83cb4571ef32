"""Application configuration using pydantic-settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via environment variables or a .env file.
    List and dict settings are read as JSON (e.g. GENERAL_FALLBACK_ORDER='["a","b"]').
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Application Settings
    # ========================================================================
    app_name: str = Field(default="Timeline Render Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path (rotated)")

    # ========================================================================
    # Plan Provider (LLM) Settings
    # ========================================================================
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI / OpenRouter API key")
    openai_base_url: Optional[str] = Field(
        default=None, description="Optional OpenAI-compatible base URL (e.g. https://openrouter.ai/api/v1)"
    )
    plan_models: list[str] = Field(
        default=["gpt-4o", "gpt-4o-mini"],
        description="Ordered list of models tried when building a timeline",
    )
    plan_timeout_seconds: float = Field(default=60.0, description="Deadline for a single plan request")

    # ========================================================================
    # Generation Provider Settings
    # ========================================================================
    fal_api_key: Optional[str] = Field(default=None, description="fal.ai key (Kling models)")
    fal_queue_url: str = Field(default="https://queue.fal.run", description="fal.ai queue base URL")
    runway_api_key: Optional[str] = Field(default=None, description="Runway API secret")
    runway_api_url: str = Field(default="https://api.dev.runwayml.com", description="Runway API base URL")
    replicate_api_token: Optional[str] = Field(default=None, description="Replicate API token")
    replicate_api_url: str = Field(default="https://api.replicate.com", description="Replicate API base URL")
    generation_providers: list[dict] = Field(
        default=[
            {"name": "kling-pro", "kind": "fal", "model": "fal-ai/kling-video/v1.6/pro/text-to-video",
             "durations": [5, 10], "quality": 9},
            {"name": "runway-gen4", "kind": "runway", "model": "gen4_turbo", "durations": [5, 10], "quality": 8},
            {"name": "minimax-video", "kind": "replicate", "model": "minimax/video-01",
             "durations": [6], "quality": 6},
            {"name": "ltx-video", "kind": "replicate", "model": "lightricks/ltx-video",
             "durations": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10], "quality": 3},
        ],
        description="Provider table: name, kind (fal|runway|replicate), model, durations, quality",
    )
    segment_providers: Optional[list[str]] = Field(
        default=["kling-pro", "runway-gen4", "minimax-video"],
        description="Providers the segmenter may assign (None = every provider except the fallback)",
    )
    high_capacity_provider: Optional[str] = Field(
        default="ltx-video",
        description="Designated fallback provider used when no candidate fits the remaining duration",
    )
    general_fallback_order: list[str] = Field(
        default=["kling-pro", "runway-gen4", "minimax-video", "ltx-video"],
        description="General-purpose fallbacks tried after the primary provider",
    )
    style_preferences: dict[str, list[str]] = Field(
        default={
            "anime": ["minimax-video"],
            "cartoon": ["minimax-video"],
            "cinematic": ["kling-pro"],
            "realistic": ["runway-gen4"],
        },
        description="Preferred providers per visual style (tried right after the primary)",
    )

    # ========================================================================
    # Scheduler Settings
    # ========================================================================
    generation_concurrency: int = Field(
        default=3, description="Maximum number of segments generated concurrently"
    )
    provider_poll_interval_seconds: float = Field(
        default=5.0, description="Interval between status polls for asynchronous providers"
    )
    provider_max_wait_seconds: float = Field(
        default=300.0, description="Maximum wait for a single provider attempt"
    )
    provider_rate_limit_per_minute: int = Field(
        default=120, description="Maximum API calls per minute to one provider (submits and polls)"
    )
    http_timeout_seconds: float = Field(default=30.0, description="Timeout for individual HTTP calls")
    download_timeout_seconds: float = Field(default=120.0, description="Deadline for one clip download attempt")
    download_attempts: int = Field(default=3, description="Download attempts per clip")
    min_clip_bytes: int = Field(
        default=10_000, description="Downloads at or below this size are treated as corrupt"
    )

    # ========================================================================
    # Audio Settings
    # ========================================================================
    audio_sample_rate: int = Field(default=48000, description="Sample rate for the mixed track")
    duck_threshold: float = Field(default=0.05, description="Compressor threshold (linear RMS of the narration key)")
    duck_ratio: float = Field(default=8.0, description="Compressor ratio")
    duck_attack_ms: float = Field(default=20.0, description="Compressor attack (ms)")
    duck_release_ms: float = Field(default=150.0, description="Compressor release (ms)")
    placeholder_tone_hz: float = Field(default=440.0, description="Placeholder tone frequency")
    placeholder_tone_amplitude: float = Field(default=0.1, description="Placeholder tone amplitude (0-1)")
    elevenlabs_api_key: Optional[str] = Field(default=None, description="ElevenLabs API key")
    elevenlabs_voice_id: Optional[str] = Field(default=None, description="Default ElevenLabs voice ID")
    freesound_api_key: Optional[str] = Field(default=None, description="Freesound API key for music search")
    music_cache_dir: str = Field(default="storage/music_cache", description="Music download cache")

    # ========================================================================
    # Assembly Settings
    # ========================================================================
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary")
    video_width: int = Field(default=1280, description="Output width in pixels")
    video_height: int = Field(default=720, description="Output height in pixels")
    video_fps: int = Field(default=30, description="Output frame rate")
    video_preset: str = Field(default="veryfast", description="libx264 preset")
    assembly_stage_timeout_seconds: float = Field(
        default=600.0, description="Hard wall-clock timeout for each assembly stage"
    )
    assembly_stage_retries: int = Field(default=2, description="Retries per assembly stage")
    hls_segment_seconds: int = Field(default=5, description="HLS segment duration")
    hls_renditions: list[int] = Field(default=[720], description="HLS rendition heights")

    # ========================================================================
    # Storage Settings
    # ========================================================================
    storage_backend: str = Field(default="local", description="Durable storage: local or gcs")
    local_storage_path: str = Field(default="storage/published", description="Root for local publishing")
    local_storage_base_url: Optional[str] = Field(
        default=None, description="Public base URL for local publishing (file:// URLs when unset)"
    )
    gcs_bucket_name: Optional[str] = Field(default=None, description="GCS bucket for published assets")
    gcs_project_id: Optional[str] = Field(default=None, description="GCP project id")
    verify_timeout_seconds: float = Field(default=15.0, description="Timeout for reachability checks")
    work_dir: str = Field(default="tmp/jobs", description="Root for per-job scratch directories")

    # ========================================================================
    # Job Settings
    # ========================================================================
    job_store: str = Field(default="memory", description="Job store backend: memory or json")
    job_store_path: str = Field(default="storage/jobs", description="Directory for the JSON job store")
    max_parallel_jobs: int = Field(default=2, description="Background render jobs run concurrently")


# Global settings instance
settings = Settings()
