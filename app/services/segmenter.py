"""Segmenter - partitions a timeline into provider-sized generation jobs."""

from typing import Any, Optional

from app.core.config import Settings
from app.core.exceptions import SegmentationInvalidError, UnsupportedDurationError, ValidationError
from app.models.schemas import ProviderCapability, Second, Segment, SegmentOverrides, Timeline
from app.services.provider_registry import ProviderRegistry

STYLE_SUFFIXES = {
    "cinematic": "Atmosphere: cinematic, emotional, anamorphic lighting.",
    "realistic": "Atmosphere: realistic, natural light, documentary feel.",
    "anime": "Style: anime, cel shading, vibrant colours.",
    "cartoon": "Style: cartoon, bold outlines, flat colours.",
}
QUALITY_SUFFIX = "Render in photorealistic 1080p, sharp focus, no watermark."


def plan_durations(
    total: int,
    providers: list[ProviderCapability],
    fallback: Optional[ProviderCapability] = None,
) -> list[tuple[int, str]]:
    """
    Greedy best-fit split of `total` seconds into (duration, provider) pairs.

    Candidates are ranked by quality, highest first; equal quality keeps
    declaration order. For each remaining amount the first ranked candidate with
    a supported duration <= remaining contributes its largest such duration.
    The fallback provider is used only when no candidate fits.

    Raises:
        ValidationError: If total is not positive or providers is empty
        UnsupportedDurationError: If nothing can cover the remaining time
        SegmentationInvalidError: If remainder correction empties the last piece
    """
    if total <= 0:
        raise ValidationError(f"Duration must be a positive number of seconds, got {total}")
    if not providers:
        raise ValidationError("At least one provider is required for segmentation")

    ranked = sorted(providers, key=lambda p: -p.quality)
    pieces: list[tuple[int, str]] = []
    remaining = total

    while remaining > 0:
        choice = _best_fit(ranked, remaining)
        if choice is None and fallback is not None:
            choice = _best_fit([fallback], remaining)
        if choice is None:
            raise UnsupportedDurationError(remaining)
        pieces.append(choice)
        remaining -= choice[0]

    difference = total - sum(duration for duration, _ in pieces)
    if difference:
        duration, provider = pieces[-1]
        corrected = duration + difference
        if corrected <= 0:
            raise SegmentationInvalidError(
                f"Remainder correction of {difference}s leaves last segment at {corrected}s"
            )
        pieces[-1] = (corrected, provider)
    return pieces


def _best_fit(ranked: list[ProviderCapability], remaining: int) -> Optional[tuple[int, str]]:
    for provider in ranked:
        fitting = [d for d in provider.durations if 0 < d <= remaining]
        if fitting:
            return max(fitting), provider.name
    return None


def build_prompt(seconds: list[Second], style: str) -> str:
    """Prompt for one segment: visuals, motion, camera, mood, then style suffixes."""
    visuals: list[str] = []
    for sec in seconds:
        if sec.visual and sec.visual not in visuals:
            visuals.append(sec.visual)

    movements = [sec.camera.movement for sec in seconds if sec.camera.movement and sec.camera.movement != "none"]
    first = seconds[0]
    moods = sorted({sec.scene_mood for sec in seconds if sec.scene_mood})

    parts = ["; ".join(visuals)]
    if movements:
        parts.append(f"Movement: {', '.join(dict.fromkeys(movements))}")
    parts.append(f"Camera: {first.camera.shot}, {first.camera.movement}")
    if moods:
        parts.append(f"Mood: {', '.join(moods)}")
    parts.append(f"Emotion: {first.emotion}")
    parts.append(STYLE_SUFFIXES.get(style.lower(), f"Style: {style}."))
    parts.append(QUALITY_SUFFIX)
    return ", ".join(p for p in parts if p)


def collect_overrides(seconds: list[Second]) -> SegmentOverrides:
    """First non-empty value of each per-second override within the segment."""
    overrides = SegmentOverrides()
    for sec in seconds:
        if overrides.seed is None and sec.seed is not None:
            overrides.seed = sec.seed
        if overrides.style_reference is None and sec.style_reference:
            overrides.style_reference = sec.style_reference
        if overrides.lora is None and sec.lora:
            overrides.lora = sec.lora
            overrides.lora_scale = sec.lora_scale
        if not overrides.model_order and sec.model_order:
            overrides.model_order = list(sec.model_order)
    return overrides


class Segmenter:
    """Turns a timeline into ordered segments with prompts and overrides."""

    def __init__(self, settings: Settings, logger: Any, registry: Optional[ProviderRegistry] = None):
        """
        Initialize segmenter.

        Args:
            settings: Application settings
            logger: Logger instance
            registry: Provider registry (built from settings when omitted)
        """
        self.settings = settings
        self.logger = logger
        self.registry = registry or ProviderRegistry(settings, logger)

    def segment(self, timeline: Timeline) -> list[Segment]:
        """
        Split the timeline into segments whose durations sum to its length.

        Args:
            timeline: Validated timeline

        Returns:
            Segments ordered by start second
        """
        total = timeline.duration
        providers = self.registry.segment_candidates()
        pieces = plan_durations(total, providers, self.registry.high_capacity())

        segments: list[Segment] = []
        start = 0
        for index, (duration, provider_name) in enumerate(pieces):
            end = min(start + duration, total) - 1
            seconds = timeline.seconds[start:end + 1]
            capability = self.registry.get(provider_name)
            style = next((s.style for s in seconds if s.style), timeline.visual_style)
            segments.append(
                Segment(
                    index=index,
                    start=start,
                    end=end,
                    duration=duration,
                    provider=provider_name,
                    corrected=capability is not None and not capability.supports(duration),
                    prompt=build_prompt(seconds, style),
                    style=style,
                    overrides=collect_overrides(seconds),
                )
            )
            start += duration

        self.logger.info(
            f"🧩 Segments: {'+'.join(str(s.duration) for s in segments)}s "
            f"via {', '.join(s.provider for s in segments)}"
        )
        return segments
