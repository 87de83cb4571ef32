"""Plan Provider - turns a render request into a validated per-second timeline."""

import json
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.core.exceptions import DeadlineExceeded, PlanError, ValidationError
from app.models.schemas import RenderRequest, Timeline
from app.utils.deadline import call_with_deadline

ALLOWED_SHOTS = ("close-up", "medium", "wide", "first-person", "drone", "static")
ALLOWED_MOVES = ("pan", "tilt", "zoom", "dolly-in", "dolly-out", "shake", "none")
ALLOWED_SCENE_MOODS = ("calm", "tense", "joyful", "mysterious", "epic", "dark")
ALLOWED_SOUND_CUES = ("quiet", "rise", "climax", "fade")
ALLOWED_TRANSITIONS = ("cut", "fade", "wipe", "none")

# Per-second keys copied through when present
PASSTHROUGH_KEYS = (
    "style", "style_reference", "lora", "lora_scale", "seed", "model_order", "overlays", "luts",
)

SYSTEM_PROMPT = """You are a world-class film showrunner. Produce an ultra-detailed shot plan
where ONE second of video is ONE object in the "timeline" array.

Strict JSON format:
{{
  "timeline": [
    {{
      "t": 0,
      "visual": "exact visual description",
      "camera": {{"shot": "wide", "movement": "dolly-in"}},
      "emotion": "wonder",
      "dialogue": "on-screen text, 15 words max (optional)",
      "voice_line": "Name: narration line (optional)",
      "sound_cue": "quiet|rise|climax|fade",
      "effects": "reverb|eq (optional)",
      "scene_mood": "calm|tense|joyful|mysterious|epic|dark",
      "transition": "cut|fade|wipe|none"
    }}
  ],
  "music_mood": "calm|tense|joyful|mysterious|epic|dark",
  "characters": [{{"name": "Narrator", "gender": "male"}}]
}}

Mode: {mode}. Visual style: {visual_style}.
The timeline MUST contain exactly {duration} entries with t = 0..{last}. No extra text, no Markdown."""


def _snake_case_keys(raw: dict) -> dict:
    """Accept camelCase keys (voiceLine, soundCue, ...) from loosely-following models."""
    aliases = {
        "voiceLine": "voice_line",
        "soundCue": "sound_cue",
        "sceneMood": "scene_mood",
        "styleReference": "style_reference",
        "loraScale": "lora_scale",
        "modelOrder": "model_order",
    }
    return {aliases.get(k, k): v for k, v in raw.items()}


def sanitize_second(raw: Any, t: int) -> dict:
    """
    Coerce one model-produced second into the allowed vocabulary.

    Unknown tags fall back to defaults; the second index is forced to `t`.
    """
    raw = _snake_case_keys(raw if isinstance(raw, dict) else {})
    camera = raw.get("camera") if isinstance(raw.get("camera"), dict) else {}
    scene_mood = raw.get("scene_mood")

    second: dict[str, Any] = {
        "t": t,
        "visual": str(raw.get("visual") or "").strip(),
        "camera": {
            "shot": camera.get("shot") if camera.get("shot") in ALLOWED_SHOTS else "medium",
            "movement": camera.get("movement") if camera.get("movement") in ALLOWED_MOVES else "none",
        },
        "emotion": str(raw.get("emotion") or "neutral"),
        "scene_mood": scene_mood if scene_mood in ALLOWED_SCENE_MOODS else None,
        "sound_cue": raw.get("sound_cue") if raw.get("sound_cue") in ALLOWED_SOUND_CUES else "quiet",
        "transition": raw.get("transition") if raw.get("transition") in ALLOWED_TRANSITIONS else "cut",
        "dialogue": str(raw["dialogue"]) if raw.get("dialogue") else None,
        "voice_line": str(raw["voice_line"]) if raw.get("voice_line") else None,
        "effects": str(raw["effects"]) if raw.get("effects") else None,
    }
    for key in PASSTHROUGH_KEYS:
        if raw.get(key) is not None:
            second[key] = raw[key]
    return second


def validate_timeline(timeline: Any, duration: Optional[int] = None) -> Timeline:
    """
    Check a timeline before any generation work starts.

    Args:
        timeline: Timeline model or raw dict
        duration: Expected number of seconds (defaults to the timeline's own length)

    Returns:
        Parsed Timeline

    Raises:
        ValidationError: On wrong length, gaps or disorder in `t`, or missing required fields
    """
    if not isinstance(timeline, Timeline):
        try:
            timeline = Timeline.model_validate(timeline)
        except PydanticValidationError as e:
            raise ValidationError(f"Timeline is malformed: {e.error_count()} field error(s): {e}") from e

    if not timeline.seconds:
        raise ValidationError("Timeline is empty")
    expected = duration if duration is not None else len(timeline.seconds)
    if len(timeline.seconds) != expected:
        raise ValidationError(f"Timeline has {len(timeline.seconds)} seconds, expected {expected}")
    for index, second in enumerate(timeline.seconds):
        if second.t != index:
            raise ValidationError(f"Timeline second {index} has t={second.t}; seconds must be contiguous from 0")
        if not second.visual.strip():
            raise ValidationError(f"Timeline second {index} has no visual description")
    return timeline


class PlanProvider:
    """plan(request) -> Timeline."""

    def plan(self, request: RenderRequest) -> Timeline:
        raise NotImplementedError("Subclass must implement plan()")


class StaticPlanProvider(PlanProvider):
    """Serves a timeline supplied up front (CLI --timeline files, tests)."""

    def __init__(self, timeline: Any):
        self.timeline = timeline

    def plan(self, request: RenderRequest) -> Timeline:
        return validate_timeline(self.timeline, request.duration)


class LLMPlanProvider(PlanProvider):
    """Builds the timeline with an OpenAI-compatible chat model, trying each configured model in order."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize plan provider.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self._client = None

    def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            from openai import OpenAI

            if not self.settings.openai_api_key:
                raise PlanError("OpenAI API key not configured")
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
            )
        return self._client

    @staticmethod
    def temperature_for(duration: int) -> float:
        if duration <= 15:
            return 0.55
        if duration <= 30:
            return 0.7
        return 0.85

    def plan(self, request: RenderRequest) -> Timeline:
        """
        Ask each model in turn until one returns a valid timeline.

        Raises:
            PlanError: If every model failed or returned an invalid timeline
        """
        client = self._get_client()
        system = SYSTEM_PROMPT.format(
            mode=request.mode,
            visual_style=request.visual_style,
            duration=request.duration,
            last=request.duration - 1,
        )
        failures: list[str] = []

        for model in self.settings.plan_models:
            try:
                content = call_with_deadline(
                    lambda: self._complete(client, model, system, request.prompt, self.temperature_for(request.duration)),
                    self.settings.plan_timeout_seconds,
                    operation=f"plan via {model}",
                )
                data = self._parse(client, model, content)
                timeline = self._build_timeline(data, request)
                self.logger.info(f"✅ Timeline ready ({request.duration}s) via {model}")
                return timeline
            except (ValidationError, DeadlineExceeded, ValueError) as e:
                failures.append(f"{model}: {e}")
                self.logger.warning(f"⚠️ Plan model {model} failed: {e}")
            except Exception as e:
                failures.append(f"{model}: {e}")
                self.logger.warning(f"⚠️ Plan model {model} API error: {e}")

        raise PlanError(f"All plan models failed: {'; '.join(failures) or 'no models configured'}")

    def _complete(self, client, model: str, system: str, prompt: str, temperature: float) -> str:
        response = client.chat.completions.create(
            model=model,
            temperature=temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or "{}"

    def _parse(self, client, model: str, content: str) -> dict:
        """Parse JSON, asking the model once to repair it when it is malformed."""
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            self.logger.debug(f"Repairing malformed JSON from {model}")
        repaired = call_with_deadline(
            lambda: self._complete(
                client, model, "Fix this JSON so it is syntactically valid. Return only JSON.", content[:7000], 0.0
            ),
            self.settings.plan_timeout_seconds,
            operation=f"JSON repair via {model}",
        )
        return json.loads(repaired)

    def _build_timeline(self, data: Any, request: RenderRequest) -> Timeline:
        if not isinstance(data, dict) or not isinstance(data.get("timeline"), list):
            raise ValidationError("Response has no timeline array")
        raw_seconds = data["timeline"]
        if len(raw_seconds) != request.duration:
            raise ValidationError(f"Timeline has {len(raw_seconds)} seconds, expected {request.duration}")

        seconds = [sanitize_second(raw, t) for t, raw in enumerate(raw_seconds)]
        mood = data.get("music_mood")
        characters = [c for c in data.get("characters") or [] if isinstance(c, dict) and c.get("name")]
        return validate_timeline(
            {
                "seconds": seconds,
                "visual_style": request.visual_style,
                "music_mood": mood if mood in ALLOWED_SCENE_MOODS else None,
                "characters": characters,
            },
            request.duration,
        )
