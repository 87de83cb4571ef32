"""Tests for Plan Provider."""

import json
from unittest.mock import MagicMock

import pytest

from app.core.exceptions import PlanError, ValidationError
from app.models.schemas import RenderRequest
from app.services.plan_provider import (
    LLMPlanProvider,
    StaticPlanProvider,
    sanitize_second,
    validate_timeline,
)


def chat_response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def raw_plan(duration, **extra):
    plan = {
        "timeline": [
            {"t": t, "visual": f"harbour at dawn {t}", "soundCue": "rise", "camera": {"shot": "drone", "movement": "pan"}}
            for t in range(duration)
        ],
        "music_mood": "epic",
        "characters": [{"name": "Narrator", "gender": "female"}, {"gender": "male"}],
    }
    plan.update(extra)
    return plan


@pytest.fixture
def provider(settings, logger):
    settings.plan_models = ["model-a", "model-b"]
    provider = LLMPlanProvider(settings, logger)
    provider._client = MagicMock()
    return provider


def test_sanitize_second_coerces_unknown_tags():
    second = sanitize_second(
        {"t": 99, "visual": " a storm ", "camera": {"shot": "dutch", "movement": "zoom"},
         "sound_cue": "loud", "sceneMood": "tense", "transition": "spin", "seed": 7},
        3,
    )

    assert second["t"] == 3
    assert second["visual"] == "a storm"
    assert second["camera"] == {"shot": "medium", "movement": "zoom"}
    assert second["sound_cue"] == "quiet"
    assert second["scene_mood"] == "tense"
    assert second["transition"] == "cut"
    assert second["seed"] == 7


def test_validate_timeline_accepts_well_formed(timeline_factory):
    timeline = timeline_factory(10)

    assert validate_timeline(timeline, 10) is timeline


def test_validate_timeline_rejects_wrong_length(timeline_factory):
    with pytest.raises(ValidationError):
        validate_timeline(timeline_factory(9), 10)


def test_validate_timeline_rejects_gaps():
    raw = {"seconds": [{"t": 0, "visual": "a"}, {"t": 2, "visual": "b"}]}

    with pytest.raises(ValidationError):
        validate_timeline(raw)


def test_validate_timeline_rejects_missing_fields():
    with pytest.raises(ValidationError):
        validate_timeline({"seconds": [{"t": 0}]})
    with pytest.raises(ValidationError):
        validate_timeline({"seconds": []})


def test_validate_timeline_rejects_blank_visual(timeline_factory):
    timeline = timeline_factory(2)
    timeline.seconds[1].visual = "   "

    with pytest.raises(ValidationError):
        validate_timeline(timeline)


def test_static_provider_validates_against_request(timeline_factory):
    provider = StaticPlanProvider(timeline_factory(10).model_dump())

    assert provider.plan(RenderRequest(prompt="x", duration=10)).duration == 10
    with pytest.raises(ValidationError):
        provider.plan(RenderRequest(prompt="x", duration=15))


def test_llm_plan_builds_timeline(provider):
    provider._client.chat.completions.create.return_value = chat_response(json.dumps(raw_plan(10)))

    timeline = provider.plan(RenderRequest(prompt="a harbour", duration=10, visual_style="realistic"))

    assert timeline.duration == 10
    assert timeline.visual_style == "realistic"
    assert timeline.music_mood == "epic"
    assert [c.name for c in timeline.characters] == ["Narrator"]
    assert timeline.seconds[4].sound_cue.value == "rise"
    assert timeline.seconds[4].camera.shot == "drone"
    kwargs = provider._client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "model-a"
    assert kwargs["temperature"] == 0.55
    assert "exactly 10 entries" in kwargs["messages"][0]["content"]


def test_llm_plan_falls_back_to_next_model(provider):
    provider._client.chat.completions.create.side_effect = [
        chat_response(json.dumps(raw_plan(7))),
        chat_response(json.dumps(raw_plan(10))),
    ]

    timeline = provider.plan(RenderRequest(prompt="a harbour", duration=10))

    assert timeline.duration == 10
    models = [c.kwargs["model"] for c in provider._client.chat.completions.create.call_args_list]
    assert models == ["model-a", "model-b"]


def test_llm_plan_repairs_malformed_json(provider):
    provider._client.chat.completions.create.side_effect = [
        chat_response('{"timeline": [ oops'),
        chat_response(json.dumps(raw_plan(10))),
    ]

    assert provider.plan(RenderRequest(prompt="a harbour", duration=10)).duration == 10


def test_llm_plan_raises_when_every_model_fails(provider):
    provider._client.chat.completions.create.side_effect = RuntimeError("503 Service Unavailable")

    with pytest.raises(PlanError) as exc_info:
        provider.plan(RenderRequest(prompt="a harbour", duration=10))

    assert "model-a" in str(exc_info.value)
    assert "model-b" in str(exc_info.value)


def test_llm_plan_without_key_raises(settings, logger):
    with pytest.raises(PlanError):
        LLMPlanProvider(settings, logger).plan(RenderRequest(prompt="x", duration=10))


@pytest.mark.parametrize("duration,expected", [(10, 0.55), (15, 0.55), (30, 0.7), (60, 0.85)])
def test_temperature_grows_with_duration(duration, expected):
    assert LLMPlanProvider.temperature_for(duration) == expected
