"""Tests for Provider Registry."""

import pytest

from app.models.schemas import Segment, SegmentOverrides
from app.services.provider_registry import ProviderRegistry


@pytest.fixture
def registry(settings, logger):
    return ProviderRegistry(settings, logger)


def make_segment(duration=10, provider="kling-pro", style="cinematic", corrected=False, model_order=None):
    return Segment(
        index=0,
        start=0,
        end=duration - 1,
        duration=duration,
        provider=provider,
        corrected=corrected,
        style=style,
        overrides=SegmentOverrides(model_order=model_order or []),
    )


def test_registry_keeps_declaration_order(registry):
    assert registry.names == ["kling-pro", "runway-gen4", "minimax-video", "ltx-video"]
    assert registry.high_capacity().name == "ltx-video"


def test_duplicate_provider_names_rejected(settings, logger):
    settings.generation_providers = [
        {"name": "dup", "durations": [5]},
        {"name": "dup", "durations": [10]},
    ]
    with pytest.raises(ValueError, match="Duplicate"):
        ProviderRegistry(settings, logger)


def test_segment_candidates_exclude_fallback_when_unrestricted(settings, logger):
    settings.segment_providers = None
    registry = ProviderRegistry(settings, logger)

    assert [c.name for c in registry.segment_candidates()] == ["kling-pro", "runway-gen4", "minimax-video"]


def test_fallback_chain_filters_by_duration(registry):
    chain = registry.fallback_chain(make_segment(duration=10))

    # minimax-video only makes 6s clips
    assert [c.name for c in chain] == ["kling-pro", "runway-gen4", "ltx-video"]


def test_fallback_chain_style_preference_follows_primary(registry):
    chain = registry.fallback_chain(make_segment(duration=6, provider="minimax-video", style="anime"))

    assert [c.name for c in chain] == ["minimax-video", "ltx-video"]


def test_fallback_chain_model_order_comes_first(registry):
    chain = registry.fallback_chain(make_segment(duration=5, model_order=["ltx-video", "unknown"]))

    assert [c.name for c in chain][:2] == ["ltx-video", "kling-pro"]
    assert "unknown" not in [c.name for c in chain]


def test_corrected_segment_may_use_any_provider(registry):
    chain = registry.fallback_chain(make_segment(duration=7, corrected=True))

    assert [c.name for c in chain] == ["kling-pro", "runway-gen4", "minimax-video", "ltx-video"]
