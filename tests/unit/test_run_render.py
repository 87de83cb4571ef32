"""Tests for the render CLI."""

import json
from unittest.mock import patch

import pytest

from app.core.exceptions import NoClipsError
from app.models.schemas import PublishedAsset
from app.pipelines.run_render import build_parser, main
from app.services.plan_provider import StaticPlanProvider


def test_parser_rejects_unsupported_duration():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--prompt", "x", "--duration", "20"])


@patch("app.pipelines.run_render.RenderPipeline")
def test_main_prints_asset_urls(mock_pipeline, capsys):
    mock_pipeline.return_value.run.return_value = PublishedAsset(
        url="file:///out/final.mp4", manifest_url="file:///out/hls/master.m3u8", dropped_segments=[2]
    )

    code = main(["--prompt", "a lighthouse", "--duration", "15", "--demo"])

    assert code == 0
    out = capsys.readouterr().out
    assert "Video: file:///out/final.mp4" in out
    assert "HLS:   file:///out/hls/master.m3u8" in out
    assert "Dropped segments: [2]" in out
    request = mock_pipeline.return_value.run.call_args.args[1]
    assert request.duration == 15
    assert request.demo_mode


@patch("app.pipelines.run_render.RenderPipeline")
def test_main_uses_timeline_file(mock_pipeline, timeline_factory, tmp_path):
    timeline_file = tmp_path / "timeline.json"
    timeline_file.write_text(json.dumps(timeline_factory(10).model_dump(mode="json")))
    mock_pipeline.return_value.run.return_value = PublishedAsset(url="file:///out/final.mp4")

    main(["--prompt", "x", "--duration", "10", "--timeline", str(timeline_file)])

    plan_provider = mock_pipeline.call_args.kwargs["plan_provider"]
    assert isinstance(plan_provider, StaticPlanProvider)


@patch("app.pipelines.run_render.RenderPipeline")
def test_main_returns_nonzero_on_render_error(mock_pipeline):
    mock_pipeline.return_value.run.side_effect = NoClipsError("nothing to assemble")

    assert main(["--prompt", "x", "--duration", "10"]) == 1
