"""Tests for Music Service."""

from unittest.mock import MagicMock, patch

import requests

from app.services.music_service import MusicService


def search_response(results):
    response = MagicMock()
    response.json.return_value = {"results": results}
    return response


TRACK = {"id": 4242, "previews": {"preview-hq-mp3": "https://freesound/4242.mp3"}}


def test_no_key_means_no_music(settings, logger):
    assert MusicService(settings, logger).fetch("epic") is None


@patch("app.services.music_service.requests.get")
def test_fetch_downloads_into_cache(mock_get, settings, logger):
    settings.freesound_api_key = "fs-key"
    download = MagicMock(content=b"mp3-data")
    mock_get.side_effect = [search_response([TRACK]), download]

    path = MusicService(settings, logger).fetch("epic")

    assert path.name == "4242.mp3"
    assert path.read_bytes() == b"mp3-data"
    assert mock_get.call_args_list[0].kwargs["params"]["query"] == "epic cinematic"


@patch("app.services.music_service.requests.get")
def test_cached_track_is_not_downloaded_again(mock_get, settings, logger):
    settings.freesound_api_key = "fs-key"
    service = MusicService(settings, logger)
    service.cache_dir.mkdir(parents=True)
    (service.cache_dir / "4242.mp3").write_bytes(b"cached")
    mock_get.return_value = search_response([TRACK])

    assert service.fetch(None).read_bytes() == b"cached"
    assert mock_get.call_count == 1
    assert mock_get.call_args.kwargs["params"]["query"] == "calm cinematic"


@patch("app.services.music_service.requests.get")
def test_search_failure_yields_none(mock_get, settings, logger):
    settings.freesound_api_key = "fs-key"
    mock_get.side_effect = requests.exceptions.ConnectionError("offline")

    assert MusicService(settings, logger).fetch("dark") is None
    assert mock_get.call_count == 2


@patch("app.services.music_service.requests.get")
def test_empty_search_yields_none(mock_get, settings, logger):
    settings.freesound_api_key = "fs-key"
    mock_get.return_value = search_response([])

    assert MusicService(settings, logger).fetch("joyful") is None
