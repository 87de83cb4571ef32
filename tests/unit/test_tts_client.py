"""Tests for TTS client and narration builder."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from app.models.schemas import CharacterVoice
from app.services.audio_mixer import AudioTrack
from app.services.tts_client import NarrationBuilder, TTSClient, split_voice_line

SR = 100

CHARACTERS = [CharacterVoice(name="Narrator", gender="male"), CharacterVoice(name="Mira", gender="female")]


def test_split_voice_line_finds_named_speaker():
    text, speaker = split_voice_line("Mira: the tide is turning", CHARACTERS)

    assert text == "the tide is turning"
    assert speaker.name == "Mira"


def test_split_voice_line_unknown_name_keeps_text_and_uses_narrator():
    text, speaker = split_voice_line("Captain: hold fast", CHARACTERS)

    assert text == "Captain: hold fast"
    assert speaker.name == "Narrator"


def test_split_voice_line_without_characters():
    assert split_voice_line("  plain line ", []) == ("plain line", None)


def test_tts_provider_detection(settings, logger):
    assert not TTSClient(settings, logger).available

    settings.openai_api_key = "sk-test"
    assert TTSClient(settings, logger).provider == "openai"

    settings.elevenlabs_api_key = "el-test"
    assert TTSClient(settings, logger).provider == "elevenlabs"


def test_generate_speech_rejects_empty_text(settings, logger, tmp_path):
    settings.openai_api_key = "sk-test"

    with pytest.raises(ValueError):
        TTSClient(settings, logger).generate_speech("   ", tmp_path / "x.mp3")


@patch("app.services.tts_client.requests.post")
def test_elevenlabs_writes_audio(mock_post, settings, logger, tmp_path):
    settings.elevenlabs_api_key = "el-test"
    settings.elevenlabs_voice_id = "voice-default"
    mock_post.return_value = MagicMock(status_code=200, content=b"mp3-bytes")

    path = TTSClient(settings, logger).generate_speech("hello", tmp_path / "a" / "line.mp3", CHARACTERS[1])

    assert path.read_bytes() == b"mp3-bytes"
    assert mock_post.call_args.args[0].endswith("/voice-default")


@patch("app.services.tts_client.requests.post")
def test_elevenlabs_error_status_raises(mock_post, settings, logger, tmp_path):
    settings.elevenlabs_api_key = "el-test"
    settings.elevenlabs_voice_id = "voice-default"
    mock_post.return_value = MagicMock(status_code=429, text="quota exceeded")

    with pytest.raises(RuntimeError):
        TTSClient(settings, logger).generate_speech("hello", tmp_path / "line.mp3")


@pytest.fixture
def tts():
    tts = MagicMock()
    tts.available = True
    tts.generate_speech.side_effect = lambda text, path, voice=None: Path(path)
    return tts


@patch("app.services.tts_client.write_wav")
@patch("app.services.tts_client.load_audio")
def test_narration_places_lines_at_their_second(mock_load, mock_write, settings, logger, tts, timeline_factory, tmp_path):
    settings.audio_sample_rate = SR
    mock_load.return_value = AudioTrack(np.full((50, 2), 0.5, dtype=np.float32), SR)
    timeline = timeline_factory(4, extras={1: {"voice_line": "Mira: look"}, 3: {"voice_line": "again"}})
    timeline.characters = CHARACTERS

    output = NarrationBuilder(settings, logger, tts=tts).build(timeline, tmp_path)

    assert output == tmp_path / "audio" / "narration.wav"
    track = mock_write.call_args.args[0]
    assert track.frames == 4 * SR
    assert np.all(track.samples[:SR] == 0)
    assert np.all(track.samples[SR : SR + 50] == 0.5)
    assert np.all(track.samples[SR + 50 : 3 * SR] == 0)
    assert np.all(track.samples[3 * SR : 3 * SR + 50] == 0.5)
    assert tts.generate_speech.call_args_list[0].args[2].name == "Mira"


@patch("app.services.tts_client.write_wav")
@patch("app.services.tts_client.load_audio")
def test_narration_line_longer_than_timeline_is_cut(mock_load, mock_write, settings, logger, tts, timeline_factory, tmp_path):
    settings.audio_sample_rate = SR
    mock_load.return_value = AudioTrack(np.full((5 * SR, 2), 0.2, dtype=np.float32), SR)
    timeline = timeline_factory(2, extras={1: {"voice_line": "a very long line"}})

    NarrationBuilder(settings, logger, tts=tts).build(timeline, tmp_path)

    assert mock_write.call_args.args[0].frames == 2 * SR


def test_narration_without_lines_or_provider(settings, logger, tts, timeline_factory, tmp_path):
    assert NarrationBuilder(settings, logger, tts=tts).build(timeline_factory(3), tmp_path) is None

    tts.available = False
    timeline = timeline_factory(3, extras={0: {"voice_line": "hello"}})
    assert NarrationBuilder(settings, logger, tts=tts).build(timeline, tmp_path) is None


@patch("app.services.tts_client.write_wav")
def test_narration_all_lines_failing_yields_none(mock_write, settings, logger, tts, timeline_factory, tmp_path):
    tts.generate_speech.side_effect = RuntimeError("TTS down")
    timeline = timeline_factory(2, extras={0: {"voice_line": "hello"}})

    assert NarrationBuilder(settings, logger, tts=tts).build(timeline, tmp_path) is None
    mock_write.assert_not_called()
