"""TTS (Text-to-Speech) client and narration track builder."""

from pathlib import Path
from typing import Any, Optional

import numpy as np
import requests

from app.core.config import Settings
from app.models.schemas import CharacterVoice, Timeline
from app.services.audio_mixer import AudioTrack, load_audio, write_wav

# OpenAI voices by speaker gender
OPENAI_VOICES = {"male": "onyx", "female": "nova"}


class TTSClient:
    """TTS client over ElevenLabs or OpenAI, whichever has credentials."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize TTS client.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.provider = self._detect_provider()

    def _detect_provider(self) -> Optional[str]:
        """Detect which TTS provider to use based on available credentials."""
        if self.settings.elevenlabs_api_key:
            return "elevenlabs"
        elif self.settings.openai_api_key:
            return "openai"
        return None

    @property
    def available(self) -> bool:
        return self.provider is not None

    def generate_speech(self, text: str, output_path: Path, voice: Optional[CharacterVoice] = None) -> Path:
        """
        Generate speech from text and save to file.

        Args:
            text: Text to convert to speech
            output_path: Path to save audio file
            voice: Optional speaker whose voice id / gender picks the voice

        Returns:
            Path of the written audio file

        Raises:
            ValueError: If text is empty or no provider is configured
            RuntimeError: If the provider call fails
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        if not self.provider:
            raise ValueError("No TTS provider configured (set ELEVENLABS_API_KEY or OPENAI_API_KEY)")

        self.logger.debug(f"Generating speech using {self.provider} for {len(text)} characters")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if self.provider == "elevenlabs":
            self._generate_elevenlabs(text, output_path, voice)
        else:
            self._generate_openai(text, output_path, voice)
        return output_path

    def _generate_elevenlabs(self, text: str, output_path: Path, voice: Optional[CharacterVoice]) -> None:
        """Generate speech using ElevenLabs API."""
        voice_id = (voice.voice_id if voice else None) or self.settings.elevenlabs_voice_id
        if not voice_id:
            raise ValueError("ElevenLabs voice ID not configured")

        url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.settings.elevenlabs_api_key,
        }
        data = {
            "text": text,
            "model_id": "eleven_multilingual_v2",
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.75,
            },
        }

        try:
            response = requests.post(url, json=data, headers=headers, timeout=self.settings.http_timeout_seconds)
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Network error calling ElevenLabs API: {e}") from e
        if response.status_code != 200:
            raise RuntimeError(f"ElevenLabs API returned status {response.status_code}: {response.text[:200]}")

        with open(output_path, "wb") as f:
            f.write(response.content)

    def _generate_openai(self, text: str, output_path: Path, voice: Optional[CharacterVoice]) -> None:
        """Generate speech using OpenAI TTS API."""
        from openai import OpenAI

        client = OpenAI(
            api_key=self.settings.openai_api_key,
            base_url=self.settings.openai_base_url,
            timeout=self.settings.http_timeout_seconds,
        )
        voice_name = "alloy"
        if voice:
            voice_name = voice.voice_id or OPENAI_VOICES.get(voice.gender, "alloy")

        try:
            response = client.audio.speech.create(model="tts-1", voice=voice_name, input=text)
            response.write_to_file(str(output_path))
        except Exception as e:
            raise RuntimeError(f"OpenAI TTS API error: {e}") from e


def split_voice_line(line: str, characters: list[CharacterVoice]) -> tuple[str, Optional[CharacterVoice]]:
    """
    Split "Name: text" into text and the named speaker.

    Unknown or missing names fall back to the first character (the narrator), if any.
    """
    text = line.strip()
    speaker: Optional[CharacterVoice] = None
    name, sep, rest = text.partition(":")
    if sep and rest.strip():
        by_name = {c.name.strip().lower(): c for c in characters}
        match = by_name.get(name.strip().lower())
        if match is not None:
            speaker = match
            text = rest.strip()
    if speaker is None and characters:
        speaker = characters[0]
    return text, speaker


class NarrationBuilder:
    """Synthesizes every voice line and places it at its second's offset."""

    def __init__(self, settings: Settings, logger: Any, tts: Optional[TTSClient] = None):
        self.settings = settings
        self.logger = logger
        self.tts = tts or TTSClient(settings, logger)
        self.sample_rate = settings.audio_sample_rate

    def build(self, timeline: Timeline, work_dir: Path) -> Optional[Path]:
        """
        Write narration.wav covering the whole timeline.

        Returns:
            Path of the narration track, or None when there is nothing to narrate
            or every line failed
        """
        lines = [(s.t, s.voice_line) for s in timeline.seconds if s.voice_line and s.voice_line.strip()]
        if not lines:
            return None
        if not self.tts.available:
            self.logger.warning("⚠️ Voice lines present but no TTS provider configured; skipping narration")
            return None

        audio_dir = work_dir / "audio"
        frames = timeline.duration * self.sample_rate
        buffer = np.zeros((frames, 2), dtype=np.float32)
        placed = 0

        for t, line in lines:
            text, speaker = split_voice_line(line, timeline.characters)
            if not text:
                continue
            try:
                speech_path = self.tts.generate_speech(text, audio_dir / f"line_{t:03d}.mp3", speaker)
                speech = load_audio(speech_path, self.sample_rate)
            except (RuntimeError, ValueError, OSError) as e:
                self.logger.warning(f"⚠️ Narration line at {t}s failed: {e}")
                continue
            placed += self._place(buffer, speech, t)

        if not placed:
            return None

        output = audio_dir / "narration.wav"
        write_wav(AudioTrack(np.clip(buffer, -1.0, 1.0), self.sample_rate), output)
        self.logger.info(f"✅ Narration built from {placed}/{len(lines)} lines")
        return output

    def _place(self, buffer: np.ndarray, speech: AudioTrack, t: int) -> int:
        offset = t * self.sample_rate
        if offset >= buffer.shape[0]:
            return 0
        length = min(speech.frames, buffer.shape[0] - offset)
        buffer[offset : offset + length] += speech.samples[:length]
        return 1
