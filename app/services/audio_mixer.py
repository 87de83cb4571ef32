"""Audio Mixer - music envelope, narration ducking and the final mixed track."""

import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import numpy as np

from app.core.config import Settings
from app.core.exceptions import DeadlineExceeded
from app.models.schemas import GainInterval, SoundCue, Timeline
from app.utils.deadline import run_command

# Music gain per sound cue
CUE_GAINS: dict[SoundCue, float] = {
    SoundCue.QUIET: 0.25,
    SoundCue.RISE: 0.6,
    SoundCue.CLIMAX: 1.0,
    SoundCue.FADE: 0.0,
}

# ffmpeg audio filters for the effect tags found in the timeline
EFFECT_FILTERS: dict[str, str] = {
    "reverb": "aecho=0.8:0.88:60:0.4",
    "echo": "aecho=0.8:0.9:500:0.3",
    "eq": "equalizer=f=1000:t=q:w=1:g=3",
    "bass": "bass=g=5",
}

DETECTOR_BLOCK_SECONDS = 0.01


@dataclass
class AudioTrack:
    """Float samples in [-1, 1], shape (frames, channels)."""

    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        return self.samples.shape[0] / float(self.sample_rate)

    @property
    def frames(self) -> int:
        return self.samples.shape[0]


class GainEnvelope:
    """
    Piecewise-constant music gain built from the timeline's sound cues.

    Adjacent seconds with equal gain are merged, so the gain only changes at
    interval boundaries.
    """

    def __init__(self, intervals: list[GainInterval]):
        if not intervals:
            raise ValueError("Envelope needs at least one interval")
        self.intervals = intervals

    @classmethod
    def from_timeline(cls, timeline: Timeline) -> "GainEnvelope":
        intervals: list[GainInterval] = []
        for second in timeline.seconds:
            gain = CUE_GAINS.get(second.sound_cue, CUE_GAINS[SoundCue.QUIET])
            if intervals and intervals[-1].gain == gain:
                intervals[-1].end = second.t + 1
            else:
                intervals.append(GainInterval(start=second.t, end=second.t + 1, gain=gain))
        return cls(intervals)

    def gain_at(self, t: float) -> float:
        """Nested range-conditional evaluation: first matching interval wins, the last interval is the default."""
        for interval in self.intervals[:-1]:
            if interval.start <= t <= interval.end:
                return interval.gain
        return self.intervals[-1].gain

    def to_expression(self) -> str:
        """ffmpeg `volume` expression of the envelope, e.g. if(between(t,0,3),0.25,1.0)."""
        expression = _format_gain(self.intervals[-1].gain)
        for interval in reversed(self.intervals[:-1]):
            expression = (
                f"if(between(t,{_format_time(interval.start)},{_format_time(interval.end)}),"
                f"{_format_gain(interval.gain)},{expression})"
            )
        return expression

    def curve(self, frames: int, sample_rate: int) -> np.ndarray:
        """Per-sample gain for `frames` samples."""
        t = np.arange(frames, dtype=np.float64) / sample_rate
        gains = np.full(frames, self.intervals[-1].gain, dtype=np.float32)
        # Assign innermost first so earlier intervals take precedence on shared boundaries
        for interval in reversed(self.intervals[:-1]):
            mask = (t >= interval.start) & (t <= interval.end)
            gains[mask] = interval.gain
        return gains

    def apply(self, track: AudioTrack) -> AudioTrack:
        gains = self.curve(track.frames, track.sample_rate)
        return AudioTrack(track.samples * gains[:, None], track.sample_rate)


def _format_gain(gain: float) -> str:
    return f"{gain:g}"


def _format_time(t: float) -> str:
    return f"{t:g}"


def fit_length(track: AudioTrack, frames: int, loop: bool = False) -> AudioTrack:
    """Trim to `frames`; shorter tracks are looped or zero-padded."""
    samples = track.samples
    if samples.shape[0] >= frames:
        return AudioTrack(samples[:frames], track.sample_rate)
    if loop and samples.shape[0] > 0:
        repeats = int(math.ceil(frames / samples.shape[0]))
        return AudioTrack(np.tile(samples, (repeats, 1))[:frames], track.sample_rate)
    padded = np.zeros((frames, samples.shape[1]), dtype=samples.dtype)
    padded[: samples.shape[0]] = samples
    return AudioTrack(padded, track.sample_rate)


def match_channels(track: AudioTrack, channels: int) -> AudioTrack:
    samples = track.samples
    if samples.shape[1] == channels:
        return track
    mono = samples.mean(axis=1, keepdims=True)
    return AudioTrack(np.repeat(mono, channels, axis=1), track.sample_rate)


class SidechainCompressor:
    """
    Feed-forward compressor keyed by another signal.

    The key's RMS is measured in short blocks and smoothed with separate attack
    and release time constants. Above the threshold the gain follows
    (level / threshold) ** (1 / ratio - 1).
    """

    def __init__(self, threshold: float, ratio: float, attack_ms: float, release_ms: float):
        self.threshold = threshold
        self.ratio = max(1.0, ratio)
        self.attack = attack_ms / 1000.0
        self.release = release_ms / 1000.0

    def gain_curve(self, key: AudioTrack) -> np.ndarray:
        sr = key.sample_rate
        block = max(1, int(sr * DETECTOR_BLOCK_SECONDS))
        mono = key.samples.mean(axis=1) if key.samples.ndim == 2 else key.samples
        n_blocks = int(math.ceil(mono.shape[0] / block))
        if n_blocks == 0:
            return np.ones(0, dtype=np.float32)

        padded = np.zeros(n_blocks * block, dtype=np.float64)
        padded[: mono.shape[0]] = mono
        levels = np.sqrt(np.mean(padded.reshape(n_blocks, block) ** 2, axis=1))

        dt = block / float(sr)
        attack_coef = math.exp(-dt / self.attack) if self.attack > 0 else 0.0
        release_coef = math.exp(-dt / self.release) if self.release > 0 else 0.0
        smoothed = np.empty_like(levels)
        envelope = 0.0
        for i, level in enumerate(levels):
            coef = attack_coef if level > envelope else release_coef
            envelope = coef * envelope + (1.0 - coef) * level
            smoothed[i] = envelope

        gains = np.ones_like(smoothed)
        over = smoothed > self.threshold
        gains[over] = (smoothed[over] / self.threshold) ** (1.0 / self.ratio - 1.0)

        centers = (np.arange(n_blocks) + 0.5) * block
        return np.interp(np.arange(mono.shape[0]), centers, gains).astype(np.float32)

    def process(self, signal: AudioTrack, key: AudioTrack) -> AudioTrack:
        gains = self.gain_curve(key)
        frames = min(signal.frames, gains.shape[0])
        out = signal.samples.copy()
        out[:frames] *= gains[:frames, None]
        return AudioTrack(out, signal.sample_rate)


def placeholder_tone(seconds: float, sample_rate: int, frequency: float, amplitude: float) -> AudioTrack:
    """Stereo sine tone lasting `seconds`."""
    frames = max(1, int(round(seconds * sample_rate)))
    t = np.arange(frames, dtype=np.float64) / sample_rate
    wave = (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)
    return AudioTrack(np.stack([wave, wave], axis=1), sample_rate)


def load_audio(path: Path, sample_rate: int) -> AudioTrack:
    """Decode any audio file ffmpeg understands into a stereo float track."""
    from moviepy.editor import AudioFileClip

    clip = AudioFileClip(str(path), fps=sample_rate)
    try:
        samples = clip.to_soundarray(fps=sample_rate, quantize=False)
    finally:
        clip.close()
    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim == 1:
        samples = samples[:, None]
    return match_channels(AudioTrack(samples, sample_rate), 2)


def write_wav(track: AudioTrack, path: Path) -> Path:
    """Write a 16-bit PCM WAV."""
    from moviepy.audio.AudioClip import AudioArrayClip

    path.parent.mkdir(parents=True, exist_ok=True)
    clip = AudioArrayClip(np.clip(track.samples, -1.0, 1.0), fps=track.sample_rate)
    clip.write_audiofile(str(path), fps=track.sample_rate, nbytes=2, codec="pcm_s16le", logger=None)
    return path


def effect_filters(timeline: Timeline) -> list[str]:
    """Audio filters for effect tags mentioned anywhere in the timeline, in first-seen order."""
    filters: list[str] = []
    for second in timeline.seconds:
        if not second.effects:
            continue
        for tag in second.effects.replace(",", " ").lower().split():
            audio_filter = EFFECT_FILTERS.get(tag)
            if audio_filter and audio_filter not in filters:
                filters.append(audio_filter)
    return filters


class AudioMixer:
    """Builds the job's single audio track from optional narration and music."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize mixer.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.sample_rate = settings.audio_sample_rate
        self.compressor = SidechainCompressor(
            threshold=settings.duck_threshold,
            ratio=settings.duck_ratio,
            attack_ms=settings.duck_attack_ms,
            release_ms=settings.duck_release_ms,
        )

    def mix(
        self,
        timeline: Timeline,
        narration: Optional[AudioTrack] = None,
        music: Optional[AudioTrack] = None,
    ) -> AudioTrack:
        """
        Combine narration and music.

        - both: music is shaped by the envelope, ducked under the narration, then summed
        - music only: music shaped by the envelope
        - narration only: narration unmodified
        - neither: a quiet placeholder tone for the whole duration

        Args:
            timeline: Source of the duration and sound cues
            narration: Optional narration track
            music: Optional music track

        Returns:
            Mixed track
        """
        duration = timeline.duration
        frames = int(duration * self.sample_rate)

        if narration is None and music is None:
            self.logger.warning("⚠️ No narration or music available, using placeholder tone")
            return placeholder_tone(
                duration,
                self.sample_rate,
                self.settings.placeholder_tone_hz,
                self.settings.placeholder_tone_amplitude,
            )

        if music is None:
            self.logger.info("Narration only, passing through")
            return narration

        envelope = GainEnvelope.from_timeline(timeline)
        self.logger.debug(f"Music envelope: {envelope.to_expression()}")
        shaped = envelope.apply(fit_length(match_channels(music, 2), frames, loop=True))

        if narration is None:
            self.logger.info("Music only, applying cue envelope")
            return shaped

        voice = fit_length(match_channels(narration, 2), frames)
        ducked = self.compressor.process(shaped, voice)
        mixed = np.clip(ducked.samples + voice.samples, -1.0, 1.0)
        self.logger.info("Mixed narration over ducked music")
        return AudioTrack(mixed.astype(np.float32), self.sample_rate)

    def render(
        self,
        timeline: Timeline,
        output_path: Path,
        narration_path: Optional[Path] = None,
        music_path: Optional[Path] = None,
    ) -> Path:
        """
        Decode inputs, mix, write WAV and apply effect tags.

        Unreadable inputs are treated as absent.

        Returns:
            Path of the final audio file
        """
        narration = self._load_optional(narration_path, "narration")
        music = self._load_optional(music_path, "music")
        track = self.mix(timeline, narration, music)
        write_wav(track, output_path)
        self.logger.info(f"✅ Audio track written: {output_path} ({track.duration:.1f}s)")
        return self.apply_effects(timeline, output_path)

    def apply_effects(self, timeline: Timeline, audio_path: Path) -> Path:
        """Run the timeline's reverb/eq tags through ffmpeg. Failures keep the dry track."""
        filters = effect_filters(timeline)
        if not filters:
            return audio_path

        wet_path = audio_path.with_name(f"{audio_path.stem}_fx{audio_path.suffix}")
        cmd = [
            self.settings.ffmpeg_path, "-y", "-i", str(audio_path),
            "-af", ",".join(filters),
            "-ar", str(self.sample_rate),
            str(wet_path),
        ]
        try:
            run_command(cmd, self.settings.assembly_stage_timeout_seconds, operation="audio effects")
        except (OSError, DeadlineExceeded, subprocess.CalledProcessError) as e:
            self.logger.warning(f"⚠️ Audio effects failed, keeping dry track: {e}")
            return audio_path
        self.logger.info(f"Applied audio effects: {', '.join(filters)}")
        return wet_path

    def _load_optional(self, path: Optional[Path], label: str) -> Optional[AudioTrack]:
        if path is None or not Path(path).is_file():
            return None
        try:
            return load_audio(Path(path), self.sample_rate)
        except (OSError, ValueError) as e:
            self.logger.warning(f"⚠️ Could not decode {label} ({path}): {e}")
            return None
