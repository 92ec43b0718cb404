"""
New-order sound alert.

``AudioAlert`` walks an ordered list of cue strategies and stops at the first
one that plays. The default chain is the pre-recorded WAV asset, then a
synthesized two-tone chime. Every failure is logged and swallowed: a broken
sound card degrades to "no sound", never to a failed dispatch.
"""

import logging
import wave
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100

# (frequency Hz, start offset s)
CHIME_TONES = ((800.0, 0.0), (600.0, 0.2))
TONE_DURATION_S = 0.3
TONE_ATTACK_S = 0.1
TONE_PEAK_GAIN = 0.3


class Player(Protocol):
    def play(self, samples: np.ndarray, sample_rate: int) -> None: ...


class SoundDevicePlayer:
    """Non-blocking playback on the default output device."""

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        import sounddevice as sd

        sd.play(samples, sample_rate)


def tone(frequency: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """One sine tone with a linear rise (0 -> peak) then fall (peak -> 0)."""
    count = int(round(TONE_DURATION_S * sample_rate))
    t = np.arange(count, dtype=np.float64) / sample_rate
    envelope = np.interp(
        t,
        [0.0, TONE_ATTACK_S, TONE_DURATION_S],
        [0.0, TONE_PEAK_GAIN, 0.0],
    )
    return (envelope * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


def synthesize_chime(sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """800 Hz then 600 Hz, the second starting 200 ms after the first."""
    total_s = max(start for _, start in CHIME_TONES) + TONE_DURATION_S
    buffer = np.zeros(int(round(total_s * sample_rate)), dtype=np.float32)
    for frequency, start in CHIME_TONES:
        samples = tone(frequency, sample_rate)
        offset = int(round(start * sample_rate))
        end = min(offset + len(samples), len(buffer))
        buffer[offset:end] += samples[: end - offset]
    return buffer


def load_wav(path: str):
    """Decode a PCM WAV file into float32 samples in [-1, 1]."""
    with wave.open(path, "rb") as wav:
        width = wav.getsampwidth()
        channels = wav.getnchannels()
        rate = wav.getframerate()
        raw = wav.readframes(wav.getnframes())

    if width == 1:
        samples = (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    elif width == 2:
        samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    elif width == 4:
        samples = np.frombuffer(raw, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise ValueError(f"unsupported WAV sample width: {width}")

    if channels > 1:
        samples = samples.reshape(-1, channels)
    return samples, rate


class AssetCue:
    name = "asset"

    def __init__(self, path: str, player: Player, volume: float = 0.5):
        self.path = path
        self.player = player
        self.volume = volume
        self._decoded: Optional[Tuple[np.ndarray, int]] = None

    def play(self) -> None:
        if self._decoded is None:
            samples, rate = load_wav(self.path)
            self._decoded = (samples * self.volume, rate)
        self.player.play(*self._decoded)


class ToneCue:
    name = "tone"

    def __init__(self, player: Player, sample_rate: int = SAMPLE_RATE):
        self.player = player
        self.sample_rate = sample_rate
        self._chime: Optional[np.ndarray] = None

    def play(self) -> None:
        if self._chime is None:
            self._chime = synthesize_chime(self.sample_rate)
        self.player.play(self._chime, self.sample_rate)


class AudioAlert:
    def __init__(self, cues: Sequence, enabled: bool = True):
        self.cues: List = list(cues)
        self.enabled = enabled
        self._warned = set()

    def play(self) -> bool:
        """Play the first cue that works. Returns False if none did (or muted)."""
        if not self.enabled:
            return False
        for cue in self.cues:
            try:
                cue.play()
                return True
            except Exception as exc:
                self._log_failure(cue, exc)
        return False

    def _log_failure(self, cue, exc: Exception) -> None:
        name = getattr(cue, "name", type(cue).__name__)
        if name in self._warned:
            logger.debug("[AudioAlert] %s cue failed: %s", name, exc)
            return
        self._warned.add(name)
        logger.warning("[AudioAlert] %s cue failed, falling back: %s", name, exc)


def default_audio_alert(asset_path: str, enabled: bool = True, player: Optional[Player] = None) -> AudioAlert:
    player = player or SoundDevicePlayer()
    return AudioAlert([AssetCue(asset_path, player), ToneCue(player)], enabled=enabled)
