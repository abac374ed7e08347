"""Notification tone synthesis and playback.

A single sine oscillation with an exponential decay envelope is rendered
into a 16-bit mono WAV and handed to the host's command-line audio player.
The player lookup (the "audio context") is done lazily on first use and
kept for the life of the process.
"""

import io
import logging
import math
import os
import shutil
import struct
import subprocess
import tempfile
import threading
import wave

logger = logging.getLogger(__name__)

SAMPLE_RATE = 22050
DECAY_FLOOR = 0.01

# Players tried in order; first one found on PATH wins
PLAYER_COMMANDS = (
    ("afplay",),
    ("paplay",),
    ("aplay", "-q"),
)


class AudioUnavailableError(RuntimeError):
    """No audio player is available on this host."""


def synthesize_tone(
    frequency_hz: float = 800.0,
    duration_ms: int = 300,
    volume: float = 0.5,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    """Render a decaying sine tone as WAV bytes.

    Gain starts at ``volume`` and ramps exponentially down to 0.01 of full
    scale over ``duration_ms``.
    """
    volume = max(0.0, min(1.0, volume))
    n_samples = max(1, int(sample_rate * duration_ms / 1000))
    start_gain = max(volume, DECAY_FLOOR)
    # g(t) = start * (floor/start) ** (t/T)
    ratio = DECAY_FLOOR / start_gain

    frames = bytearray()
    for i in range(n_samples):
        progress = i / n_samples
        gain = start_gain * (ratio ** progress) if volume > 0 else 0.0
        sample = gain * math.sin(2 * math.pi * frequency_hz * i / sample_rate)
        frames += struct.pack("<h", int(sample * 32767))

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(bytes(frames))
    return buf.getvalue()


class AudioContext:
    """Resolved audio player plus the ability to play rendered tones."""

    def __init__(self, player_command: tuple[str, ...] | None):
        self.player_command = player_command

    @classmethod
    def detect(cls) -> "AudioContext":
        for command in PLAYER_COMMANDS:
            if shutil.which(command[0]):
                logger.info(f"Audio player detected: {command[0]}")
                return cls(command)
        logger.warning("No audio player found (tried afplay, paplay, aplay)")
        return cls(None)

    @property
    def available(self) -> bool:
        return self.player_command is not None

    def play_tone(self, frequency_hz: float, duration_ms: int, volume: float) -> None:
        """Render and start playing a tone. Does not wait for playback to end.

        Raises:
            AudioUnavailableError: If no player was detected
        """
        if not self.available:
            raise AudioUnavailableError("No audio player available")

        data = synthesize_tone(frequency_hz, duration_ms, volume)
        fd, path = tempfile.mkstemp(suffix=".wav", prefix="tone_")
        with os.fdopen(fd, "wb") as f:
            f.write(data)

        try:
            proc = subprocess.Popen(
                [*self.player_command, path],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError:
            os.unlink(path)
            raise
        threading.Thread(
            target=_reap_player, args=(proc, path), daemon=True, name="tone-player",
        ).start()


def _reap_player(proc: subprocess.Popen, path: str) -> None:
    try:
        proc.wait(timeout=10)
    except subprocess.TimeoutExpired:
        proc.kill()
    finally:
        try:
            os.unlink(path)
        except OSError:
            pass


# Global audio context, created on first use
_audio_context: AudioContext | None = None
_audio_lock = threading.Lock()


def get_audio_context() -> AudioContext:
    """Get the process-wide audio context, creating it on first call."""
    global _audio_context
    with _audio_lock:
        if _audio_context is None:
            _audio_context = AudioContext.detect()
        return _audio_context
