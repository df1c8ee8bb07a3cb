"""
Down‑samples browser PCM chunks (48 kHz mono float32) to 24 kHz pcm16
for the transcription stream, and measures their loudness for the
listening indicator.
"""

import numpy as np
import resampy

from .config import Settings, get_settings

# RMS of a float32 chunk at which the level meter reads full scale.
FULL_SCALE_RMS = 0.25


class AudioProcessor:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def downsample(self, pcm_bytes: bytes) -> bytes:
        audio = np.frombuffer(pcm_bytes, dtype=np.float32)
        if audio.size == 0:
            return b""

        audio_24k = resampy.resample(
            audio,
            self.settings.sampling_rate_in,
            self.settings.sampling_rate_out,
        )

        # Clamp to [-1, 1] range and scale to int16 range
        audio_clamped = np.clip(audio_24k, -1.0, 1.0)
        audio_int16 = (audio_clamped * 32767).astype(np.int16)

        return audio_int16.tobytes()

    @staticmethod
    def level(pcm_bytes: bytes) -> float:
        """Loudness of a float32 chunk mapped to 0.0-1.0."""
        audio = np.frombuffer(pcm_bytes, dtype=np.float32)
        if audio.size == 0:
            return 0.0
        rms = float(np.sqrt(np.mean(np.square(audio, dtype=np.float64))))
        return min(rms / FULL_SCALE_RMS, 1.0)
