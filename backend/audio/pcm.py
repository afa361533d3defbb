"""PCM16 utilities for the microphone path."""
import numpy as np


def _samples(pcm_bytes: bytes) -> np.ndarray:
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; caller should treat as malformed frame upstream.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]
    return np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16


def silence_like(pcm_bytes: bytes) -> bytes:
    """
    PCM16 silence with the same sample count as `pcm_bytes`.

    Used while the microphone is muted so the provider keeps receiving a
    steadily clocked stream.
    """
    return np.zeros(_samples(pcm_bytes).shape[0], dtype="<i2").tobytes()
