"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFrame:
    """
    Audio chunk crossing the client websocket.

    sequence_num:
        Monotonic sequence number provided by the sender (client or server).
        Used for gap detection and debugging only.

    pcm_bytes:
        Raw PCM16 mono audio bytes (even length, may vary per chunk).

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was received
        or produced. Used for observability only (not control logic).
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int
