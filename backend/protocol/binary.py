# backend/protocol/binary.py
"""
Binary framing helpers for audio transport on the client websocket.

- Client -> Server (mic):
    4 bytes  seq_num (u32, little-endian)
    N bytes  PCM16 audio (N even, 0 < N <= AUDIO_MAX_CHUNK_BYTES)

- Server -> Client (assistant audio):
    4 bytes  seq_num (u32, little-endian)
    N bytes  PCM16 audio (same bounds)

The provider does not deliver fixed-size frames, so the payload length is
variable; it must only be whole samples.

Usage example:

    frame = decode_c2s_frame(payload, ts_ms=now_ms)

    result = check_sequence_gap(last_seq=prev_seq, current_seq=frame.sequence_num)
    if result.gap:
        log_event({
            "event_type": "SEQ_GAP_DETECTED",
            "expected": result.expected,
            "actual": result.actual,
            "gap_size": result.gap_size,
        })

    payload = encode_s2c_frame(sequence_num=egress_seq, pcm_bytes=chunk)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from audio.frames import AudioFrame
from constants import (
    AUDIO_MAX_CHUNK_BYTES,
    AUDIO_SAMPLE_WIDTH_BYTES,
    SEQ_NUM_BYTES,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when a binary audio frame has an unusable byte length.

    Covers truncated headers, empty or oversized payloads, and payloads that
    are not whole PCM16 samples. The frame must be dropped.
    """


class InvalidSequenceNumber(BinaryProtocolError):
    """Raised when a sequence number is outside the valid u32 range."""


# -------------------------
# Low-level helpers
# -------------------------

def _u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def _read_u32_le(buf: bytes, offset: int = 0) -> int:
    return struct.unpack_from("<I", buf, offset)[0]


def _check_seq(seq: int) -> None:
    if seq < SEQ_NUM_START or seq > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {seq}")


def _check_pcm(pcm_bytes: bytes) -> None:
    n = len(pcm_bytes)
    if n == 0:
        raise InvalidFrameLength("PCM payload is empty")
    if n % AUDIO_SAMPLE_WIDTH_BYTES:
        raise InvalidFrameLength(f"PCM length {n} is not a whole number of samples")
    if n > AUDIO_MAX_CHUNK_BYTES:
        raise InvalidFrameLength(f"PCM length {n} > {AUDIO_MAX_CHUNK_BYTES}")


def is_seq_next(prev: int, current: int) -> bool:
    """
    Return True if `current` is the expected next sequence number
    after `prev`, accounting for wraparound.
    """
    if prev == SEQ_NUM_MAX:
        return current == SEQ_NUM_START
    return current == prev + 1


def next_seq(prev: Optional[int]) -> int:
    """Sequence number that follows `prev` (None starts the stream)."""
    if prev is None or prev == SEQ_NUM_MAX:
        return SEQ_NUM_START
    return prev + 1


# -------------------------
# Client -> Server (mic)
# -------------------------

def decode_c2s_frame(payload: bytes, *, ts_ms: int) -> AudioFrame:
    """Decode a client->server mic audio frame."""
    if len(payload) <= SEQ_NUM_BYTES:
        raise InvalidFrameLength(
            f"C2S frame length {len(payload)} leaves no PCM payload"
        )

    seq = _read_u32_le(payload, 0)
    _check_seq(seq)

    pcm_bytes = payload[SEQ_NUM_BYTES:]
    _check_pcm(pcm_bytes)

    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=pcm_bytes,
        ts_ms=ts_ms,
    )


# -------------------------
# Server -> Client (assistant audio)
# -------------------------

def encode_s2c_frame(
    *,
    sequence_num: int,
    pcm_bytes: bytes,
) -> bytes:
    """Encode a server->client assistant audio frame."""
    _check_seq(sequence_num)
    _check_pcm(pcm_bytes)
    return _u32_le(sequence_num) + pcm_bytes


# -------------------------
# Sequence gap detection
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """
    Result of a sequence continuity check.
    """
    gap: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """
        Number of frames skipped (0 if no gap).

        Handles wraparound correctly.
        """
        if not self.gap:
            return 0

        # Linear (no wrap)
        if self.actual > self.expected:
            return self.actual - self.expected

        # Wraparound
        return (SEQ_NUM_MAX - self.expected + 1) + (self.actual - SEQ_NUM_START)


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Check whether `current_seq` follows `last_seq`.

    Pure function; never raises.
    """
    if last_seq is None or is_seq_next(last_seq, current_seq):
        return SeqCheckResult(
            gap=False,
            expected=current_seq,
            actual=current_seq,
        )

    return SeqCheckResult(
        gap=True,
        expected=next_seq(last_seq),
        actual=current_seq,
    )
