# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from protocol.binary import (
    decode_c2s_frame,
    encode_s2c_frame,
    check_sequence_gap,
    next_seq,
    InvalidFrameLength,
    InvalidSequenceNumber,
)
from constants import (
    AUDIO_BYTES_PER_FRAME_PCM,
    AUDIO_MAX_CHUNK_BYTES,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


def make_valid_pcm() -> bytes:
    return b"\x00\x00" * (AUDIO_BYTES_PER_FRAME_PCM // 2)


# ---------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------

def test_decode_splits_header_and_pcm():
    pcm = b"\x01\x02" * 100
    frame = decode_c2s_frame((7).to_bytes(4, "little") + pcm, ts_ms=123)

    assert frame.sequence_num == 7
    assert frame.pcm_bytes == pcm
    assert frame.ts_ms == 123


def test_decode_accepts_variable_length_chunks():
    frame = decode_c2s_frame(b"\x01\x00\x00\x00" + b"\x00\x00" * 3, ts_ms=0)

    assert len(frame.pcm_bytes) == 6


# ---------------------------------------------------------------------
# Invalid frame lengths
# ---------------------------------------------------------------------

def test_decode_rejects_header_only_frame():
    with pytest.raises(InvalidFrameLength):
        decode_c2s_frame(b"\x01\x00\x00\x00", ts_ms=123)


def test_decode_rejects_partial_sample():
    payload = b"\x01\x00\x00\x00" + make_valid_pcm() + b"\x00"

    with pytest.raises(InvalidFrameLength):
        decode_c2s_frame(payload, ts_ms=123)


def test_decode_rejects_oversized_chunk():
    payload = b"\x01\x00\x00\x00" + b"\x00" * (AUDIO_MAX_CHUNK_BYTES + 2)

    with pytest.raises(InvalidFrameLength):
        decode_c2s_frame(payload, ts_ms=123)


# ---------------------------------------------------------------------
# Sequence number validation
# ---------------------------------------------------------------------

def test_decode_rejects_seq_zero():
    payload = (0).to_bytes(4, "little") + make_valid_pcm()

    with pytest.raises(InvalidSequenceNumber):
        decode_c2s_frame(payload, ts_ms=123)


def test_encode_rejects_invalid_seq():
    with pytest.raises(InvalidSequenceNumber):
        encode_s2c_frame(
            sequence_num=0,
            pcm_bytes=make_valid_pcm(),
        )


def test_encode_prefixes_little_endian_seq():
    payload = encode_s2c_frame(sequence_num=258, pcm_bytes=b"\x10\x00")

    assert payload == b"\x02\x01\x00\x00\x10\x00"


def test_next_seq_starts_and_wraps():
    assert next_seq(None) == SEQ_NUM_START
    assert next_seq(5) == 6
    assert next_seq(SEQ_NUM_MAX) == SEQ_NUM_START


# ---------------------------------------------------------------------
# Sequence gap detection
# ---------------------------------------------------------------------

def test_sequence_gap_detected():
    result = check_sequence_gap(last_seq=5, current_seq=8)

    assert result.gap is True
    assert result.expected == 6
    assert result.actual == 8
    assert result.gap_size == 2


def test_sequence_no_gap():
    result = check_sequence_gap(last_seq=5, current_seq=6)

    assert result.gap is False
    assert result.gap_size == 0


def test_first_frame_is_never_a_gap():
    assert check_sequence_gap(last_seq=None, current_seq=42).gap is False


# ---------------------------------------------------------------------
# Wraparound handling
# ---------------------------------------------------------------------

def test_sequence_wraparound_no_gap():
    result = check_sequence_gap(last_seq=SEQ_NUM_MAX, current_seq=SEQ_NUM_START)

    assert result.gap is False


def test_sequence_wraparound_gap():
    result = check_sequence_gap(last_seq=SEQ_NUM_MAX - 2, current_seq=1)

    assert result.gap is True
    assert result.gap_size == 2
