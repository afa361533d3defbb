"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for values that change tutor-session behavior.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Mapping, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_FRAME_MS: Final[int] = 20

AUDIO_SAMPLES_PER_FRAME: Final[int] = (AUDIO_SAMPLE_RATE_HZ * AUDIO_FRAME_MS) // 1000
AUDIO_BYTES_PER_FRAME_PCM: Final[int] = AUDIO_SAMPLES_PER_FRAME * AUDIO_SAMPLE_WIDTH_BYTES

# Upper bound for a single mic/assistant chunk on the client websocket
AUDIO_MAX_CHUNK_BYTES: Final[int] = AUDIO_BYTES_PER_FRAME_PCM * 50  # 1s

# =============================================================================
# Binary WebSocket Frame Format (client <-> server)
# =============================================================================
# Both directions: 4B seq_num (u32 LE) + PCM16 payload (even length)

SEQ_NUM_BYTES: Final[int] = 4
SEQ_NUM_START: Final[int] = 1
SEQ_NUM_MAX: Final[int] = 2**32 - 1  # u32 wraparound

# =============================================================================
# Voice Resolution
# =============================================================================
# voice category -> conversational style -> synthesized voice id

VOICE_TABLE: Final[Mapping[str, Mapping[str, str]]] = {
    "male": {
        "casual": "2BJW5coyhAzSr8STdHbE",
        "formal": "c6SfcYrb2t09NHXiT80T",
    },
    "female": {
        "casual": "ZIlrSGI4jZqobxRKprJz",
        "formal": "sarah",
    },
}

FALLBACK_VOICE_ID: Final[str] = "sarah"

# =============================================================================
# Assistant Configuration
# =============================================================================

ASSISTANT_NAME: Final[str] = "Companion"

TRANSCRIBER_PROVIDER: Final[str] = "deepgram"
TRANSCRIBER_MODEL: Final[str] = "nova-3"
TRANSCRIBER_LANGUAGE: Final[str] = "en"

VOICE_PROVIDER: Final[str] = "11labs"
VOICE_STABILITY: Final[float] = 0.4
VOICE_SIMILARITY_BOOST: Final[float] = 0.8
VOICE_SPEED: Final[float] = 1
VOICE_STYLE: Final[float] = 0.5
VOICE_USE_SPEAKER_BOOST: Final[bool] = True

MODEL_PROVIDER: Final[str] = "openai"
MODEL_NAME: Final[str] = "gpt-4"

# Message types the UI requests from the provider by default
DEFAULT_CLIENT_MESSAGES: Final[Tuple[str, ...]] = ("transcript",)

# =============================================================================
# Failure Handling
# =============================================================================

# A channel error without a following call-end forces FINISHED after this
# delay. 0 disables the watchdog.
CHANNEL_ERROR_WATCHDOG_MS: Final[int] = 15_000

# Provider REST call timeout
PROVIDER_HTTP_TIMEOUT_S: Final[float] = 10.0

# =============================================================================
# Session History
# =============================================================================

SESSION_HISTORY_TABLE: Final[str] = "session_history"
