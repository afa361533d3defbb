"""
Assistant configuration builder.

Produces the immutable configuration handed to the voice channel when a
session starts: transcription, speech synthesis and language-model settings
for a tutor, parameterized by voice and conversational style.

Rules:
- Pure: no I/O, no clocks, no logging.
- Deterministic: output depends only on inputs.
- Never raises for unknown voice/style combinations (fallback voice).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from adapters.assistant.prompts import FIRST_MESSAGE_V1, SYSTEM_PROMPT_V1
from constants import (
    ASSISTANT_NAME,
    DEFAULT_CLIENT_MESSAGES,
    FALLBACK_VOICE_ID,
    MODEL_NAME,
    MODEL_PROVIDER,
    TRANSCRIBER_LANGUAGE,
    TRANSCRIBER_MODEL,
    TRANSCRIBER_PROVIDER,
    VOICE_PROVIDER,
    VOICE_SIMILARITY_BOOST,
    VOICE_SPEED,
    VOICE_STABILITY,
    VOICE_STYLE,
    VOICE_TABLE,
    VOICE_USE_SPEAKER_BOOST,
)


# =============================================================================
# Config sections
# =============================================================================

@dataclass(frozen=True)
class TranscriberConfig:
    provider: str = TRANSCRIBER_PROVIDER
    model: str = TRANSCRIBER_MODEL
    language: str = TRANSCRIBER_LANGUAGE


@dataclass(frozen=True)
class VoiceConfig:
    voice_id: str
    provider: str = VOICE_PROVIDER
    stability: float = VOICE_STABILITY
    similarity_boost: float = VOICE_SIMILARITY_BOOST
    speed: float = VOICE_SPEED
    style: float = VOICE_STYLE
    use_speaker_boost: bool = VOICE_USE_SPEAKER_BOOST


@dataclass(frozen=True)
class ModelConfig:
    system_prompt: str
    provider: str = MODEL_PROVIDER
    model: str = MODEL_NAME


@dataclass(frozen=True)
class AssistantConfig:
    """
    Immutable assistant definition for one session start.

    to_payload() renders the provider's wire shape (camelCase keys).
    """

    first_message: str
    transcriber: TranscriberConfig
    voice: VoiceConfig
    model: ModelConfig
    name: str = ASSISTANT_NAME
    client_messages: tuple[str, ...] = ()
    server_messages: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "firstMessage": self.first_message,
            "transcriber": {
                "provider": self.transcriber.provider,
                "model": self.transcriber.model,
                "language": self.transcriber.language,
            },
            "voice": {
                "provider": self.voice.provider,
                "voiceId": self.voice.voice_id,
                "stability": self.voice.stability,
                "similarityBoost": self.voice.similarity_boost,
                "speed": self.voice.speed,
                "style": self.voice.style,
                "useSpeakerBoost": self.voice.use_speaker_boost,
            },
            "model": {
                "provider": self.model.provider,
                "model": self.model.model,
                "messages": [
                    {"role": "system", "content": self.model.system_prompt},
                ],
            },
            "clientMessages": list(self.client_messages),
            "serverMessages": list(self.server_messages),
        }


@dataclass(frozen=True)
class AssistantOverrides:
    """
    Per-call overrides sent alongside the assistant config.

    variable_values feeds the {{topic}}/{{subject}}/{{style}} placeholders.
    """

    variable_values: Mapping[str, str] = field(default_factory=dict)
    client_messages: tuple[str, ...] = DEFAULT_CLIENT_MESSAGES
    server_messages: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "variableValues": dict(self.variable_values),
            "clientMessages": list(self.client_messages),
            "serverMessages": list(self.server_messages),
        }


# =============================================================================
# Builders
# =============================================================================

def resolve_voice_id(voice: str, style: str) -> str:
    """
    Two-level lookup: voice category -> style -> synthesized voice id.

    Any miss (unknown category, unknown style, empty id) yields
    FALLBACK_VOICE_ID.
    """
    by_style = VOICE_TABLE.get(voice)
    if not by_style:
        return FALLBACK_VOICE_ID
    return by_style.get(style) or FALLBACK_VOICE_ID


def build(
    voice_id: str,
    style: str,
    *,
    client_messages: tuple[str, ...] = (),
    server_messages: tuple[str, ...] = (),
) -> AssistantConfig:
    """Build the tutor assistant config for a voice and style."""
    return AssistantConfig(
        first_message=FIRST_MESSAGE_V1,
        transcriber=TranscriberConfig(),
        voice=VoiceConfig(voice_id=resolve_voice_id(voice_id, style)),
        model=ModelConfig(system_prompt=SYSTEM_PROMPT_V1),
        client_messages=tuple(client_messages),
        server_messages=tuple(server_messages),
    )


def build_overrides(
    *,
    subject: str,
    topic: str,
    style: str,
    client_messages: tuple[str, ...] = DEFAULT_CLIENT_MESSAGES,
) -> AssistantOverrides:
    """Overrides binding the lesson variables for one call."""
    return AssistantOverrides(
        variable_values={"subject": subject, "topic": topic, "style": style},
        client_messages=tuple(client_messages),
        server_messages=(),
    )
