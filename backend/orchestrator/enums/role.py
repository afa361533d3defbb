"""
Transcript speaker roles.

Rules:
- Values match the provider's transcript `role` field verbatim.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Speaker of a transcript turn."""

    USER = "user"
    ASSISTANT = "assistant"
