"""
Authoritative call status enumeration.

Rules:
- This enum defines ONLY the session lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class CallStatus(str, Enum):
    """
    Lifecycle of a single tutor session instance.

    Strictly forward-moving: INACTIVE -> CONNECTING -> ACTIVE -> FINISHED.
    FINISHED is terminal for the instance.
    """

    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
