"""
Session transcript accumulation.

Responsibilities:
- Store finalized user/assistant turns in arrival order
- Provide a newest-first display view for the UI shell
- Never mutate or drop an entry once appended

Non-responsibilities:
- No filtering of interim transcripts (reducer decides what is final)
- No persistence (transcript lives only as long as the session instance)
- No orchestration decisions
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from orchestrator.enums.role import Role


@dataclass(frozen=True)
class TranscriptEntry:
    """Single finalized transcript turn."""
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class TranscriptView:
    """
    Newest-first view over a transcript.

    The view is bound to the number of entries present when it was created,
    so it stays finite even if the accumulator keeps growing. Iterating it
    again starts over from the newest entry of that snapshot.
    """

    def __init__(self, entries: list[TranscriptEntry], length: int) -> None:
        self._entries = entries
        self._length = length

    def __iter__(self) -> Iterator[TranscriptEntry]:
        for i in range(self._length - 1, -1, -1):
            yield self._entries[i]

    def __len__(self) -> int:
        return self._length

    def first(self) -> TranscriptEntry | None:
        """Most recent entry, or None for an empty transcript."""
        if self._length == 0:
            return None
        return self._entries[self._length - 1]


class TranscriptAccumulator:
    """
    Append-only transcript log owned by a single session instance.

    Invariants:
    - Entries are stored in the order their finalized events arrived
    - Stored entries are immutable and never removed
    """

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, entry: TranscriptEntry) -> None:
        """Append one finalized entry (amortized O(1))."""
        self._entries.append(entry)

    def to_display_list(self) -> TranscriptView:
        """Return the entries most-recent-first."""
        return TranscriptView(self._entries, len(self._entries))

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize the display order into a role/content structure.

        Output format (newest first):
        [
          {"role": "assistant", "content": "..."},
          {"role": "user", "content": "..."},
        ]
        """
        return [e.to_dict() for e in self.to_display_list()]

    def __len__(self) -> int:
        return len(self._entries)


# ----------------------------------------------------------------------
# Display labels
# ----------------------------------------------------------------------

_LABEL_STRIP = re.compile(r"[.,]")


def display_label(
    entry: TranscriptEntry,
    *,
    companion_name: str,
    user_display_name: str,
) -> str:
    """
    Speaker label for a rendered transcript line.

    Assistant turns use the companion's first name without punctuation;
    user turns use the user's display name.
    """
    if entry.role is Role.ASSISTANT:
        first = companion_name.split(" ")[0] if companion_name else ""
        return _LABEL_STRIP.sub("", first)
    return user_display_name
