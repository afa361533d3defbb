"""
Session history recording.

Boundary to the relational datastore: one row per finished tutor session.
The session core calls record_session() once per instance and never waits on
the outcome for anything user-visible.
"""

from __future__ import annotations

import asyncio
from typing import Any

from supabase import Client, create_client

from constants import SESSION_HISTORY_TABLE
from observability.logger import log_event


class SessionHistoryError(Exception):
    """Raised when a session history row could not be written."""


class SupabaseSessionHistory:
    """
    Writes session history rows through the Supabase client.

    The client is synchronous; inserts run in a worker thread so the event
    loop keeps serving channel events.
    """

    def __init__(
        self,
        *,
        client: Client,
        table: str = SESSION_HISTORY_TABLE,
    ) -> None:
        self._client = client
        self._table = table

    @staticmethod
    def from_credentials(
        *,
        url: str,
        service_role_key: str,
        table: str = SESSION_HISTORY_TABLE,
    ) -> SupabaseSessionHistory:
        return SupabaseSessionHistory(
            client=create_client(url, service_role_key),
            table=table,
        )

    async def record_session(
        self,
        *,
        companion_id: str,
        user_id: str | None,
    ) -> None:
        """
        Insert {companion_id, user_id} into the history table.

        Raises:
            SessionHistoryError if the insert fails.
        """
        row: dict[str, Any] = {
            "companion_id": companion_id,
            "user_id": user_id,
        }

        try:
            await asyncio.to_thread(self._insert, row)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise SessionHistoryError(str(exc)) from exc

        log_event({
            "event_type": "SESSION_HISTORY_RECORDED",
            "companion_id": companion_id,
            "user_id": user_id,
        })

    def _insert(self, row: dict[str, Any]) -> None:
        self._client.table(self._table).insert(row).execute()


class LoggingSessionHistory:
    """
    Stand-in used when no datastore is configured (local development).

    Records nothing; writes the would-be row to the event log.
    """

    async def record_session(
        self,
        *,
        companion_id: str,
        user_id: str | None,
    ) -> None:
        log_event({
            "event_type": "SESSION_HISTORY_NOT_CONFIGURED",
            "companion_id": companion_id,
            "user_id": user_id,
        })
