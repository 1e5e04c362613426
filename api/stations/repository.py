"""
Station occupancy SQL (raw).

The table is written by the feed ingestion job, one row per observation:
`livecyclehireupdates(terminal_name, last_update, nb_ebikes,
nb_standard_bikes, nb_empty_docks)`. We only read it.

Query text is built here from a `TerminalId` and a formatted timestamp, never
from request strings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from core import db

from .identifiers import TerminalId

TABLE = "livecyclehireupdates"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
HISTORY_MAX_ROWS = 1000


def _terminal_literal(terminal_id: TerminalId) -> str:
    if not isinstance(terminal_id, TerminalId):
        raise TypeError("terminal_id must be a validated TerminalId.")
    return f"'{terminal_id.value}'"


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def status_query(terminal_id: TerminalId) -> str:
    return f"""
        SELECT
            last_update,
            nb_ebikes,
            nb_standard_bikes,
            nb_empty_docks
        FROM {TABLE}
        WHERE terminal_name = {_terminal_literal(terminal_id)}
        ORDER BY last_update DESC
        LIMIT 1
        """


def history_query(terminal_id: TerminalId, *, since: datetime) -> str:
    """
    Observations at or after `since`, newest first, capped at HISTORY_MAX_ROWS.
    """
    return f"""
        SELECT
            last_update,
            nb_standard_bikes,
            nb_ebikes
        FROM {TABLE}
        WHERE terminal_name = {_terminal_literal(terminal_id)}
          AND last_update >= '{format_timestamp(since)}'
        ORDER BY last_update DESC
        LIMIT {HISTORY_MAX_ROWS}
        """


def terminals_query() -> str:
    return f"""
        SELECT DISTINCT terminal_name
        FROM {TABLE}
        ORDER BY terminal_name
        """


async def latest_status(sessions: db.SessionManager, terminal_id: TerminalId) -> dict[str, Any] | None:
    return await db.fetch_one(sessions, status_query(terminal_id))


async def history_since(
    sessions: db.SessionManager,
    terminal_id: TerminalId,
    *,
    since: datetime,
) -> list[dict[str, Any]]:
    return await db.fetch_all(sessions, history_query(terminal_id, since=since))


async def list_terminal_names(sessions: db.SessionManager) -> list[dict[str, Any]]:
    return await db.fetch_all(sessions, terminals_query())
