"""
Station business logic.

Scope:
- latest status and 7-day history per terminal (remote store)
- terminal names known to the store
- station list from the live TfL feed (never touches the store)

Errors are domain exceptions; `router.py` maps them to HTTP statuses.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

import httpx

from core import db, feed

from . import repository, schemas
from .identifiers import validate_terminal_id

HISTORY_WINDOW = timedelta(days=7)

logger = logging.getLogger(__name__)


class StationNotFound(LookupError):
    pass


def _local_now() -> datetime:
    return datetime.now()


def _decode_timestamp(row: dict[str, Any], column: str) -> str:
    value = row.get(column)
    if isinstance(value, datetime):
        return repository.format_timestamp(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise db.StoreError(f"Failed to decode {column}.")


def _decode_count(row: dict[str, Any], column: str) -> int:
    value = row.get(column)
    # bool is an int subclass but never a valid count.
    if isinstance(value, bool) or not isinstance(value, int):
        raise db.StoreError(f"Failed to decode {column}.")
    return value


def _to_status(row: dict[str, Any]) -> schemas.StationStatus:
    return schemas.StationStatus(
        last_update=_decode_timestamp(row, "last_update"),
        nb_ebikes=_decode_count(row, "nb_ebikes"),
        nb_standard_bikes=_decode_count(row, "nb_standard_bikes"),
        nb_empty_docks=_decode_count(row, "nb_empty_docks"),
    )


def _to_history_entry(row: dict[str, Any]) -> schemas.StationHistoryEntry:
    return schemas.StationHistoryEntry(
        last_update=_decode_timestamp(row, "last_update"),
        nb_standard_bikes=_decode_count(row, "nb_standard_bikes"),
        nb_ebikes=_decode_count(row, "nb_ebikes"),
    )


async def get_status(sessions: db.SessionManager, terminal_id: str) -> schemas.StationStatus:
    tid = validate_terminal_id(terminal_id)

    try:
        row = await repository.latest_status(sessions, tid)
        if row is None:
            logger.info("station_not_found terminal_id=%s", tid)
            raise StationNotFound(f"No data for station {tid}.")
        return _to_status(row)
    except db.StoreError:
        logger.exception("store_query_failed intent=status terminal_id=%s", tid)
        raise


async def get_history(
    sessions: db.SessionManager,
    terminal_id: str,
    *,
    now: datetime | None = None,
) -> list[schemas.StationHistoryEntry]:
    """
    Observations from the last 7 days, newest first, at most 1000 of them.

    An entry stamped exactly at the cutoff is included. The cutoff is the
    server's local wall-clock time, written without an offset, the same way
    the ingestion job stamps `last_update`.
    """
    tid = validate_terminal_id(terminal_id)
    since = (now or _local_now()) - HISTORY_WINDOW
    cutoff = repository.format_timestamp(since)

    try:
        rows = await repository.history_since(sessions, tid, since=since)
        entries = [_to_history_entry(row) for row in rows]
    except db.StoreError:
        logger.exception("store_query_failed intent=history terminal_id=%s", tid)
        raise

    # Timestamps share one fixed-width format, so string order is time order.
    entries = [entry for entry in entries if entry.last_update >= cutoff]
    return entries[: repository.HISTORY_MAX_ROWS]


async def list_terminals(sessions: db.SessionManager) -> list[str]:
    try:
        rows = await repository.list_terminal_names(sessions)
    except db.StoreError:
        logger.exception("store_query_failed intent=terminals")
        raise

    names: list[str] = []
    for row in rows:
        name = row.get("terminal_name")
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def _to_station(item: feed.FeedStation) -> schemas.Station:
    return schemas.Station(
        name=item.name,
        terminal_id=item.terminal_name,
        latitude=item.lat,
        longitude=item.long,
    )


async def fetch_all_stations(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[schemas.Station]:
    """
    Fetch and normalize every station in the live feed. No retries here.
    """
    url = feed.feed_url()
    try:
        document = await feed.fetch_feed_document(
            url,
            user_agent=feed.feed_user_agent(),
            timeout_s=feed.feed_timeout_s(),
            transport=transport,
        )
    except feed.FetchError:
        logger.exception("feed_fetch_failed url=%s", url)
        raise

    try:
        items = feed.parse_stations(document)
    except feed.ParseError:
        logger.exception("feed_parse_failed url=%s bytes=%s", url, len(document))
        raise

    return [_to_station(item) for item in items]

