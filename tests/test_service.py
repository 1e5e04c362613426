from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import pytest

from core import db
from fakes import FakeSession, FakeSessions
from stations import repository, service
from stations.identifiers import InvalidIdentifier, TerminalId

NOW = datetime(2024, 1, 8, 12, 0, 0)


def _history_row(last_update: str, standard: int = 4, ebikes: int = 1) -> dict[str, Any]:
    return {"last_update": last_update, "nb_standard_bikes": standard, "nb_ebikes": ebikes}


def test_status_query_embeds_only_the_validated_id() -> None:
    sql = repository.status_query(TerminalId("001023"))
    assert "terminal_name = '001023'" in sql
    assert "ORDER BY last_update DESC" in sql
    assert "LIMIT 1" in sql


def test_history_query_bounds_window_and_rows() -> None:
    sql = repository.history_query(TerminalId("001023"), since=NOW - timedelta(days=7))
    assert "last_update >= '2024-01-01 12:00:00'" in sql
    assert "LIMIT 1000" in sql


def test_query_builders_refuse_raw_strings() -> None:
    with pytest.raises(TypeError):
        repository.status_query("001023")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_get_status_decodes_latest_row(status_row: dict[str, Any]) -> None:
    session = FakeSession(rows=[status_row])

    status = await service.get_status(FakeSessions(session), "001023")

    assert status.model_dump() == status_row
    assert len(session.queries) == 1
    assert "'001023'" in session.queries[0]


@pytest.mark.asyncio
async def test_get_status_formats_datetime_columns(status_row: dict[str, Any]) -> None:
    status_row["last_update"] = datetime(2024, 1, 1, 10, 0, 0)
    status = await service.get_status(FakeSessions(FakeSession(rows=[status_row])), "001023")
    assert status.last_update == "2024-01-01 10:00:00"


@pytest.mark.asyncio
async def test_get_status_without_rows_is_not_found() -> None:
    with pytest.raises(service.StationNotFound):
        await service.get_status(FakeSessions(FakeSession(rows=[])), "001023")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("column", "value"),
    [
        ("last_update", None),
        ("nb_ebikes", "three"),
        ("nb_standard_bikes", None),
        ("nb_empty_docks", True),
    ],
)
async def test_get_status_decode_failure_is_store_error(
    status_row: dict[str, Any], column: str, value: Any
) -> None:
    status_row[column] = value
    with pytest.raises(db.StoreError, match=column):
        await service.get_status(FakeSessions(FakeSession(rows=[status_row])), "001023")


@pytest.mark.asyncio
async def test_get_status_rejects_bad_id_without_querying() -> None:
    session = FakeSession(rows=[])
    with pytest.raises(InvalidIdentifier):
        await service.get_status(FakeSessions(session), "'; DROP TABLE x;--")
    assert session.queries == []


@pytest.mark.asyncio
async def test_get_status_store_failure_is_unavailable() -> None:
    with pytest.raises(db.StoreUnavailable):
        await service.get_status(FakeSessions(FakeSession(alive=False)), "001023")


@pytest.mark.asyncio
async def test_get_history_keeps_cutoff_boundary_and_drops_older_rows() -> None:
    rows = [
        _history_row("2024-01-08 11:55:00"),
        _history_row("2024-01-01 12:00:00"),
        _history_row("2024-01-01 11:59:59"),
    ]
    session = FakeSession(rows=rows)

    entries = await service.get_history(FakeSessions(session), "001023", now=NOW)

    assert [e.last_update for e in entries] == ["2024-01-08 11:55:00", "2024-01-01 12:00:00"]
    assert "last_update >= '2024-01-01 12:00:00'" in session.queries[0]


@pytest.mark.asyncio
async def test_get_history_never_exceeds_row_cap() -> None:
    rows = [_history_row("2024-01-08 10:00:00") for _ in range(repository.HISTORY_MAX_ROWS + 25)]
    entries = await service.get_history(FakeSessions(FakeSession(rows=rows)), "001023", now=NOW)
    assert len(entries) == repository.HISTORY_MAX_ROWS


@pytest.mark.asyncio
async def test_get_history_empty_is_empty_list() -> None:
    assert await service.get_history(FakeSessions(FakeSession(rows=[])), "001023", now=NOW) == []


@pytest.mark.asyncio
async def test_get_history_rejects_bad_id_without_querying() -> None:
    session = FakeSession()
    with pytest.raises(InvalidIdentifier):
        await service.get_history(FakeSessions(session), "12345678901")
    assert session.queries == []


@pytest.mark.asyncio
async def test_list_terminals_skips_blank_names() -> None:
    rows = [{"terminal_name": "001023"}, {"terminal_name": " 003420 "}, {"terminal_name": None}]
    assert await service.list_terminals(FakeSessions(FakeSession(rows=rows))) == ["001023", "003420"]


def test_default_clock_is_naive_server_local_time() -> None:
    now = service._local_now()
    assert now.tzinfo is None
    assert abs(now - datetime.now()) < timedelta(seconds=5)


@pytest.mark.asyncio
async def test_get_history_cutoff_uses_default_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(service, "_local_now", lambda: NOW)
    session = FakeSession(rows=[])

    await service.get_history(FakeSessions(session), "001023")

    assert "last_update >= '2024-01-01 12:00:00'" in session.queries[0]
    assert "+00:00" not in session.queries[0]
