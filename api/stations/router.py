"""
Station API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from core import db, feed

from . import dependencies, schemas, service
from .identifiers import InvalidIdentifier

router = APIRouter()


def _invalid_identifier() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid station identifier")


def _store_failure() -> HTTPException:
    # Driver messages and query text stay in the server log.
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database query failed")


@router.get("/stations", response_model=list[schemas.Station])
async def get_all_stations() -> list[schemas.Station]:
    """
    Every station in the live TfL feed.
    """
    try:
        return await service.fetch_all_stations()
    except feed.FetchError as exc:
        raise HTTPException(status_code=500, detail="Failed to fetch station data") from exc
    except feed.ParseError as exc:
        raise HTTPException(status_code=500, detail="Failed to parse station data") from exc


@router.get("/station/{terminal_id}", response_model=schemas.StationStatus)
async def get_station_status(
    terminal_id: str,
    sessions: db.SessionManager = Depends(dependencies.get_sessions),
) -> schemas.StationStatus:
    try:
        return await service.get_status(sessions, terminal_id)
    except InvalidIdentifier as exc:
        raise _invalid_identifier() from exc
    except service.StationNotFound as exc:
        raise HTTPException(status_code=404, detail="Station not found") from exc
    except db.StoreError as exc:
        raise _store_failure() from exc


@router.get("/history/{terminal_id}", response_model=list[schemas.StationHistoryEntry])
async def get_station_history(
    terminal_id: str,
    sessions: db.SessionManager = Depends(dependencies.get_sessions),
) -> list[schemas.StationHistoryEntry]:
    """
    Last 7 days of observations for one station, newest first.
    """
    try:
        return await service.get_history(sessions, terminal_id)
    except InvalidIdentifier as exc:
        raise _invalid_identifier() from exc
    except db.StoreError as exc:
        raise _store_failure() from exc


@router.get("/terminals", response_model=list[str])
async def get_terminals(
    sessions: db.SessionManager = Depends(dependencies.get_sessions),
) -> list[str]:
    try:
        return await service.list_terminals(sessions)
    except db.StoreError as exc:
        raise _store_failure() from exc
