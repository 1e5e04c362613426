"""
Dependencies for station routes.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from core import db


def get_sessions(request: Request) -> db.SessionManager:
    sessions = getattr(request.app.state, "sessions", None)
    if sessions is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Store is not initialized.",
        )
    return sessions
