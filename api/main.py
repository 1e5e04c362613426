import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core import db
from stations import router as stations_router

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def log_level() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


logging.basicConfig(
    level=log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


def cors_allow_origins() -> list[str]:
    raw = os.environ.get("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One store session per process; a failed first connect aborts startup.
    sessions = db.SessionManager(db.database_url(), keepalive_interval_s=db.keepalive_interval_s())
    await sessions.init()
    app.state.sessions = sessions
    try:
        yield
    finally:
        await sessions.close()
        app.state.sessions = None


app = FastAPI(lifespan=lifespan)

# Allow the map frontend to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(stations_router.router, tags=["stations"])


@app.get("/health")
def health(request: Request) -> dict:
    sessions = getattr(request.app.state, "sessions", None)
    store = sessions.state if sessions is not None else "closed"
    return {"status": "ok", "store": store}


@app.get("/")
def root() -> dict:
    return {"message": "bike-share live data api"}
