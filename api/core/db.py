"""
Remote store session management (raw SQL) using asyncpg.

The store is reached through a single asyncpg pool, the "session". A
`SessionManager` owns it, keeps it alive with a periodic `SELECT 1`, and
swaps in a fresh pool when that liveness query fails. FastAPI creates the
manager on startup and closes it on shutdown (see `api/main.py`).

Readers never hold on to a pool: they call `SessionManager.current()` for
every query, so a reconnect is picked up by the next request.

Query style:
- queries arrive as complete SQL text; values embedded in them must already
  be validated by the caller (see `stations/identifiers.py`).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

DEFAULT_KEEPALIVE_INTERVAL_S = 300.0
DEFAULT_POOL_MAX_SIZE = 5
DEFAULT_COMMAND_TIMEOUT_S = 30.0
CLOSE_TIMEOUT_S = 10.0
KEEPALIVE_QUERY = "SELECT 1"

logger = logging.getLogger(__name__)

# Failures raised by the driver or the network while talking to the store.
_STORE_FAILURES = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class StoreError(RuntimeError):
    pass


class StoreUnavailable(StoreError):
    pass


class StoreConnectionError(StoreError):
    pass


Connector = Callable[[str], Awaitable[Any]]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise StoreConnectionError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


def keepalive_interval_s() -> float:
    return _env_float("DB_KEEPALIVE_INTERVAL_S", DEFAULT_KEEPALIVE_INTERVAL_S)


def pool_max_size() -> int:
    size = _env_int("DB_POOL_MAX_SIZE", DEFAULT_POOL_MAX_SIZE)
    return size if size >= 1 else DEFAULT_POOL_MAX_SIZE


async def create_session(dsn: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=1,
        max_size=pool_max_size(),
        command_timeout=DEFAULT_COMMAND_TIMEOUT_S,
    )


class SessionManager:
    """
    Owns the one live store session and repairs it in the background.

    Lifecycle: `init()` connects (fatal on failure) and starts the liveness
    monitor; `close()` stops the monitor and releases the session. Swaps and
    close are serialized by a lock; `current()` is a plain read of the
    installed reference.
    """

    def __init__(
        self,
        dsn: str,
        *,
        keepalive_interval_s: float = DEFAULT_KEEPALIVE_INTERVAL_S,
        connect: Connector = create_session,
    ) -> None:
        self._dsn = (dsn or "").strip()
        self._interval = keepalive_interval_s
        self._connect = connect
        self._session: Any | None = None
        self._healthy = False
        self._closed = False
        self._lock = asyncio.Lock()
        self._stop: asyncio.Event | None = None
        self._monitor: asyncio.Task[None] | None = None

    @property
    def healthy(self) -> bool:
        return self._session is not None and self._healthy and not self._closed

    @property
    def state(self) -> str:
        if self._closed or self._session is None:
            return "closed"
        return "ok" if self._healthy else "degraded"

    async def init(self) -> Any:
        if self._session is not None and not self._closed:
            return self._session
        if not self._dsn:
            raise StoreConnectionError("Store connection string is not set.")

        try:
            session = await self._connect(self._dsn)
        except Exception as exc:
            raise StoreConnectionError("Failed to connect to the remote store.") from exc

        async with self._lock:
            self._session = session
            self._healthy = True
            self._closed = False
        logger.info("store_connected keepalive_interval_s=%s", self._interval)

        self._start_monitor()
        return session

    def current(self) -> Any:
        session = self._session
        if session is None or self._closed:
            raise StoreUnavailable("Store session is not available.")
        return session

    async def check_liveness(self) -> bool:
        """
        One monitor tick. Returns True when a working session is installed
        afterwards.
        """
        session = self._session
        if session is None or self._closed:
            return False

        try:
            await session.fetchval(KEEPALIVE_QUERY)
        except Exception as exc:
            logger.warning("keepalive_failed error=%s", exc)
            return await self._reconnect(session)

        self._healthy = True
        logger.info("keepalive_ok")
        return True

    async def _reconnect(self, stale: Any) -> bool:
        async with self._lock:
            # Closed, or another tick already replaced the stale session.
            if self._closed or self._session is not stale:
                return self.healthy

            logger.info("store_reconnecting")
            try:
                fresh = await self._connect(self._dsn)
            except Exception as exc:
                self._healthy = False
                logger.error("store_reconnect_failed error=%s", exc)
                return False

            self._session = fresh
            self._healthy = True

        logger.info("store_reconnected")
        await _close_quietly(stale)
        return True

    def _start_monitor(self) -> None:
        if self._monitor is not None and not self._monitor.done():
            return
        self._stop = asyncio.Event()
        self._monitor = asyncio.create_task(self._run_monitor(self._stop))

    async def _run_monitor(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            else:
                break

            try:
                await self.check_liveness()
            except Exception:
                logger.exception("keepalive_tick_failed")

    async def _stop_monitor(self) -> None:
        task, self._monitor = self._monitor, None
        if self._stop is not None:
            self._stop.set()
        if task is None:
            return

        done, _ = await asyncio.wait({task}, timeout=CLOSE_TIMEOUT_S)
        if not done:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        await self._stop_monitor()

        async with self._lock:
            session, self._session = self._session, None
            self._closed = True
            self._healthy = False

        if session is None:
            return None
        await _close_quietly(session)
        logger.info("store_closed")


async def _close_quietly(session: Any) -> None:
    try:
        await asyncio.wait_for(session.close(), timeout=CLOSE_TIMEOUT_S)
    except asyncio.TimeoutError:
        logger.warning("store_close_timeout; terminating session")
        session.terminate()
    except Exception:
        logger.warning("store_close_failed", exc_info=True)


def _record_to_dict(record: Any) -> dict[str, Any]:
    return dict(record)


async def fetch_one(sessions: SessionManager, sql: str) -> dict[str, Any] | None:
    """
    Run a query through the current session and return a single row (or None).
    """
    session = sessions.current()
    try:
        row = await session.fetchrow(sql)
    except _STORE_FAILURES as exc:
        raise StoreUnavailable("Store query failed.") from exc
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sessions: SessionManager, sql: str) -> list[dict[str, Any]]:
    """
    Run a query through the current session and return all rows as dicts.
    """
    session = sessions.current()
    try:
        rows = await session.fetch(sql)
    except _STORE_FAILURES as exc:
        raise StoreUnavailable("Store query failed.") from exc
    return [_record_to_dict(r) for r in rows]
