"""
TfL cycle hire feed client.

Used document:
- GET livecyclehireupdates.xml -> <stations><station>...</station>...</stations>

Each <station> carries <name/>, <terminalName/>, <lat/> and <long/> among
other occupancy fields we do not read here.
"""

from __future__ import annotations

import logging
import math
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass

import httpx

DEFAULT_FEED_URL = "https://tfl.gov.uk/tfl/syndication/feeds/cycle-hire/livecyclehireupdates.xml"
# The feed rejects requests carrying a default client user agent.
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CustomAgent/1.0)"
DEFAULT_TIMEOUT_S = 30.0

logger = logging.getLogger(__name__)


# Feed failures are explicit and separable from store failures.
class FeedError(RuntimeError):
    pass


class FetchError(FeedError):
    pass


class ParseError(FeedError):
    pass


@dataclass(frozen=True)
class FeedStation:
    name: str
    terminal_name: str
    lat: float
    long: float


def feed_url() -> str:
    return os.environ.get("TFL_FEED_URL", DEFAULT_FEED_URL).strip() or DEFAULT_FEED_URL


def feed_user_agent() -> str:
    return os.environ.get("TFL_FEED_USER_AGENT", DEFAULT_USER_AGENT).strip() or DEFAULT_USER_AGENT


def feed_timeout_s() -> float:
    raw = os.environ.get("TFL_FEED_TIMEOUT_S", "").strip()
    if not raw:
        return DEFAULT_TIMEOUT_S
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT_S
    return value if value > 0 else DEFAULT_TIMEOUT_S


async def fetch_feed_document(
    url: str,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """
    Download the raw feed document.
    """
    url = (url or "").strip()
    if not url:
        raise FetchError("Feed URL is empty.")

    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport, follow_redirects=True) as client:
            resp = await client.get(url, headers={"User-Agent": user_agent})
    except httpx.HTTPError as exc:
        raise FetchError(f"Feed request failed: {exc}") from exc

    if not resp.is_success:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:300]
        raise FetchError(f"Feed request failed: {resp.status_code} {body}")

    return resp.content


def _text(element: ET.Element, tag: str) -> str:
    return (element.findtext(tag) or "").strip()


def _coordinate(raw: str) -> float:
    # Upstream occasionally publishes malformed coordinates; those become 0.
    try:
        value = float(raw)
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_stations(document: bytes | str) -> list[FeedStation]:
    """
    Parse the feed document into stations, in document order.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise ParseError(f"Feed XML parse error: {exc}") from exc

    stations: list[FeedStation] = []
    for element in root.findall("station"):
        stations.append(
            FeedStation(
                name=_text(element, "name"),
                terminal_name=_text(element, "terminalName"),
                lat=_coordinate(_text(element, "lat")),
                long=_coordinate(_text(element, "long")),
            )
        )
    return stations
