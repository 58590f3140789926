# ==============================================================================
# chesscom_client.py
# ------------------------------------------------------------------------------
# Read-only client for the three Chess.com public endpoints the sync needs:
#
#   • /player/{handle}/stats            aggregate per-category records
#   • /player/{handle}/games/archives   monthly archive URLs (oldest → newest)
#   • <archive url>                     raw games of one month
#
# One request in flight at a time, a minimum gap between requests, a bounded
# timeout on every call. Failures are raised, never retried here: the next
# scheduled cycle is the retry.
# ==============================================================================

from __future__ import annotations

import logging
import os
import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Final, List, Optional

import requests

from ratingmirror.metrics import API_REQUESTS
from ratingmirror.models import Category
from ratingmirror.utils.db_utils import float_env

LOGGER = logging.getLogger(__name__)

BASE_URL: Final[str] = os.getenv("CHESSCOM_BASE_URL", "https://api.chess.com/pub")
TIMEOUT: Final[float] = float_env("CHESSCOM_TIMEOUT", 15.0)  # seconds
MIN_INTERVAL: Final[float] = float_env("CHESSCOM_MIN_INTERVAL", 0.5)  # seconds
MAX_COOLDOWN: Final[float] = float_env("CHESSCOM_MAX_COOLDOWN", 60.0)  # seconds
USER_AGENT: Final[str] = os.getenv(
    "CHESSCOM_USER_AGENT", "ratingmirror/0.1 (rating graph sync)"
)

# ------------------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------------------


class ChesscomAPIError(Exception):
    """Chess.com could not be reached or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChesscomRateLimitError(ChesscomAPIError):
    """HTTP 429 – the caller is over the rate limit."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ChesscomPayloadError(ChesscomAPIError):
    """The response body is not the JSON shape the endpoint documents."""


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def record_total(stats: Dict[str, Any], category: Category) -> int:
    """Sum win + loss + draw of ``chess_<category>.record``; missing parts count 0."""
    section = stats.get(f"chess_{category.value}")
    record = section.get("record") if isinstance(section, dict) else None
    if not isinstance(record, dict):
        return 0
    total = 0
    for key in ("win", "loss", "draw"):
        try:
            total += int(record.get(key) or 0)
        except (TypeError, ValueError):
            continue
    return total


# ------------------------------------------------------------------------------
# Client
# ------------------------------------------------------------------------------


class ChesscomClient:
    """Serial, throttled access to the Chess.com public API."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str = BASE_URL,
        timeout: float = TIMEOUT,
        min_interval: float = MIN_INTERVAL,
        max_cooldown: float = MAX_COOLDOWN,
    ):
        self.session = session or requests.Session()
        self.session.headers.update(
            {"User-Agent": USER_AGENT, "Accept": "application/json"}
        )
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_interval = min_interval
        self.max_cooldown = max_cooldown
        self._lock = threading.Lock()
        self._next_allowed = 0.0

    # --------------------------------------------------------------------------
    # Endpoints
    # --------------------------------------------------------------------------

    def get_stats(self, handle: str) -> Dict[str, Any]:
        url = f"{self.base_url}/player/{handle}/stats"
        payload = self._get_json(url, endpoint="stats")
        if not isinstance(payload, dict):
            raise ChesscomPayloadError(f"stats for '{handle}' is not an object")
        return payload

    def get_archive_urls(self, handle: str) -> List[str]:
        url = f"{self.base_url}/player/{handle}/games/archives"
        payload = self._get_json(url, endpoint="archives")
        archives = payload.get("archives") if isinstance(payload, dict) else None
        if not isinstance(archives, list):
            raise ChesscomPayloadError(f"archive list for '{handle}' has no 'archives'")
        return [a for a in archives if isinstance(a, str) and a]

    def get_archive_games(self, archive_url: str) -> List[Dict[str, Any]]:
        payload = self._get_json(archive_url, endpoint="games")
        games = payload.get("games") if isinstance(payload, dict) else None
        if not isinstance(games, list):
            raise ChesscomPayloadError(f"archive {archive_url} has no 'games' list")
        return [g for g in games if isinstance(g, dict)]

    # --------------------------------------------------------------------------
    # Transport
    # --------------------------------------------------------------------------

    def _throttle(self) -> None:
        wait = self._next_allowed - time.monotonic()
        if wait > 0:
            time.sleep(wait)

    def _get_json(self, url: str, endpoint: str) -> Any:
        with self._lock:
            self._throttle()
            try:
                resp = self.session.get(url, timeout=self.timeout)
            except requests.RequestException as exc:
                API_REQUESTS.labels(endpoint=endpoint, outcome="error").inc()
                raise ChesscomAPIError(f"GET {url} failed: {exc}") from exc
            finally:
                self._next_allowed = time.monotonic() + self.min_interval

            if resp.status_code == 429:
                retry_after = parse_retry_after(resp.headers.get("Retry-After"))
                cooldown = min(
                    retry_after if retry_after is not None else self.max_cooldown,
                    self.max_cooldown,
                )
                self._next_allowed = time.monotonic() + cooldown
                API_REQUESTS.labels(endpoint=endpoint, outcome="rate_limited").inc()
                LOGGER.warning("Rate limited on %s – cooling off %.1f s", url, cooldown)
                raise ChesscomRateLimitError(f"GET {url} → 429", retry_after)

            if not resp.ok:
                API_REQUESTS.labels(endpoint=endpoint, outcome="http_error").inc()
                raise ChesscomAPIError(
                    f"GET {url} → {resp.status_code}", status_code=resp.status_code
                )

            try:
                payload = resp.json()
            except ValueError as exc:
                API_REQUESTS.labels(endpoint=endpoint, outcome="bad_payload").inc()
                raise ChesscomPayloadError(f"GET {url} returned non-JSON body") from exc

            API_REQUESTS.labels(endpoint=endpoint, outcome="ok").inc()
            return payload
