# ==============================================================================
# metrics.py  –  Prometheus instrumentation for the sync engine
# ------------------------------------------------------------------------------
#   • per-player outcomes, newly merged games, outbound API calls
#   • cycle duration histogram
#   • metrics HTTP server bootstrap (METRICS_PORT, 0 disables it)
# ==============================================================================

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram, start_http_server

LOGGER = logging.getLogger(__name__)

PLAYERS_SYNCED = Counter(
    "ratingmirror_players_synced_total",
    "Per-player sync outcomes",
    ["status"],
)

GAMES_ADDED = Counter(
    "ratingmirror_games_added_total",
    "Games newly merged into a rating graph",
    ["category"],
)

API_REQUESTS = Counter(
    "ratingmirror_api_requests_total",
    "Outbound Chess.com API requests",
    ["endpoint", "outcome"],
)

CYCLE_DURATION = Histogram(
    "ratingmirror_cycle_duration_seconds",
    "Duration of one full roster sync cycle",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
)


def start_metrics_server(port: int) -> bool:
    """Expose /metrics on ``port``. Returns False when disabled or not startable."""
    if port <= 0:
        LOGGER.info("Metrics server disabled")
        return False
    try:
        start_http_server(port)
    except OSError as exc:
        LOGGER.error("Failed to start metrics server on port %d: %s", port, exc)
        return False
    LOGGER.info("Metrics server listening on port %d", port)
    return True
