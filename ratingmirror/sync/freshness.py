# ==============================================================================
# freshness.py  –  Decide how much work a player needs this cycle
# ------------------------------------------------------------------------------
#   1. No stored counts         → FETCH_ALL (first sync)
#   2. Stats call fails         → SKIP (retry next cycle)
#   3. Upstream counts == local → SKIP (nothing new)
#   4. Otherwise                → FETCH_RECENT
#
# The stats endpoint is one small request; archives can be many large ones.
# ==============================================================================

from __future__ import annotations

import logging
from typing import Protocol

from ratingmirror.ingestion.chesscom_client import ChesscomAPIError, record_total
from ratingmirror.models import CATEGORIES, Player, SyncVerdict

LOGGER = logging.getLogger(__name__)


class StatsSource(Protocol):
    def get_stats(self, handle: str) -> dict: ...


def should_sync(player: Player, client: StatsSource) -> SyncVerdict:
    handle = player.handle
    if player.meta.is_first_sync:
        LOGGER.info("First sync for '%s' – fetching every archive", handle)
        return SyncVerdict.FETCH_ALL

    try:
        stats = client.get_stats(handle)
    except ChesscomAPIError as exc:
        LOGGER.warning("Could not fetch stats for '%s' (%s) – skipping", handle, exc)
        return SyncVerdict.SKIP

    changed = [
        category.value
        for category in CATEGORIES
        if record_total(stats, category) != player.meta.count_for(category)
    ]
    if not changed:
        LOGGER.info("No new games for '%s' – up to date", handle)
        return SyncVerdict.SKIP

    LOGGER.info("New %s games for '%s' – fetching recent archives", "/".join(changed), handle)
    return SyncVerdict.FETCH_RECENT
