# ==============================================================================
# coordinator.py  –  One sync cycle over the whole roster
# ------------------------------------------------------------------------------
# Execution flow per player (an independent transaction):
#   1. should_sync          → SKIP / FETCH_ALL / FETCH_RECENT
#   2. resolve_archives     → archive URLs (None = list unavailable → skip)
#   3. iter_archive_games   → raw games, normalize_game → per-category batches
#   4. merge_series         → new graphs + counts
#   5. store.save_player    → one whole-record write
#
# Any failure abandons that player only; nothing is written for it and the
# loop moves on. The cycle itself never raises.
# ==============================================================================

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ratingmirror.db.player_store import PlayerStore
from ratingmirror.ingestion.chesscom_client import ChesscomAPIError, ChesscomClient
from ratingmirror.metrics import CYCLE_DURATION, GAMES_ADDED, PLAYERS_SYNCED
from ratingmirror.models import (
    CATEGORIES,
    Category,
    GameSummary,
    Player,
    Series,
    SyncMetadata,
    SyncVerdict,
)
from ratingmirror.sync.archives import iter_archive_games, resolve_archives
from ratingmirror.sync.freshness import should_sync
from ratingmirror.sync.merger import merge_series
from ratingmirror.sync.normalizer import normalize_game

LOGGER = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class PlayerSyncResult:
    player: Player
    status: SyncStatus
    games_added: Dict[Category, int] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def total_added(self) -> int:
        return sum(self.games_added.values())


@dataclass
class CycleReport:
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    games_added: int = 0
    duration_s: float = 0.0
    interrupted: bool = False

    def record(self, result: PlayerSyncResult) -> None:
        setattr(self, result.status.value, getattr(self, result.status.value) + 1)
        self.games_added += result.total_added

    def summary(self) -> str:
        return (
            f"updated={self.updated} unchanged={self.unchanged} skipped={self.skipped} "
            f"failed={self.failed} games_added={self.games_added} "
            f"duration={self.duration_s:.1f}s"
        )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ------------------------------------------------------------------------------
# Per-player transaction
# ------------------------------------------------------------------------------


def sync_player(
    player: Player, client: ChesscomClient, now: Optional[str] = None
) -> PlayerSyncResult:
    """
    Compute the player's next state without touching the store.

    ChesscomAPIError from an archive download propagates: the caller must
    drop the whole transaction.
    """
    verdict = should_sync(player, client)
    if verdict is SyncVerdict.SKIP:
        return PlayerSyncResult(player, SyncStatus.SKIPPED)

    archive_urls = resolve_archives(player, verdict, client)
    if archive_urls is None:
        return PlayerSyncResult(player, SyncStatus.SKIPPED)

    fresh: Dict[Category, List[GameSummary]] = {category: [] for category in CATEGORIES}
    for raw in iter_archive_games(archive_urls, client):
        normalized = normalize_game(raw, player.handle)
        if normalized is not None:
            category, summary = normalized
            fresh[category].append(summary)

    merged: Dict[Category, Series] = {}
    counts: Dict[Category, int] = {}
    added: Dict[Category, int] = {}
    for category in CATEGORIES:
        existing = player.series_for(category)
        merged[category], counts[category] = merge_series(existing, fresh[category])
        added[category] = counts[category] - len(existing)

    if verdict is SyncVerdict.FETCH_RECENT and not any(added.values()):
        LOGGER.info("'%s': recent archives hold no new games", player.handle)
        return PlayerSyncResult(player, SyncStatus.UNCHANGED)

    meta = SyncMetadata(
        rapid_count=counts[Category.RAPID],
        blitz_count=counts[Category.BLITZ],
        last_updated=now or _utc_now_iso(),
    )
    return PlayerSyncResult(player.with_sync(merged, meta), SyncStatus.UPDATED, added)


def _run_transaction(
    player: Player, client: ChesscomClient, store: PlayerStore
) -> PlayerSyncResult:
    """sync_player + persist, with every failure contained to this player."""
    try:
        result = sync_player(player, client)
        if result.status is SyncStatus.UPDATED:
            store.save_player(result.player)
            LOGGER.info(
                "'%s' updated (+%d rapid, +%d blitz)",
                player.handle,
                result.games_added.get(Category.RAPID, 0),
                result.games_added.get(Category.BLITZ, 0),
            )
        return result
    except ChesscomAPIError as exc:
        LOGGER.warning("Upstream failure for '%s' – abandoned this cycle: %s", player.handle, exc)
        return PlayerSyncResult(player, SyncStatus.SKIPPED, error=str(exc))
    except SQLAlchemyError as exc:
        LOGGER.error("Could not persist '%s' – stored state kept: %s", player.handle, exc)
        return PlayerSyncResult(player, SyncStatus.FAILED, error=str(exc))
    except Exception as exc:
        LOGGER.exception("Unexpected error while syncing '%s'", player.handle)
        return PlayerSyncResult(player, SyncStatus.FAILED, error=str(exc))


# ------------------------------------------------------------------------------
# Cycle
# ------------------------------------------------------------------------------


def run_sync_cycle(
    store: PlayerStore,
    client: ChesscomClient,
    stop_event: Optional[threading.Event] = None,
    handles: Optional[Iterable[str]] = None,
) -> CycleReport:
    """Process every tracked player once. Never raises."""
    report = CycleReport()
    started = time.monotonic()
    LOGGER.info("Sync cycle – started")

    try:
        players = store.load_players(handles)
    except Exception:
        LOGGER.exception("Sync cycle – could not load the roster")
        report.failed += 1
        players = []

    for idx, player in enumerate(players, 1):
        if stop_event is not None and stop_event.is_set():
            LOGGER.info("Stop requested – ending cycle after %d player(s)", idx - 1)
            report.interrupted = True
            break

        LOGGER.info("Processing '%s' (%d/%d)", player.handle, idx, len(players))
        result = _run_transaction(player, client, store)
        report.record(result)

        PLAYERS_SYNCED.labels(status=result.status.value).inc()
        if result.status is SyncStatus.UPDATED:
            for category, count in result.games_added.items():
                if count > 0:
                    GAMES_ADDED.labels(category=category.value).inc(count)

    report.duration_s = time.monotonic() - started
    CYCLE_DURATION.observe(report.duration_s)
    LOGGER.info("Sync cycle – finished: %s", report.summary())
    return report
