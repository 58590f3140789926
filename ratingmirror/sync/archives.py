# ==============================================================================
# archives.py  –  Which monthly archives to download, and downloading them
# ------------------------------------------------------------------------------
# FETCH_ALL    → every archive URL, oldest → newest
# FETCH_RECENT → the last RECENT_ARCHIVE_COUNT URLs only; older months are
#                closed and cannot gain games
# SKIP         → nothing
# ==============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Final, Iterator, List, Optional, Protocol, Sequence

from ratingmirror.ingestion.chesscom_client import ChesscomAPIError, ChesscomPayloadError
from ratingmirror.models import Player, SyncVerdict
from ratingmirror.utils.db_utils import int_env

LOGGER = logging.getLogger(__name__)

RECENT_ARCHIVE_COUNT: Final[int] = max(1, int_env("RECENT_ARCHIVE_COUNT", 2))


class ArchiveSource(Protocol):
    def get_archive_urls(self, handle: str) -> List[str]: ...

    def get_archive_games(self, archive_url: str) -> List[Dict[str, Any]]: ...


def select_archives(
    archive_urls: Sequence[str],
    verdict: SyncVerdict,
    recent_count: int = RECENT_ARCHIVE_COUNT,
) -> List[str]:
    """Pure selection step over an already fetched archive list."""
    if verdict is SyncVerdict.FETCH_ALL:
        return list(archive_urls)
    if verdict is SyncVerdict.FETCH_RECENT:
        return list(archive_urls[-recent_count:]) if recent_count > 0 else []
    return []


def resolve_archives(
    player: Player,
    verdict: SyncVerdict,
    client: ArchiveSource,
    recent_count: int = RECENT_ARCHIVE_COUNT,
) -> Optional[List[str]]:
    """
    Archive URLs to download for ``player`` under ``verdict``.

    Returns None when the archive-list request fails; the coordinator treats
    that like SKIP. An empty list means the player has no archives at all.
    """
    if verdict is SyncVerdict.SKIP:
        return []

    try:
        archive_urls = client.get_archive_urls(player.handle)
    except ChesscomAPIError as exc:
        LOGGER.warning("Could not fetch archive list for '%s' (%s) – skipping", player.handle, exc)
        return None

    selected = select_archives(archive_urls, verdict, recent_count)
    LOGGER.info(
        "'%s': %d of %d archive(s) selected", player.handle, len(selected), len(archive_urls)
    )
    return selected


def iter_archive_games(
    archive_urls: Sequence[str], client: ArchiveSource
) -> Iterator[Dict[str, Any]]:
    """
    Yield raw games from each archive in order.

    A malformed archive body is logged and skipped. Transport failures
    (unreachable, timeout, non-success status) propagate so the caller can
    abandon the whole player rather than persist a partial history.
    """
    for url in archive_urls:
        try:
            games = client.get_archive_games(url)
        except ChesscomPayloadError as exc:
            LOGGER.warning("Skipping malformed archive %s: %s", url, exc)
            continue
        LOGGER.debug("Archive %s: %d raw game(s)", url, len(games))
        yield from games
