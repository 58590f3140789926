# ==============================================================================
# test_coordinator.py  –  End-to-end cycles against an in-memory players table
#   Chess.com is faked; the store is a real PlayerStore on SQLite.
# ==============================================================================

import threading
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from ratingmirror.ingestion.chesscom_client import ChesscomAPIError
from ratingmirror.models import Category, GameSummary, SyncMetadata
from ratingmirror.sync.coordinator import SyncStatus, run_sync_cycle, sync_player
from ratingmirror.tests.fakes import (
    FakeChesscomClient,
    archive_url,
    epoch,
    make_game,
    memory_store,
    stats_payload,
)


@pytest.fixture
def store():
    return memory_store()


@pytest.fixture
def client():
    return FakeChesscomClient()


def _seed(store, chess_com_id, rapid=(), blitz=(), meta=None):
    """Insert a player and give them stored graphs + metadata."""
    row_id = store.add_player(chess_com_id)
    player = store.load_players([chess_com_id])[0]
    store.save_player(
        player.with_sync(
            {Category.RAPID: tuple(rapid), Category.BLITZ: tuple(blitz)},
            meta or SyncMetadata(),
        )
    )
    return row_id


def _stored(store, chess_com_id):
    return store.load_players([chess_com_id])[0]


def _summaries(n, year=2023, month=6):
    return tuple(
        GameSummary(
            f"https://www.chess.com/game/live/old{i}",
            1500 + i,
            f"{year}-{month:02d}-{i + 1:02d}",
            "10:00:00",
        )
        for i in range(n)
    )


# ------------------------------------------------------------------------------
# Scenarios
# ------------------------------------------------------------------------------


def test_first_sync_builds_graphs_from_all_archives(store, client):
    _seed(store, "Newbie")
    url = archive_url("newbie", 2024, 5)
    client.archives["newbie"] = [url]
    client.games[url] = [
        make_game("newbie", "r1", epoch(2024, 5, 3), rating=1210),
        make_game("newbie", "r2", epoch(2024, 5, 1), rating=1200, as_white=False),
        make_game("newbie", "r3", epoch(2024, 5, 2), rating=1205),
        make_game("newbie", "u1", epoch(2024, 5, 4), rated=False),
        make_game("alice", "x1", epoch(2024, 5, 4), opponent="bob"),
    ]

    report = run_sync_cycle(store, client)

    player = _stored(store, "Newbie")
    rapid = player.series_for(Category.RAPID)
    assert [s.rating for s in rapid] == [1200, 1205, 1210]
    assert player.series_for(Category.BLITZ) == ()
    assert (player.meta.rapid_count, player.meta.blitz_count) == (3, 0)
    assert player.meta.last_updated is not None
    assert ("stats", "newbie") not in client.calls
    assert report.updated == 1 and report.games_added == 3


def test_unchanged_counts_touch_nothing(store, client):
    meta = SyncMetadata(rapid_count=5, blitz_count=2, last_updated="2024-01-01T00:00:00.000Z")
    _seed(store, "Steady", rapid=_summaries(5), blitz=_summaries(2, month=7), meta=meta)
    before = _stored(store, "Steady")
    client.stats["steady"] = stats_payload(rapid=5, blitz=2)

    report = run_sync_cycle(store, client)

    assert client.fetched_archives() == []
    assert ("archives", "steady") not in client.calls
    assert _stored(store, "Steady") == before
    assert report.skipped == 1 and report.updated == 0


def test_two_new_rapid_games_fetch_only_recent_archives(store, client):
    meta = SyncMetadata(rapid_count=5, blitz_count=0)
    _seed(store, "Climber", rapid=_summaries(5), meta=meta)
    urls = [archive_url("climber", 2024, m) for m in (1, 2, 3, 4)]
    client.stats["climber"] = stats_payload(rapid=7, blitz=0)
    client.archives["climber"] = urls
    client.games[urls[2]] = [make_game("climber", "n1", epoch(2024, 3, 30), rating=1600)]
    client.games[urls[3]] = [make_game("climber", "n2", epoch(2024, 4, 2), rating=1620)]

    run_sync_cycle(store, client)

    assert client.fetched_archives() == urls[-2:]
    rapid = _stored(store, "Climber").series_for(Category.RAPID)
    assert len(rapid) == 7
    assert rapid[:5] == _summaries(5)
    assert [s.rating for s in rapid[5:]] == [1600, 1620]
    assert _stored(store, "Climber").meta.rapid_count == 7


def test_archive_failure_isolates_one_player(store, client):
    meta = SyncMetadata(rapid_count=1, blitz_count=0, last_updated="2024-01-01T00:00:00.000Z")
    _seed(store, "Unlucky", rapid=_summaries(1), meta=meta)
    _seed(store, "Lucky")
    unlucky_before = _stored(store, "Unlucky")

    bad = [archive_url("unlucky", 2024, m) for m in (2, 3)]
    client.stats["unlucky"] = stats_payload(rapid=3)
    client.archives["unlucky"] = bad
    client.games[bad[0]] = [make_game("unlucky", "g1", epoch(2024, 2, 9))]
    client.games[bad[1]] = ChesscomAPIError("connection reset")

    good = archive_url("lucky", 2024, 3)
    client.archives["lucky"] = [good]
    client.games[good] = [make_game("lucky", "b1", epoch(2024, 3, 1), time_class="blitz")]

    report = run_sync_cycle(store, client)

    assert _stored(store, "Unlucky") == unlucky_before
    assert len(_stored(store, "Lucky").series_for(Category.BLITZ)) == 1
    assert report.skipped == 1 and report.updated == 1


# ------------------------------------------------------------------------------
# Other paths
# ------------------------------------------------------------------------------


def test_second_cycle_after_first_sync_is_a_no_op(store, client):
    _seed(store, "Repeat")
    url = archive_url("repeat", 2024, 5)
    client.archives["repeat"] = [url]
    client.games[url] = [make_game("repeat", "r1", epoch(2024, 5, 3))]
    run_sync_cycle(store, client)
    after_first = _stored(store, "Repeat")

    client.stats["repeat"] = stats_payload(rapid=1)
    run_sync_cycle(store, client)

    assert _stored(store, "Repeat") == after_first


def test_player_without_rapid_or_blitz_only_checks_stats_next_cycle(store, client):
    _seed(store, "Bullet")
    urls = [archive_url("bullet", 2024, m) for m in range(1, 7)]
    client.archives["bullet"] = urls
    for url in urls:
        client.games[url] = [make_game("bullet", url[-2:], epoch(2024, 1, 1), time_class="bullet")]
    run_sync_cycle(store, client)
    after_first = _stored(store, "Bullet")
    assert (after_first.meta.rapid_count, after_first.meta.blitz_count) == (0, 0)

    client.calls.clear()
    client.stats["bullet"] = stats_payload()
    report = run_sync_cycle(store, client)

    assert client.calls == [("stats", "bullet")]
    assert client.fetched_archives() == []
    assert _stored(store, "Bullet") == after_first
    assert report.skipped == 1


def test_stored_entry_without_rating_survives_an_update(store, client):
    legacy = GameSummary("https://www.chess.com/game/live/legacy", None, "2023-06-02", "12:00:00")
    meta = SyncMetadata(rapid_count=2, blitz_count=0)
    _seed(store, "Legacy", rapid=_summaries(1) + (legacy,), meta=meta)
    url = archive_url("legacy", 2024, 2)
    client.stats["legacy"] = stats_payload(rapid=3)
    client.archives["legacy"] = [url]
    client.games[url] = [make_game("legacy", "n1", epoch(2024, 2, 1), rating=1610)]

    report = run_sync_cycle(store, client)

    rapid = _stored(store, "Legacy").series_for(Category.RAPID)
    assert [s.game_link for s in rapid] == [
        "https://www.chess.com/game/live/old0",
        "https://www.chess.com/game/live/legacy",
        "https://www.chess.com/game/live/n1",
    ]
    assert rapid[1].rating is None
    assert report.updated == 1


def test_recent_archives_without_new_games_are_not_persisted(store, client):
    meta = SyncMetadata(rapid_count=2, blitz_count=0, last_updated="old")
    _seed(store, "Daily", rapid=_summaries(2), meta=meta)
    url = archive_url("daily", 2024, 6)
    client.stats["daily"] = stats_payload(rapid=3)
    client.archives["daily"] = [url]
    client.games[url] = [make_game("daily", "d1", epoch(2024, 6, 1), time_class="daily")]

    player = _stored(store, "Daily")
    result = sync_player(player, client)

    assert result.status is SyncStatus.UNCHANGED
    assert result.player is player


def test_archive_list_failure_skips_player(store, client):
    _seed(store, "Hidden")
    client.archives["hidden"] = ChesscomAPIError("503", status_code=503)

    result = sync_player(_stored(store, "Hidden"), client)

    assert result.status is SyncStatus.SKIPPED


def test_first_sync_with_no_archives_records_empty_graphs(store, client):
    _seed(store, "Fresh")
    client.archives["fresh"] = []

    run_sync_cycle(store, client)

    player = _stored(store, "Fresh")
    assert player.meta.rapid_count == 0 and player.meta.blitz_count == 0
    assert player.meta.last_updated is not None


def test_persistence_failure_keeps_prior_state_and_continues(store, client):
    _seed(store, "First")
    _seed(store, "Second")
    for handle in ("first", "second"):
        url = archive_url(handle, 2024, 1)
        client.archives[handle] = [url]
        client.games[url] = [make_game(handle, f"{handle}1", epoch(2024, 1, 2))]

    real_save = store.save_player

    def flaky_save(player):
        if player.handle == "first":
            raise OperationalError("UPDATE players", {}, Exception("disk full"))
        real_save(player)

    with patch.object(store, "save_player", side_effect=flaky_save):
        report = run_sync_cycle(store, client)

    assert _stored(store, "First").series_for(Category.RAPID) == ()
    assert len(_stored(store, "Second").series_for(Category.RAPID)) == 1
    assert report.failed == 1 and report.updated == 1


def test_unexpected_error_is_contained(store, client):
    _seed(store, "Boom")
    _seed(store, "Fine")
    client.archives["fine"] = []

    with patch(
        "ratingmirror.sync.coordinator.resolve_archives",
        side_effect=[RuntimeError("bug"), []],
    ):
        report = run_sync_cycle(store, client)

    assert report.failed == 1 and report.updated == 1


def test_roster_load_failure_does_not_raise(client):
    class BrokenStore:
        def load_players(self, handles=None):
            raise OperationalError("SELECT", {}, Exception("gone"))

    report = run_sync_cycle(BrokenStore(), client)

    assert report.failed == 1 and report.updated == 0


def test_stop_event_ends_cycle_between_players(store, client):
    _seed(store, "One")
    _seed(store, "Two")
    client.archives["one"] = []
    client.archives["two"] = []
    stop = threading.Event()

    real_save = store.save_player

    def save_then_stop(player):
        real_save(player)
        stop.set()

    with patch.object(store, "save_player", side_effect=save_then_stop):
        report = run_sync_cycle(store, client, stop_event=stop)

    assert report.updated == 1 and report.interrupted
    assert _stored(store, "Two").meta.last_updated is None


def test_handle_filter_limits_roster(store, client):
    _seed(store, "Only")
    _seed(store, "Other")
    client.archives["only"] = []

    report = run_sync_cycle(store, client, handles=["ONLY"])

    assert report.updated == 1
    assert ("archives", "other") not in client.calls
