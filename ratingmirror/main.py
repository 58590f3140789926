#!/usr/bin/env python3
# ==============================================================================
#  RatingMirror - main.py
#  Purpose: long-running rating-graph sync service
#           (DB check → metrics server → sync now → sync every N hours)
# ==============================================================================

from __future__ import annotations

import argparse
import signal
import sys
import threading
from typing import Callable, List, Optional

from ratingmirror.db.player_store import PlayerStore, build_engine
from ratingmirror.ingestion.chesscom_client import ChesscomClient
from ratingmirror.metrics import start_metrics_server
from ratingmirror.sync.coordinator import CycleReport, run_sync_cycle
from ratingmirror.sync.scheduler import CycleScheduler
from ratingmirror.utils.db_utils import float_env, int_env
from ratingmirror.utils.logging_utils import setup_logger

SYNC_INTERVAL_HOURS = float_env("SYNC_INTERVAL_HOURS", 6.0)
METRICS_PORT = int_env("METRICS_PORT", 8000)

# ------------------------------------------------------------------------------
# Startup helpers
# ------------------------------------------------------------------------------


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ratingmirror", description="Mirror Chess.com rating graphs into the players table."
    )
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    parser.add_argument(
        "--player",
        action="append",
        dest="players",
        metavar="HANDLE",
        help="restrict the roster to this Chess.com handle (repeatable)",
    )
    return parser.parse_args(argv)


def connect_store(logger) -> PlayerStore:
    """Build the store and prove it is reachable; exit(1) otherwise."""
    logger.info("Connecting to the database…")
    try:
        store = PlayerStore(build_engine())
        store.check_connection()
    except Exception:
        logger.exception("FATAL: database unreachable – not starting")
        sys.exit(1)
    logger.info("Database connection OK")
    return store


def _install_signal_handlers(stop: Callable[[], None], logger) -> None:
    def _shutdown(signum, frame):
        logger.info("Signal %s received – finishing current player, then stopping", signum)
        stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)


# ------------------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logger = setup_logger("ratingmirror")

    store = connect_store(logger)
    client = ChesscomClient()

    def _cycle(stop_event: threading.Event) -> CycleReport:
        return run_sync_cycle(store, client, stop_event=stop_event, handles=args.players)

    if args.once:
        stop_event = threading.Event()
        _install_signal_handlers(stop_event.set, logger)
        report = _cycle(stop_event)
        return 0 if report.failed == 0 else 1

    start_metrics_server(METRICS_PORT)
    scheduler = CycleScheduler(_cycle, interval_s=SYNC_INTERVAL_HOURS * 3600)
    _install_signal_handlers(scheduler.stop, logger)
    scheduler.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
