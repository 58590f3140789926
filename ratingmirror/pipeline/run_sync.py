#!/usr/bin/env python3
# ==============================================================================
# run_sync.py  –  One-shot entry point for a single sync cycle
#   Calls: ratingmirror.main.main(["--once", ...])
#   For cron / Airflow style callers that own the schedule themselves.
# ==============================================================================

import sys

from ratingmirror.main import main


def run_single_cycle(*handles: str) -> int:
    """Run one cycle (optionally for the given handles); returns an exit code."""
    argv = ["--once"]
    for handle in handles:
        argv += ["--player", handle]
    return main(argv)


if __name__ == "__main__":
    sys.exit(run_single_cycle(*sys.argv[1:]))
