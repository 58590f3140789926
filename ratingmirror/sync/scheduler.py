# ==============================================================================
# scheduler.py  –  Recurring sync trigger with a single-slot guard
# ------------------------------------------------------------------------------
#   • run_forever(): one cycle now, then one every `interval_s` (start → start)
#   • trigger():     run a cycle unless one is already running (then skip)
#   • stop():        wake the wait loop; the current player finishes first
# ==============================================================================

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class CycleScheduler:
    def __init__(
        self,
        run_cycle: Callable[[threading.Event], object],
        interval_s: float,
        stop_event: Optional[threading.Event] = None,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.run_cycle = run_cycle
        self.interval_s = interval_s
        self.stop_event = stop_event or threading.Event()
        self._running = threading.Lock()
        self.cycles_run = 0
        self.triggers_skipped = 0

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def trigger(self) -> bool:
        """Run one cycle now. Returns False if a cycle was already in progress."""
        if not self._running.acquire(blocking=False):
            self.triggers_skipped += 1
            LOGGER.warning("Cycle still running – trigger skipped")
            return False
        try:
            self.run_cycle(self.stop_event)
            self.cycles_run += 1
        except Exception:
            # run_sync_cycle never raises; this guards custom callables.
            LOGGER.exception("Sync cycle raised – continuing schedule")
        finally:
            self._running.release()
        return True

    def run_forever(self) -> None:
        LOGGER.info("Scheduler started – every %.0f s", self.interval_s)
        while not self.stop_event.is_set():
            started = time.monotonic()
            self.trigger()
            remaining = self.interval_s - (time.monotonic() - started)
            if remaining > 0:
                self.stop_event.wait(remaining)
        LOGGER.info("Scheduler stopped")

    def stop(self) -> None:
        self.stop_event.set()
