from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Dict, Optional

from .progress import ProgressCounters

logger = logging.getLogger(__name__)

DEFAULT_REPORT_INTERVAL = 0.5


def log_progress(record: Dict, level: int = logging.DEBUG) -> None:
    logger.log(level, json.dumps(record, ensure_ascii=False))


class ProgressReporter:
    """Periodically reads the shared counters and emits a status record.

    Runs on its own daemon thread. Reading the counters takes their lock
    only for an instant, so reporting never stalls the indexing jobs.

    Without an ``emit`` callback, periodic records are logged at DEBUG and
    the final one at INFO."""

    def __init__(
        self,
        counters: ProgressCounters,
        interval_secs: float = DEFAULT_REPORT_INTERVAL,
        emit: Optional[Callable[[Dict], None]] = None,
    ) -> None:
        self._counters = counters
        self._interval = interval_secs
        self._emit = emit
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Begin reporting in a background thread."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="progress-reporter", daemon=True)
        self._thread.start()

    def stop(self, final_report: bool = True) -> None:
        """Stop the reporting loop, optionally emitting one last record."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        if final_report:
            self.report(final=True)

    def report(self, final: bool = False) -> Dict:
        record = self._counters.export_json()
        if self._emit is not None:
            self._emit(record)
        else:
            log_progress(record, logging.INFO if final else logging.DEBUG)
        return record

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.report()
