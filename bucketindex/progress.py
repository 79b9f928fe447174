from __future__ import annotations

import time
from dataclasses import asdict
from threading import Lock
from typing import Callable, Dict

from .models import ProgressSnapshot


class ProgressCounters:
    """Thread-safe totals shared by indexing jobs and the progress reporter.

    The lock is held only for the instant of each update or read, so
    workers and the reporter never wait on each other for long."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = Lock()
        self._clock = clock
        self._started_at = clock()
        self._total_keys = 0
        self._started = 0
        self._completed = 0

    def add_keys(self, count: int = 1) -> None:
        """Record ``count`` keys written to a sink."""
        with self._lock:
            self._total_keys += count

    def job_started(self) -> None:
        with self._lock:
            self._started += 1

    def job_completed(self) -> None:
        with self._lock:
            self._completed += 1

    @property
    def total_keys(self) -> int:
        with self._lock:
            return self._total_keys

    @property
    def started(self) -> int:
        with self._lock:
            return self._started

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def snapshot(self) -> ProgressSnapshot:
        """Return a consistent copy of all counters."""
        with self._lock:
            total_keys, started, completed = self._total_keys, self._started, self._completed
        return ProgressSnapshot(
            elapsed_secs=self._clock() - self._started_at,
            total_keys=total_keys,
            started=started,
            completed=completed,
        )

    def export_json(self) -> Dict:
        """Snapshot as a flat dictionary, including the active job count."""
        snap = self.snapshot()
        return {**asdict(snap), "elapsed_secs": round(snap.elapsed_secs, 1), "active": snap.active}
