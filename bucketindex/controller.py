from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

R = TypeVar("R")


class JobSlotController:
    """Runs jobs on a thread pool, at most ``limit`` at a time.

    A slot is taken when a job is submitted and released only when the
    whole job returns, so ``limit`` bounds how many sweeps are in flight,
    not how many requests. ``submit`` blocks the caller while all slots
    are busy.
    """

    def __init__(self, limit: int) -> None:
        self._limit = max(1, int(limit))
        self._executor = ThreadPoolExecutor(max_workers=self._limit, thread_name_prefix="indexer")

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)

        self._active = 0
        self._peak = 0
        self._running = False

    def start(self) -> None:
        with self._cv:
            self._running = True

    def stop(self, wait: bool = True) -> None:
        """Refuse further jobs; jobs already running are left to finish."""
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def submit(self, fn: Callable[[], R], on_stopped: Callable[[], R]) -> "Future[R]":
        """Run ``fn`` once a slot is free.

        If the controller is stopped before a slot frees up, ``fn`` is
        never run and the returned future holds ``on_stopped()`` instead.
        """
        with self._cv:
            while self._running and self._active >= self._limit:
                self._cv.wait(timeout=0.5)

            if self._running:
                self._active += 1
                self._peak = max(self._peak, self._active)
                return self._executor.submit(self._wrap, fn)

        skipped: "Future[R]" = Future()
        skipped.set_result(on_stopped())
        return skipped

    def _wrap(self, fn: Callable[[], R]) -> R:
        try:
            return fn()
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    @property
    def active(self) -> int:
        with self._cv:
            return self._active

    @property
    def peak(self) -> int:
        """Highest number of jobs that held a slot at the same time."""
        with self._cv:
            return self._peak
