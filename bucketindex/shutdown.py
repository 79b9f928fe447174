"""Coordinated shutdown of running indexing jobs.

Jobs register their sink when they start and release it when they end.
On a stop request the registry is drained exactly once: every sink that
is still registered gets flushed and closed, and the job's cursor is
recorded so the sweep can be resumed later. Signal handlers only set an
event; the draining happens on the listener's own thread.
"""
from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from .base import Bucket
from .errors import SinkError
from .sinks import Sink

logger = logging.getLogger(__name__)


class RegisteredJob(Protocol):
    index: int
    bucket: Bucket
    sink: Sink
    cursor: str


@dataclass(frozen=True)
class Interruption:
    index: int
    bucket_name: str
    resume_token: str


class ShutdownRegistry:
    """Tracks the sinks of running jobs so a stop can close them all."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[int, RegisteredJob] = {}
        self._drained = False
        self._interruptions: List[Interruption] = []

    def register(self, job: RegisteredJob) -> bool:
        """Add a running job. Returns False once the registry was drained."""
        with self._lock:
            if self._drained:
                return False
            self._jobs[id(job)] = job
            return True

    def release(self, job: RegisteredJob) -> bool:
        """Close the job's sink unless the drain already did.

        Returns True if this call closed the sink.
        """
        with self._lock:
            if self._jobs.pop(id(job), None) is None:
                return False
            job.sink.close()
            return True

    def drain(self) -> List[Interruption]:
        """Close every registered sink once and record each job's cursor."""
        with self._lock:
            if self._drained:
                return []
            self._drained = True
            jobs, self._jobs = list(self._jobs.values()), {}

            interrupted: List[Interruption] = []
            for job in sorted(jobs, key=lambda j: j.index):
                entry = Interruption(index=job.index, bucket_name=job.bucket.name(), resume_token=job.cursor)
                try:
                    job.sink.close()
                except SinkError as exc:
                    logger.error("Failed to close output of %s: %s", entry.bucket_name, exc)
                interrupted.append(entry)
                logger.info("Stopped %s at token %r", entry.bucket_name, entry.resume_token)
            self._interruptions.extend(interrupted)
            return interrupted

    @property
    def drained(self) -> bool:
        with self._lock:
            return self._drained

    @property
    def interruptions(self) -> List[Interruption]:
        with self._lock:
            return list(self._interruptions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class ShutdownListener:
    """Turns SIGINT/SIGTERM into one call of ``on_shutdown`` on a dedicated thread.

    The first signal restores the previous handlers, so a second Ctrl-C
    falls back to the default behaviour.
    """

    def __init__(
        self,
        on_shutdown: Callable[[], Any],
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        self._on_shutdown = on_shutdown
        self._signals = tuple(signals)
        self._event = threading.Event()
        self._finished = False
        self._previous: Dict[int, Any] = {}
        self._thread: Optional[threading.Thread] = None
        self.received: Optional[int] = None

    def install(self) -> "ShutdownListener":
        """Start the listener thread and hook the signals (main thread only)."""
        self._thread = threading.Thread(target=self._listen, name="shutdown-listener", daemon=True)
        self._thread.start()
        if threading.current_thread() is threading.main_thread():
            for signum in self._signals:
                self._previous[signum] = signal.signal(signum, self._handle)
        else:
            logger.warning("Not on the main thread; signal handlers not installed")
        return self

    def uninstall(self) -> None:
        """Restore the previous handlers and stop the listener thread."""
        self._restore()
        self._finished = True
        self._event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def trigger(self) -> None:
        """Request shutdown without a signal."""
        self._event.set()

    def __enter__(self) -> "ShutdownListener":
        return self.install()

    def __exit__(self, *exc_info: Any) -> None:
        self.uninstall()

    def _handle(self, signum: int, frame: Any) -> None:
        self.received = signum
        self._restore()
        self._event.set()

    def _restore(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        previous, self._previous = self._previous, {}
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    def _listen(self) -> None:
        self._event.wait()
        if self._finished:
            return
        logger.warning("Interrupted, closing open outputs")
        self._on_shutdown()
