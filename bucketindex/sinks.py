from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from .base import Bucket
from .errors import SinkError

logger = logging.getLogger(__name__)


class Sink(ABC):
    """Abstract output stream holding one bucket's discovered keys.

    Implementations must be safe to close from another thread while the
    owning job writes: the shutdown drain closes sinks of running jobs.
    Writing to a closed sink raises SinkError.
    """

    name: str = ""

    @abstractmethod
    def write_line(self, line: str) -> None:
        """Append one line (including its newline)."""

    @abstractmethod
    def flush(self) -> None:
        """Push buffered lines to the underlying storage."""

    @abstractmethod
    def close(self) -> None:
        """Flush and release the sink. Closing twice is a no-op."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...


class FileSink(Sink):
    """Writes lines to a text file, truncating it or appending to it."""

    def __init__(self, path: Union[str, Path], append: bool = False) -> None:
        self.path = Path(path)
        self.name = str(self.path)
        self._lock = threading.Lock()
        mode = "a" if append else "w"
        if append and self.path.exists():
            logger.debug("Appending to existing file %s", self.path)
        else:
            logger.debug("Creating new file %s", self.path)
        try:
            self._fh = open(self.path, mode, encoding="utf-8", newline="")
        except OSError as exc:
            raise SinkError(f"Cannot open {self.path}: {exc}") from exc
        self._closed = False

    def write_line(self, line: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkError(f"{self.path} is closed")
            try:
                self._fh.write(line)
            except (OSError, ValueError) as exc:
                # ValueError covers keys the file encoding cannot represent
                raise SinkError(f"Cannot write {self.path}: {exc}") from exc

    def flush(self) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._fh.flush()
            except OSError as exc:
                raise SinkError(f"Cannot flush {self.path}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._fh.close()
            except OSError as exc:
                raise SinkError(f"Cannot close {self.path}: {exc}") from exc

    @property
    def closed(self) -> bool:
        return self._closed


class MemorySink(Sink):
    """Keeps lines in memory; useful for embedding and tests."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self.lines: List[str] = []
        self.flush_count = 0
        self.close_count = 0
        self._lock = threading.Lock()
        self._closed = False

    def write_line(self, line: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkError(f"{self.name} is closed")
            self.lines.append(line)

    def flush(self) -> None:
        with self._lock:
            self.flush_count += 1

    def close(self) -> None:
        with self._lock:
            self.close_count += 1
            if not self._closed:
                self.flush_count += 1
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


class FileSinkFactory:
    """Opens one FileSink per job.

    Batch runs prefix file names with the job index so that buckets
    resolving to the same name never share a file. Single-target runs
    use ``<name>.txt`` or the explicit ``outfile``.
    """

    def __init__(
        self,
        directory: Union[str, Path] = ".",
        append: bool = False,
        outfile: Optional[Union[str, Path]] = None,
        indexed: bool = True,
    ) -> None:
        self._directory = Path(directory)
        self._append = append
        self._outfile = Path(outfile) if outfile else None
        self._indexed = indexed

    def path_for(self, index: int, bucket: Bucket) -> Path:
        if self._outfile is not None:
            return self._outfile
        filename = f"{index}-{bucket.name()}.txt" if self._indexed else f"{bucket.name()}.txt"
        return self._directory / filename

    def __call__(self, index: int, bucket: Bucket) -> FileSink:
        path = self.path_for(index, bucket)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SinkError(f"Cannot create directory {path.parent}: {exc}") from exc
        return FileSink(path, append=self._append)
