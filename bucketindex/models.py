from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class PageResult:
    keys: Tuple[str, ...]
    next_token: str = ""

    @property
    def exhausted(self) -> bool:
        return self.next_token == ""


class OutputFormat(str, Enum):
    """Line format used when writing discovered keys to a sink."""

    KEY = "key"
    URL = "url"
    CSV = "csv"

    @classmethod
    def parse(cls, value: "str | OutputFormat") -> "OutputFormat":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        # the original tool spelled the key-only format "keys"
        if normalized == "keys":
            normalized = "key"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown output format: {value}") from None


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class JobResult:
    index: int
    bucket_name: str
    url: str
    outcome: JobOutcome
    keys_written: int
    pages_fetched: int
    resume_token: str
    error_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def resumable(self) -> bool:
        return self.outcome in (JobOutcome.FAILED, JobOutcome.INTERRUPTED, JobOutcome.SKIPPED)


@dataclass(frozen=True)
class Summary:
    total_keys: int
    started: int
    completed: int
    results: Tuple[JobResult, ...] = field(default_factory=tuple)

    @property
    def resume_tokens(self) -> Dict[str, str]:
        """Last cursor of every job that did not sweep its bucket to the end."""
        return {r.bucket_name: r.resume_token for r in self.results if r.resumable}

    @property
    def resume_points(self) -> Dict[Tuple[int, str], str]:
        """Like ``resume_tokens`` but keyed by ``(index, name)``, so jobs sharing a name stay apart."""
        return {(r.index, r.bucket_name): r.resume_token for r in self.results if r.resumable}

    def count(self, outcome: JobOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)


@dataclass(frozen=True)
class ProgressSnapshot:
    elapsed_secs: float
    total_keys: int
    started: int
    completed: int

    @property
    def active(self) -> int:
        return max(0, self.started - self.completed)
