from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional

from .client import DEFAULT_TIMEOUT
from .models import OutputFormat
from .pipeline import DEFAULT_CONCURRENCY
from .reporter import DEFAULT_REPORT_INTERVAL

DEFAULT_OUTPUT_FORMAT = OutputFormat.URL
DEFAULT_OUTPUT_DIR = "."
DEFAULT_RETRIES = 0


@dataclass(frozen=True)
class IndexerConfig:
    """Settings for one indexing run, usually built from command-line flags."""

    url: Optional[str] = None
    input_path: Optional[str] = None
    start_token: str = ""
    outfile: Optional[str] = None
    output_dir: str = DEFAULT_OUTPUT_DIR
    output_format: OutputFormat = DEFAULT_OUTPUT_FORMAT
    append: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: Optional[float] = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    impersonate: Optional[str] = None
    report_interval: float = DEFAULT_REPORT_INTERVAL
    verbose: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_format", OutputFormat.parse(self.output_format))
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.retries < 0:
            raise ValueError("retries must not be negative")
        if self.report_interval <= 0:
            raise ValueError("report interval must be positive")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive (use 0 on the command line to disable it)")

    @property
    def batch(self) -> bool:
        return bool(self.input_path)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "IndexerConfig":
        timeout = getattr(args, "timeout", DEFAULT_TIMEOUT)
        return cls(
            url=args.url or None,
            input_path=args.input or None,
            start_token=args.startkey or "",
            outfile=args.outfile or None,
            output_dir=args.output_dir,
            output_format=args.format,
            append=args.append,
            concurrency=args.concurrency,
            timeout=timeout if timeout else None,
            retries=args.retries,
            impersonate=args.impersonate or None,
            report_interval=args.report_interval,
            verbose=args.verbose,
        )
