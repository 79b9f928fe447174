from __future__ import annotations

import logging
import threading
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

from .base import Bucket
from .client import HttpClient
from .controller import JobSlotController
from .errors import BucketIndexError, FetchError, PageParseError, SinkError
from .models import JobOutcome, JobResult, OutputFormat, Summary
from .paginator import PageFetcher, Paginator
from .progress import ProgressCounters
from .reporter import ProgressReporter
from .shutdown import Interruption, ShutdownListener, ShutdownRegistry
from .sinks import Sink

logger = logging.getLogger(__name__)

SinkFactory = Callable[[int, Bucket], Sink]
StartTokens = Mapping[Union[str, Tuple[int, str]], str]

DEFAULT_CONCURRENCY = 10


def format_line(fmt: OutputFormat, bucket: Bucket, key: str) -> str:
    if fmt == OutputFormat.KEY:
        return f"{key}\n"
    if fmt == OutputFormat.CSV:
        return f"{key},{bucket.resource_url(key)}\n"
    return f"{bucket.resource_url(key)}\n"


class IndexingJob:
    """One full pagination sweep of one bucket into its own sink.

    ``cursor`` is the token of the page currently being fetched or
    written. It only moves to the next token after every key of the page
    reached the sink, so it is always a safe point to resume from.
    """

    def __init__(
        self,
        index: int,
        bucket: Bucket,
        sink_factory: SinkFactory,
        fmt: OutputFormat,
        client: PageFetcher,
        counters: ProgressCounters,
        registry: ShutdownRegistry,
        stop_event: threading.Event,
        start_token: str = "",
    ) -> None:
        self.index = index
        self.bucket = bucket
        self.cursor = start_token
        self.sink: Optional[Sink] = None
        self.keys_written = 0
        self.pages_fetched = 0
        self._sink_factory = sink_factory
        self._fmt = fmt
        self._client = client
        self._counters = counters
        self._registry = registry
        self._stop = stop_event

    def run(self) -> JobResult:
        if self._stop.is_set():
            return self.skipped()

        self._counters.job_started()
        try:
            try:
                self.sink = self._sink_factory(self.index, self.bucket)
            except SinkError as exc:
                logger.error("Cannot open output for %s: %s", self.bucket.name(), exc)
                return self._result(JobOutcome.FAILED, exc)

            if not self._registry.register(self):
                self.sink.close()
                return self._result(JobOutcome.SKIPPED)

            try:
                outcome, error = self._sweep()
            finally:
                close_error = self._release()
            if close_error is not None and outcome == JobOutcome.COMPLETED:
                outcome, error = JobOutcome.FAILED, close_error
            return self._result(outcome, error)
        finally:
            self._counters.job_completed()

    def _release(self) -> Optional[SinkError]:
        try:
            self._registry.release(self)
        except SinkError as exc:
            logger.error("Cannot close output of %s: %s", self.bucket.name(), exc)
            return exc
        return None

    def skipped(self) -> JobResult:
        return self._result(JobOutcome.SKIPPED)

    def _sweep(self) -> Tuple[JobOutcome, Optional[BucketIndexError]]:
        assert self.sink is not None
        name = self.bucket.name()
        logger.debug("Counting keys in %s", name)
        if self.cursor:
            logger.debug("Starting %s from token %r", name, self.cursor)

        paginator = Paginator(self.bucket, self._client, start_token=self.cursor)
        try:
            while not paginator.done:
                if self._stop.is_set():
                    return JobOutcome.INTERRUPTED, None
                self.cursor = paginator.token
                page = paginator.step()
                self.pages_fetched = paginator.pages_fetched

                for key in page.keys:
                    if self._stop.is_set():
                        return JobOutcome.INTERRUPTED, None
                    self.sink.write_line(format_line(self._fmt, self.bucket, key))
                    self.keys_written += 1
                    self._counters.add_keys(1)
                self.sink.flush()
                self.cursor = "" if page.exhausted else paginator.token
        except (FetchError, PageParseError) as exc:
            self.pages_fetched = paginator.pages_fetched
            logger.error("Error during pagination of %s: %s", name, exc)
            return JobOutcome.FAILED, exc
        except SinkError as exc:
            if self._stop.is_set() and self.sink.closed:
                # the shutdown drain closed the sink under us
                return JobOutcome.INTERRUPTED, None
            logger.error("Error during write of %s: %s", name, exc)
            return JobOutcome.FAILED, exc

        logger.debug("Finished %s: %d keys in %d pages", name, self.keys_written, self.pages_fetched)
        return JobOutcome.COMPLETED, None

    def _result(self, outcome: JobOutcome, error: Optional[BaseException] = None) -> JobResult:
        return JobResult(
            index=self.index,
            bucket_name=self.bucket.name(),
            url=self.bucket.url(),
            outcome=outcome,
            keys_written=self.keys_written,
            pages_fetched=self.pages_fetched,
            resume_token=self.cursor,
            error_type=type(error).__name__ if error is not None else None,
            error=str(error) if error is not None else None,
        )


class IndexingPipeline:
    """Sweeps many buckets concurrently, streaming keys to one sink each.

    At most ``concurrency`` sweeps run at once; a sweep keeps its slot
    from the first page to the last. ``stop()`` may be called from any
    thread: it closes every open sink, records the cursors and lets the
    running jobs wind down. A pipeline instance runs once.
    """

    def __init__(
        self,
        sink_factory: SinkFactory,
        fmt: OutputFormat = OutputFormat.URL,
        concurrency: int = DEFAULT_CONCURRENCY,
        client: Optional[PageFetcher] = None,
        counters: Optional[ProgressCounters] = None,
        registry: Optional[ShutdownRegistry] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.counters = counters or ProgressCounters()
        self.registry = registry or ShutdownRegistry()
        self._sink_factory = sink_factory
        self._fmt = OutputFormat.parse(fmt)
        self._concurrency = concurrency
        self._client = client if client is not None else HttpClient()
        self._stop = threading.Event()
        self._controller: Optional[JobSlotController] = None

    def run(self, buckets: Sequence[Bucket], start_tokens: Optional[StartTokens] = None) -> Summary:
        """Index every bucket and return the totals and per-job results.

        ``start_tokens`` maps a bucket name, or an ``(index, name)`` pair
        as found in ``Summary.resume_points``, to the token a sweep resumes
        from. The pair wins over the bare name. Buckets not listed start
        from the first page.
        """
        start_tokens = start_tokens or {}
        controller = JobSlotController(self._concurrency)
        self._controller = controller
        controller.start()
        if self._stop.is_set():
            controller.stop(wait=False)

        futures = []
        try:
            for index, bucket in enumerate(buckets, start=1):
                job = IndexingJob(
                    index=index,
                    bucket=bucket,
                    sink_factory=self._sink_factory,
                    fmt=self._fmt,
                    client=self._client,
                    counters=self.counters,
                    registry=self.registry,
                    stop_event=self._stop,
                    start_token=start_tokens.get((index, bucket.name()), start_tokens.get(bucket.name(), "")),
                )
                futures.append(controller.submit(job.run, job.skipped))
        finally:
            controller.stop(wait=True)

        results: List[JobResult] = [future.result() for future in futures]
        return Summary(
            total_keys=self.counters.total_keys,
            started=self.counters.started,
            completed=self.counters.completed,
            results=tuple(results),
        )

    def stop(self) -> List[Interruption]:
        """Stop all sweeps; returns the jobs that were cut short and their tokens."""
        self._stop.set()
        interrupted = self.registry.drain()
        if self._controller is not None:
            self._controller.stop(wait=False)
        return interrupted


def run_indexing(
    buckets: Sequence[Bucket],
    concurrency: int,
    sink_factory: SinkFactory,
    fmt: OutputFormat = OutputFormat.URL,
    client: Optional[PageFetcher] = None,
    start_tokens: Optional[StartTokens] = None,
    report_interval: Optional[float] = None,
    handle_signals: bool = False,
) -> Summary:
    """Index ``buckets`` with at most ``concurrency`` sweeps in flight.

    With ``report_interval`` set, progress is logged on that period. With
    ``handle_signals`` set, SIGINT/SIGTERM stop the run gracefully.
    """
    pipeline = IndexingPipeline(sink_factory, fmt=fmt, concurrency=concurrency, client=client)
    reporter = ProgressReporter(pipeline.counters, report_interval) if report_interval else None
    listener = ShutdownListener(pipeline.stop) if handle_signals else None

    if listener is not None:
        listener.install()
    if reporter is not None:
        reporter.start()
    try:
        return pipeline.run(buckets, start_tokens=start_tokens)
    finally:
        if reporter is not None:
            reporter.stop()
        if listener is not None:
            listener.uninstall()
