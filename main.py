from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from bucketindex.backoff import BackoffStrategy
from bucketindex.client import DEFAULT_TIMEOUT, HttpClient
from bucketindex.config import (
    DEFAULT_OUTPUT_DIR,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_RETRIES,
    IndexerConfig,
)
from bucketindex.errors import BucketIndexError
from bucketindex.models import JobOutcome, Summary
from bucketindex.pipeline import DEFAULT_CONCURRENCY, run_indexing
from bucketindex.reporter import DEFAULT_REPORT_INTERVAL
from bucketindex.resolver import resolve, resolve_all
from bucketindex.sinks import FileSinkFactory

VERSION = "0.3"

logger = logging.getLogger("bucketindex")


def _load_urls(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        urls = [line.strip() for line in f if line.strip()]
    if not urls:
        raise ValueError(f"No URLs found in {path}")
    return urls


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[bucketindex] %(message)s",
        stream=sys.stderr,
    )


def _client_for(config: IndexerConfig) -> HttpClient:
    return HttpClient(
        timeout=config.timeout,
        retries=config.retries,
        backoff=BackoffStrategy(),
        impersonate=config.impersonate,
    )


def _report(summary: Summary) -> None:
    for result in summary.results:
        if result.outcome == JobOutcome.COMPLETED:
            continue
        line = f"{result.outcome.value}: {result.index}-{result.bucket_name} last pagination key: {result.resume_token!r}"
        if result.error:
            line += f" ({result.error_type}: {result.error})"
        print(line)
    print(
        f"\nDONE: keys={summary.total_keys} started={summary.started} completed={summary.completed} "
        f"failed={summary.count(JobOutcome.FAILED)} interrupted={summary.count(JobOutcome.INTERRUPTED)}"
    )


def run_single(config: IndexerConfig) -> int:
    """Index one bucket; any error is fatal for the run."""
    try:
        bucket = resolve(config.url or "")
    except BucketIndexError as exc:
        logger.error("Failed to parse input URL: %s", exc)
        return 1

    logger.info("Indexing %s (%s) from %s", bucket.name(), bucket.provider, bucket.url())
    sinks = FileSinkFactory(config.output_dir, append=config.append, outfile=config.outfile, indexed=False)
    client = _client_for(config)
    try:
        summary = run_indexing(
            [bucket],
            concurrency=1,
            sink_factory=sinks,
            fmt=config.output_format,
            client=client,
            start_tokens={bucket.name(): config.start_token} if config.start_token else None,
            report_interval=config.report_interval,
            handle_signals=True,
        )
    finally:
        client.close()
    _report(summary)

    outcome = summary.results[0].outcome if summary.results else JobOutcome.SKIPPED
    if outcome == JobOutcome.COMPLETED:
        return 0
    if outcome == JobOutcome.INTERRUPTED:
        return 130
    return 1


def run_batch(config: IndexerConfig) -> int:
    """Index every URL listed in the input file; bad URLs and failed sweeps are skipped."""
    logger.info("Loading input URLs from file %s", config.input_path)
    try:
        urls = _load_urls(config.input_path or "")
    except (OSError, ValueError) as exc:
        logger.error("Failed to read input file: %s", exc)
        return 1
    buckets, failures = resolve_all(urls)
    if not buckets:
        logger.error("No usable bucket URLs in %s", config.input_path)
        return 1

    sinks = FileSinkFactory(config.output_dir, append=config.append, indexed=True)
    client = _client_for(config)
    try:
        summary = run_indexing(
            buckets,
            concurrency=config.concurrency,
            sink_factory=sinks,
            fmt=config.output_format,
            client=client,
            report_interval=config.report_interval,
            handle_signals=True,
        )
    finally:
        client.close()
    _report(summary)
    if failures:
        print(f"unparsable URLs skipped: {len(failures)}")
    return 130 if summary.count(JobOutcome.INTERRUPTED) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bucketindex",
        description="Index the keys of public S3, GCS, Azure and Firebase storage buckets.",
    )
    parser.add_argument("-u", "--url", default="", help="The URL of a bucket to index")
    parser.add_argument("-i", "--input", default="", help="A file listing bucket URLs to index, one per line")
    parser.add_argument("-s", "--startkey", default="", help="Pagination key to resume from (ignored with --input)")
    parser.add_argument("-o", "--outfile", default="", help="Output file (default <bucket-name>.txt; ignored with --input)")
    parser.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR, help="Directory for generated output files")
    parser.add_argument(
        "-f",
        "--format",
        default=DEFAULT_OUTPUT_FORMAT.value,
        choices=["url", "key", "keys", "csv"],
        help="url: resource URLs, key: object keys, csv: key,url lines",
    )
    parser.add_argument("-a", "--append", action="store_true", help="Append to existing output files")
    parser.add_argument("-c", "--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Buckets indexed simultaneously")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds (0 disables)")
    parser.add_argument("--retries", type=int, default=DEFAULT_RETRIES, help="Retries per failed page request")
    parser.add_argument("--impersonate", default="", help="Browser profile for curl_cffi, e.g. chrome120")
    parser.add_argument("--report-interval", type=float, default=DEFAULT_REPORT_INTERVAL, help="Progress report period in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Detailed logging output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = IndexerConfig.from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    _configure_logging(config.verbose)
    logger.info("Starting bucketindex %s", VERSION)

    if config.batch:
        return run_batch(config)
    if config.url:
        return run_single(config)

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
