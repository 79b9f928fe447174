from __future__ import annotations

from typing import Optional


class BucketIndexError(Exception):
    """Base class for every error raised by bucketindex."""


class UrlParseError(BucketIndexError):
    """The input could not be parsed as a URL."""


class MissingHostError(BucketIndexError):
    """The URL parsed but has no host (usually a missing scheme)."""


class UnrecognizedBucketError(BucketIndexError):
    """No bucket variant matched the URL.

    The generic S3 fallback accepts any URL with a host, so the resolver
    never raises this in practice.
    """


class FetchError(BucketIndexError):
    """A page request failed, either in transport or with a non-2xx status."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PageParseError(BucketIndexError):
    """A listing page body could not be decoded. Never retried."""


class SinkError(BucketIndexError):
    """An output sink could not be opened, written, flushed or closed."""
