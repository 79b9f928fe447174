from __future__ import annotations

import logging
from enum import Enum
from typing import Iterator, Optional, Protocol

from .base import Bucket
from .errors import BucketIndexError, FetchError, PageParseError
from .models import PageResult

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    def get(self, url: str) -> bytes:
        ...


class SweepState(str, Enum):
    FIRST_FETCH = "first-fetch"
    CONTINUING = "continuing"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


def paginate(bucket: Bucket, token: str, client: PageFetcher) -> PageResult:
    """Fetch and decode the single page of ``bucket`` that follows ``token``."""
    body = client.get(bucket.page_url(token))
    return bucket.parse_page(body)


class Paginator:
    """Walks the pages of one bucket, one request at a time.

    ``token`` always holds the continuation token of the next page to
    request. After a failure it still holds the token of the failed
    request, which is the resumption hint for that sweep. Each token
    depends on the previous page, so pages are never fetched ahead.
    """

    def __init__(self, bucket: Bucket, client: PageFetcher, start_token: str = "") -> None:
        self.bucket = bucket
        self.token = start_token
        self.state = SweepState.FIRST_FETCH
        self.pages_fetched = 0
        self.error: Optional[BucketIndexError] = None
        self._client = client

    @property
    def done(self) -> bool:
        return self.state in (SweepState.EXHAUSTED, SweepState.FAILED)

    def step(self) -> PageResult:
        """Fetch the next page and move the state machine forward.

        FetchError and PageParseError move the paginator to FAILED and
        propagate to the caller.
        """
        if self.done:
            raise RuntimeError(f"Sweep of {self.bucket.name()} already {self.state.value}")

        self.pages_fetched += 1
        try:
            page = paginate(self.bucket, self.token, self._client)
            if not page.exhausted and page.next_token == self.token:
                raise PageParseError(f"continuation token {page.next_token!r} did not advance")
        except (FetchError, PageParseError) as exc:
            self.state = SweepState.FAILED
            self.error = exc
            logger.debug("Sweep of %s failed at token %r: %s", self.bucket.name(), self.token, exc)
            raise

        if page.exhausted:
            self.state = SweepState.EXHAUSTED
        else:
            self.state = SweepState.CONTINUING
            self.token = page.next_token
        return page

    def __iter__(self) -> Iterator[PageResult]:
        while not self.done:
            yield self.step()
