"""Fingerprint a bare URL into one of the known bucket variants.

Patterns are tried from the most specific provider to the generic S3
fallback; the first match wins. Only the URL structure is inspected, no
provider API is queried.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from .base import Bucket
from .buckets import AmazonBucket, AzureBucket, FirebaseBucket, GoogleBucket, S3Bucket, SpacesBucket
from .errors import BucketIndexError, MissingHostError, UrlParseError

logger = logging.getLogger(__name__)

FIREBASE_HOST = "firebasestorage.googleapis.com"
GCS_HOST = "storage.googleapis.com"

_FIREBASE_VERSION = re.compile(r"^v\d$", re.IGNORECASE)
_AZURE_HOST = re.compile(r"^(?:.+\.)?([a-z0-9-]{3,63})\.blob\.core\.windows\.net$")
_GCS_SUBDOMAIN_HOST = re.compile(r"^(.+)\.storage\.googleapis\.com$")
# bucket.s3.amazonaws.com, bucket.s3.eu-west-1.amazonaws.com, bucket.s3-eu-west-1.amazonaws.com
_AMAZON_VHOST = re.compile(r"^(.+)\.s3(?:[.-]([a-z0-9-]+))?\.amazonaws\.com$")
# s3.amazonaws.com/bucket, s3.eu-west-1.amazonaws.com/bucket, s3-eu-west-1.amazonaws.com/bucket
_AMAZON_PATH_HOST = re.compile(r"^s3(?:[.-]([a-z0-9-]+))?\.amazonaws\.com$")
_SPACES_VHOST = re.compile(r"^(.+)\.([a-z0-9]+)\.digitaloceanspaces\.com$")
_SPACES_PATH_HOST = re.compile(r"^([a-z0-9]+)\.digitaloceanspaces\.com$")


def _clean_fragments(raw: str, sep: str) -> List[str]:
    fragments = (part.strip() for part in raw.split(sep))
    return [part for part in fragments if part]


def _amazon_region(raw: Optional[str]) -> Optional[str]:
    if raw and raw.startswith("website-"):
        raw = raw[len("website-"):]
    # "external-1" is the legacy alias of the global endpoint
    if not raw or raw == "external-1":
        return None
    return raw


def resolve(url: str) -> Bucket:
    """Classify ``url`` into a bucket variant.

    Raises UrlParseError when the input cannot be parsed and
    MissingHostError when it has no host.
    """
    if not isinstance(url, str):
        raise UrlParseError(f"URL must be a string, got {type(url).__name__}")

    raw = url.strip()
    try:
        parts = urlsplit(raw)
        host = (parts.hostname or "").strip()
        parts.port  # raises ValueError for a malformed port
    except ValueError as exc:
        raise UrlParseError(f"Invalid URL {url!r}: {exc}") from exc

    if not host:
        raise MissingHostError(f"Invalid URL {url!r} (missing scheme?)")

    path_fragments = _clean_fragments(parts.path, "/")
    host = ".".join(_clean_fragments(host, ".")).lower()

    if host == FIREBASE_HOST and len(path_fragments) >= 3:
        if _FIREBASE_VERSION.match(path_fragments[0]) and path_fragments[1] == "b":
            return FirebaseBucket(bucket=path_fragments[2])

    match = _AZURE_HOST.match(host)
    if match and path_fragments:
        return AzureBucket(account=match.group(1), container=path_fragments[0])

    match = _GCS_SUBDOMAIN_HOST.match(host)
    if match:
        return GoogleBucket(bucket=match.group(1))

    if host == GCS_HOST and path_fragments:
        return GoogleBucket(bucket=path_fragments[0])

    match = _AMAZON_PATH_HOST.match(host)
    if match:
        if path_fragments:
            return AmazonBucket(bucket=path_fragments[0], region=_amazon_region(match.group(1)))
    else:
        match = _AMAZON_VHOST.match(host)
        if match:
            return AmazonBucket(bucket=match.group(1), region=_amazon_region(match.group(2)))

    match = _SPACES_PATH_HOST.match(host)
    if match:
        if path_fragments:
            return SpacesBucket(bucket=path_fragments[0], region=match.group(1))
    else:
        match = _SPACES_VHOST.match(host)
        if match:
            return SpacesBucket(bucket=match.group(1), region=match.group(2))

    base_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    label = "-".join([parts.netloc.rsplit("@", 1)[-1]] + path_fragments)
    return S3Bucket(base_url=base_url, label=label)


def resolve_all(urls: Iterable[str]) -> Tuple[List[Bucket], List[Tuple[str, BucketIndexError]]]:
    """Resolve a batch of URLs, collecting failures instead of raising.

    Blank lines are ignored. Returns the resolved buckets in input order
    and the ``(url, error)`` pairs that could not be resolved.
    """
    buckets: List[Bucket] = []
    failures: List[Tuple[str, BucketIndexError]] = []
    for raw in urls:
        url = raw.strip()
        if not url:
            continue
        try:
            buckets.append(resolve(url))
        except BucketIndexError as exc:
            logger.warning("Skipping %s: %s", url, exc)
            failures.append((url, exc))
    return buckets, failures
