from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import ClassVar, Union
from urllib.parse import quote

from .models import PageResult

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(raw: str) -> str:
    """Reduce a bucket identity to characters that are safe in a file name."""
    cleaned = _UNSAFE_NAME_CHARS.sub("_", raw).lstrip(".")
    return cleaned or "bucket"


def quote_key(key: str) -> str:
    """Percent-encode an object key as a single URL path segment.

    Lone surrogates (legal in JSON listings) are encoded as their
    surrogate code units instead of failing.
    """
    return quote(key, safe="", errors="surrogatepass")


class Bucket(ABC):
    """A deconstructed storage bucket.

    Concrete variants are frozen dataclasses, one per provider. Each knows
    how to address its listing pages and objects and how to decode a
    listing page. The ``provider`` tag identifies the variant.

    Contract shared by all variants:
    - ``page_url("")`` returns ``url()``.
    - ``parse_page`` returns keys in provider order and an empty
      ``next_token`` once the bucket is exhausted.
    """

    provider: ClassVar[str] = ""

    @abstractmethod
    def name(self) -> str:
        """Stable identity used to name the bucket's output."""

    @abstractmethod
    def url(self) -> str:
        """Canonical listing URL (first page)."""

    @abstractmethod
    def page_url(self, token: str) -> str:
        """Listing URL for the page following ``token``."""

    @abstractmethod
    def resource_url(self, key: str) -> str:
        """Direct download URL of the object stored under ``key``."""

    @abstractmethod
    def parse_page(self, body: Union[bytes, str]) -> PageResult:
        """Decode one listing page; raises PageParseError on bad input."""
