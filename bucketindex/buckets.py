from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Union
from urllib.parse import quote

from .base import Bucket, quote_key, safe_name
from .errors import PageParseError
from .models import PageResult


def _local(tag: str) -> str:
    # "{namespace}Key" -> "Key"; S3 and GCS answer with different namespaces
    return tag.rsplit("}", 1)[-1]


def _children(elem: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in elem:
        if _local(child.tag) == name:
            yield child


def _child_text(elem: ET.Element, name: str) -> str:
    for child in _children(elem, name):
        return child.text or ""
    return ""


def _parse_xml(body: Union[bytes, str], root_tag: str) -> ET.Element:
    if isinstance(body, str):
        body = body.encode("utf-8")
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise PageParseError(f"invalid XML listing: {exc}") from exc
    if _local(root.tag) != root_tag:
        raise PageParseError(f"unexpected XML root <{_local(root.tag)}>, expected <{root_tag}>")
    return root


def _parse_json(body: Union[bytes, str]) -> Any:
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PageParseError(f"invalid JSON listing: {exc}") from exc


def _infer_from_last_key(keys: List[str], truncated: bool) -> str:
    """Continuation token for listings that only say ``IsTruncated``.

    The next page starts after the last key of this one.
    """
    if not truncated:
        return ""
    if not keys:
        raise PageParseError("truncated listing without keys; cannot infer continuation")
    if keys[-1] == "":
        raise PageParseError("truncated listing ends with an empty key; cannot infer continuation")
    return keys[-1]


def _list_bucket_result(body: Union[bytes, str]) -> tuple[ET.Element, List[str], bool]:
    root = _parse_xml(body, "ListBucketResult")
    keys = [_child_text(item, "Key") for item in _children(root, "Contents")]
    truncated = _child_text(root, "IsTruncated").strip().lower() == "true"
    return root, keys, truncated


class S3StyleBucket(Bucket):
    """Shared behaviour of buckets speaking the S3 ListObjects dialect."""

    def page_url(self, token: str) -> str:
        if token == "":
            return self.url()
        return f"{self.url()}?list-type=2&start-after={quote_key(token)}"

    def resource_url(self, key: str) -> str:
        root = self.url()
        if not root.endswith("/"):
            root += "/"
        return root + quote_key(key)

    def parse_page(self, body: Union[bytes, str]) -> PageResult:
        _, keys, truncated = _list_bucket_result(body)
        return PageResult(keys=tuple(keys), next_token=_infer_from_last_key(keys, truncated))


@dataclass(frozen=True)
class S3Bucket(S3StyleBucket):
    """Any S3 compatible endpoint, addressed by its bare URL."""

    base_url: str
    label: str

    provider = "s3"

    def name(self) -> str:
        return safe_name(self.label)

    def url(self) -> str:
        return self.base_url


@dataclass(frozen=True)
class AmazonBucket(S3StyleBucket):
    """An Amazon S3 bucket, optionally pinned to a region."""

    bucket: str
    region: Optional[str] = None

    provider = "amazon"

    def name(self) -> str:
        return safe_name(self.bucket)

    def url(self) -> str:
        host = f"s3.{self.region}.amazonaws.com" if self.region else "s3.amazonaws.com"
        # dotted names break virtual-hosted TLS certificates
        if "." in self.bucket:
            return f"https://{host}/{quote(self.bucket, safe='')}/"
        return f"https://{self.bucket}.{host}/"


@dataclass(frozen=True)
class SpacesBucket(S3StyleBucket):
    """A DigitalOcean Spaces bucket."""

    bucket: str
    region: str

    provider = "spaces"

    def name(self) -> str:
        return safe_name(self.bucket)

    def url(self) -> str:
        return f"https://{self.bucket}.{self.region}.digitaloceanspaces.com/"


@dataclass(frozen=True)
class GoogleBucket(Bucket):
    """A Google Cloud Storage bucket, listed through the XML API."""

    bucket: str

    provider = "google"

    def name(self) -> str:
        return safe_name(self.bucket)

    def url(self) -> str:
        if "." in self.bucket:
            return f"https://storage.googleapis.com/{quote(self.bucket, safe='')}/"
        return f"https://{self.bucket}.storage.googleapis.com/"

    def page_url(self, token: str) -> str:
        if token == "":
            return self.url()
        return f"{self.url()}?marker={quote_key(token)}"

    def resource_url(self, key: str) -> str:
        return self.url() + quote_key(key)

    def parse_page(self, body: Union[bytes, str]) -> PageResult:
        root, keys, truncated = _list_bucket_result(body)
        next_marker = _child_text(root, "NextMarker")
        if next_marker:
            return PageResult(keys=tuple(keys), next_token=next_marker)
        return PageResult(keys=tuple(keys), next_token=_infer_from_last_key(keys, truncated))


@dataclass(frozen=True)
class AzureBucket(Bucket):
    """A container in an Azure Blob Storage account."""

    account: str
    container: str

    provider = "azure"

    def name(self) -> str:
        return safe_name(f"{self.account}-{self.container}")

    def _container_root(self) -> str:
        return f"https://{self.account}.blob.core.windows.net/{quote(self.container, safe='')}"

    def url(self) -> str:
        return f"{self._container_root()}?restype=container&comp=list"

    def page_url(self, token: str) -> str:
        if token == "":
            return self.url()
        return f"{self.url()}&marker={quote_key(token)}"

    def resource_url(self, key: str) -> str:
        return f"{self._container_root()}/{quote_key(key)}"

    def parse_page(self, body: Union[bytes, str]) -> PageResult:
        root = _parse_xml(body, "EnumerationResults")
        keys: List[str] = []
        for blobs in _children(root, "Blobs"):
            keys.extend(_child_text(blob, "Name") for blob in _children(blobs, "Blob"))
        return PageResult(keys=tuple(keys), next_token=_child_text(root, "NextMarker"))


@dataclass(frozen=True)
class FirebaseBucket(Bucket):
    """A Firebase Storage bucket, listed through its JSON API."""

    bucket: str

    provider = "firebase"

    def name(self) -> str:
        return safe_name(self.bucket)

    def url(self) -> str:
        return f"https://firebasestorage.googleapis.com/v0/b/{self.bucket}/o"

    def page_url(self, token: str) -> str:
        if token == "":
            return self.url()
        return f"{self.url()}?pageToken={quote_key(token)}"

    def resource_url(self, key: str) -> str:
        return f"{self.url()}/{quote_key(key)}?alt=media"

    def parse_page(self, body: Union[bytes, str]) -> PageResult:
        payload = _parse_json(body)
        if not isinstance(payload, dict):
            raise PageParseError("JSON listing is not an object")

        items = payload.get("items") or []
        if not isinstance(items, list):
            raise PageParseError("JSON listing 'items' is not a list")

        keys: List[str] = []
        for item in items:
            name = item.get("name") if isinstance(item, dict) else None
            if not isinstance(name, str):
                raise PageParseError(f"JSON listing item without a name: {item!r}")
            keys.append(name)

        token = payload.get("nextPageToken") or ""
        if not isinstance(token, str):
            raise PageParseError("JSON listing 'nextPageToken' is not a string")
        return PageResult(keys=tuple(keys), next_token=token)
