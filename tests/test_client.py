"""Tests for the HTTP client, with sessions mocked out."""

import threading
import unittest
from unittest.mock import MagicMock, patch

import requests

from bucketindex.backoff import BackoffStrategy
from bucketindex.client import USER_AGENT, HttpClient
from bucketindex.errors import FetchError


def _response(status_code=200, content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    return response


@patch("bucketindex.client.requests.Session")
class TestHttpClient(unittest.TestCase):
    """Verify status handling, retries and session reuse."""

    def test_returns_body_on_success(self, session_cls):
        """A 200 response returns its body and sends the default headers."""
        session = session_cls.return_value
        session.get.return_value = _response(200, b"<ListBucketResult/>")
        client = HttpClient(timeout=5)
        self.assertEqual(client.get("https://b.s3.amazonaws.com/"), b"<ListBucketResult/>")
        session.get.assert_called_once_with("https://b.s3.amazonaws.com/", timeout=5)
        session.headers.update.assert_called_once_with({"User-Agent": USER_AGENT})

    def test_non_2xx_is_fetch_error(self, session_cls):
        """Any non-2xx status raises FetchError carrying the status code."""
        session_cls.return_value.get.return_value = _response(403, b"AccessDenied")
        with self.assertRaises(FetchError) as ctx:
            HttpClient().get("https://b.s3.amazonaws.com/")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.url, "https://b.s3.amazonaws.com/")

    def test_transport_error_is_fetch_error(self, session_cls):
        """A transport exception is wrapped in FetchError without a status."""
        session_cls.return_value.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(FetchError) as ctx:
            HttpClient().get("https://b.s3.amazonaws.com/")
        self.assertIsNone(ctx.exception.status_code)
        self.assertIsInstance(ctx.exception.__cause__, requests.ConnectionError)

    def test_retries_before_giving_up(self, session_cls):
        """Failed requests are retried until one succeeds."""
        session = session_cls.return_value
        session.get.side_effect = [_response(503), _response(500), _response(200, b"ok")]
        client = HttpClient(retries=2, backoff=BackoffStrategy(base_seconds=0.0, jitter_ratio=0.0))
        self.assertEqual(client.get("https://h/"), b"ok")
        self.assertEqual(session.get.call_count, 3)

    def test_no_retries_by_default(self, session_cls):
        """Without retries a failure is raised after one request."""
        session = session_cls.return_value
        session.get.return_value = _response(500)
        with self.assertRaises(FetchError):
            HttpClient().get("https://h/")
        self.assertEqual(session.get.call_count, 1)

    def test_one_session_per_thread(self, session_cls):
        """Each thread reuses its own session."""
        session_cls.side_effect = lambda: MagicMock(get=MagicMock(return_value=_response(200, b"")))
        client = HttpClient()
        client.get("https://h/1")
        client.get("https://h/2")
        worker = threading.Thread(target=client.get, args=("https://h/3",))
        worker.start()
        worker.join()
        self.assertEqual(session_cls.call_count, 2)
        client.close()


class TestImpersonation(unittest.TestCase):
    """Verify browser impersonation goes through curl_cffi."""

    @patch("bucketindex.client.requests.Session")
    @patch("bucketindex.client.curl_requests.Session")
    def test_uses_curl_session(self, curl_cls, requests_cls):
        """An impersonation profile switches to curl_cffi sessions."""
        curl_cls.return_value.get.return_value = _response(200, b"{}")
        client = HttpClient(timeout=10, impersonate="chrome120")
        self.assertEqual(client.get("https://firebasestorage.googleapis.com/v0/b/x/o"), b"{}")
        curl_cls.return_value.get.assert_called_once_with(
            "https://firebasestorage.googleapis.com/v0/b/x/o", timeout=10, impersonate="chrome120"
        )
        requests_cls.assert_not_called()
        client.close()
        curl_cls.return_value.close.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
