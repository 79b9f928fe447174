"""Tests for the command-line entry point."""

import contextlib
import io
import json
import os
import tempfile
import threading
import unittest
from unittest.mock import patch

import main
from bucketindex.errors import FetchError
from bucketindex.resolver import resolve
from bucketindex.shutdown import ShutdownListener

FIREBASE_URL = "https://firebasestorage.googleapis.com/v0/b/app.appspot.com/o"


class FakeClient:
    """Canned HTTP client standing in for HttpClient."""

    def __init__(self, responses):
        self.responses = responses
        self.on_get = None
        self.closed = False

    def get(self, url):
        if self.on_get is not None:
            self.on_get(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def _pages(bucket, pages):
    responses = {}
    for token, keys, next_token in pages:
        payload = {"items": [{"name": k} for k in keys], "nextPageToken": next_token}
        responses[bucket.page_url(token)] = json.dumps(payload).encode("utf-8")
    return responses


class MainTestCase(unittest.TestCase):
    """Runs main() against a fake client and a temporary output directory."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.bucket = resolve(FIREBASE_URL)
        self.client = FakeClient(
            _pages(self.bucket, [("", ["a/1", "a/2"], "A"), ("A", ["a/3"], "B"), ("B", ["a/4"], "")])
        )

    def tearDown(self):
        self._tmp.cleanup()

    def run_main(self, *argv):
        out = io.StringIO()
        with patch("main.HttpClient", return_value=self.client) as client_cls:
            with contextlib.redirect_stdout(out):
                code = main.main(["--output-dir", self.tmp, "--report-interval", "60", *argv])
        self.client_cls = client_cls
        return code, out.getvalue()

    def read(self, name):
        with open(os.path.join(self.tmp, name), encoding="utf-8") as f:
            return f.read()


class TestSingleMode(MainTestCase):
    """Verify single-URL runs treat any error as fatal."""

    def test_unparsable_url_returns_1(self):
        """A URL without a host stops the run before any request."""
        code, _ = self.run_main("-u", "bucket-without-scheme")
        self.assertEqual(code, 1)
        self.client_cls.assert_not_called()

    def test_completed_sweep_returns_0(self):
        """A full sweep writes <name>.txt and closes the client."""
        code, out = self.run_main("-u", FIREBASE_URL, "-f", "key")
        self.assertEqual(code, 0)
        self.assertEqual(self.read("app.appspot.com.txt"), "a/1\na/2\na/3\na/4\n")
        self.assertIn("DONE: keys=4", out)
        self.assertTrue(self.client.closed)

    def test_start_key_resumes(self):
        """--startkey skips the pages before it."""
        code, _ = self.run_main("-u", FIREBASE_URL, "-f", "key", "-s", "B")
        self.assertEqual(code, 0)
        self.assertEqual(self.read("app.appspot.com.txt"), "a/4\n")

    def test_fetch_failure_returns_1(self):
        """A failed page ends the run with 1 and prints the token to resume from."""
        url = self.bucket.page_url("A")
        self.client.responses[url] = FetchError(url, "HTTP 503", status_code=503)
        code, out = self.run_main("-u", FIREBASE_URL, "-f", "key")
        self.assertEqual(code, 1)
        self.assertIn("failed: 1-app.appspot.com last pagination key: 'A'", out)
        self.assertTrue(self.client.closed)

    def test_interrupt_prints_token_and_returns_130(self):
        """A shutdown during the third page reports that page's token."""
        stopped = threading.Event()
        listeners = []

        class Listener(ShutdownListener):
            def __init__(self, on_shutdown, *args, **kwargs):
                def stop_and_mark():
                    on_shutdown()
                    stopped.set()

                super().__init__(stop_and_mark, *args, **kwargs)
                listeners.append(self)

        def on_get(url):
            if url == self.bucket.page_url("B"):
                listeners[0].trigger()
                self.assertTrue(stopped.wait(5))

        self.client.on_get = on_get
        with patch("bucketindex.pipeline.ShutdownListener", Listener):
            code, out = self.run_main("-u", FIREBASE_URL, "-f", "key")

        self.assertEqual(code, 130)
        self.assertIn("interrupted: 1-app.appspot.com last pagination key: 'B'", out)
        self.assertEqual(self.read("app.appspot.com.txt"), "a/1\na/2\na/3\n")


class TestBatchMode(MainTestCase):
    """Verify batch runs log and skip bad input."""

    def write_input(self, *lines):
        path = os.path.join(self.tmp, "urls.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        return path

    def test_bad_line_is_skipped(self):
        """An unparsable line is skipped and the good bucket is indexed."""
        path = self.write_input("not a url", FIREBASE_URL)
        code, out = self.run_main("-i", path, "-f", "key")
        self.assertEqual(code, 0)
        self.assertEqual(self.read("1-app.appspot.com.txt"), "a/1\na/2\na/3\na/4\n")
        self.assertIn("unparsable URLs skipped: 1", out)
        self.assertTrue(self.client.closed)

    def test_failed_job_does_not_fail_the_run(self):
        """A bucket that fails mid-sweep is reported but the run still returns 0."""
        url = self.bucket.page_url("B")
        self.client.responses[url] = FetchError(url, "HTTP 500", status_code=500)
        code, out = self.run_main("-i", self.write_input(FIREBASE_URL), "-f", "key")
        self.assertEqual(code, 0)
        self.assertIn("failed: 1-app.appspot.com last pagination key: 'B'", out)

    def test_missing_input_file_returns_1(self):
        """An input file that cannot be read ends the run with 1."""
        code, _ = self.run_main("-i", os.path.join(self.tmp, "missing.txt"))
        self.assertEqual(code, 1)
        self.client_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
