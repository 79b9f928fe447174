"""Tests for the BackoffStrategy class."""

import unittest

from bucketindex.backoff import BackoffStrategy
from bucketindex.errors import FetchError, PageParseError


class TestBackoffStrategy(unittest.TestCase):
    """Verify exponential backoff produces correct sleep durations."""

    def test_first_attempt_returns_base(self):
        """First retry should sleep approximately the base duration."""
        sleep = BackoffStrategy(base_seconds=1.0, max_seconds=30.0).get_sleep(attempt=1)
        self.assertGreaterEqual(sleep, 1.0)
        self.assertLessEqual(sleep, 1.1)

    def test_exponential_growth(self):
        """Without jitter the delay doubles per attempt."""
        backoff = BackoffStrategy(base_seconds=0.5, max_seconds=100.0, jitter_ratio=0.0)
        self.assertEqual([backoff.get_sleep(n) for n in (1, 2, 3)], [0.5, 1.0, 2.0])

    def test_respects_max_seconds(self):
        """Sleep duration never exceeds max_seconds plus jitter."""
        sleep = BackoffStrategy(base_seconds=1.0, max_seconds=5.0).get_sleep(attempt=20)
        self.assertLessEqual(sleep, 5.5)


class TestBackoffCall(unittest.TestCase):
    """Verify bounded retries."""

    def setUp(self):
        self.sleeps = []
        self.backoff = BackoffStrategy(base_seconds=0.25, jitter_ratio=0.0)

    def test_retries_until_success(self):
        """Retryable errors are retried with growing delays."""
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise FetchError("https://h/b", "HTTP 503", status_code=503)
            return b"ok"

        result = self.backoff.call(flaky, retries=3, retry_on=(FetchError,), sleep=self.sleeps.append)
        self.assertEqual(result, b"ok")
        self.assertEqual(self.sleeps, [0.25, 0.5])

    def test_gives_up_after_retries(self):
        """The last error propagates once retries are used up."""

        def down():
            raise FetchError("https://h/b", "connection refused")

        with self.assertRaises(FetchError):
            self.backoff.call(down, retries=2, retry_on=(FetchError,), sleep=self.sleeps.append)
        self.assertEqual(len(self.sleeps), 2)

    def test_other_errors_are_not_retried(self):
        """Errors outside retry_on propagate immediately."""
        calls = []

        def bad_page():
            calls.append(1)
            raise PageParseError("bad")

        with self.assertRaises(PageParseError):
            self.backoff.call(bad_page, retries=5, retry_on=(FetchError,), sleep=self.sleeps.append)
        self.assertEqual(calls, [1])
        self.assertEqual(self.sleeps, [])

    def test_zero_retries_calls_once(self):
        """With no retries the function runs exactly once."""
        calls = []

        def down():
            calls.append(1)
            raise FetchError("https://h/b", "timeout")

        with self.assertRaises(FetchError):
            self.backoff.call(down, retries=0, retry_on=(FetchError,), sleep=self.sleeps.append)
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
