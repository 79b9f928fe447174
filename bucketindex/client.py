from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

import requests
from curl_cffi import requests as curl_requests

from .backoff import BackoffStrategy
from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "bucketindex/0.3"


class HttpClient:
    """Blocking GET client shared by all indexing jobs.

    Each worker thread gets its own session. Any transport failure or
    non-2xx status becomes a FetchError; no status gets special handling.

    Sessions come from ``curl_cffi`` when ``impersonate`` names a browser
    profile (e.g. "chrome120"), otherwise from ``requests``.
    """

    def __init__(
        self,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        retries: int = 0,
        backoff: Optional[BackoffStrategy] = None,
        impersonate: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._timeout = timeout
        self._retries = max(0, retries)
        self._backoff = backoff or BackoffStrategy()
        self._impersonate = impersonate
        self._headers = {"User-Agent": USER_AGENT}
        if headers:
            self._headers.update(headers)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._sessions: List[Any] = []

    def get(self, url: str) -> bytes:
        """Fetch ``url`` and return the response body."""
        return self._backoff.call(lambda: self._get_once(url), self._retries, (FetchError,))

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _session(self) -> Any:
        session = getattr(self._local, "session", None)
        if session is None:
            session = curl_requests.Session() if self._impersonate else requests.Session()
            session.headers.update(self._headers)
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def _get_once(self, url: str) -> bytes:
        session = self._session()
        logger.debug("GET %s", url)
        try:
            if self._impersonate:
                response = session.get(url, timeout=self._timeout, impersonate=self._impersonate)
            else:
                response = session.get(url, timeout=self._timeout)
        except Exception as exc:  # noqa: BLE001
            # requests and curl_cffi raise unrelated exception hierarchies
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc

        status_code = getattr(response, "status_code", None)
        if status_code is None or not 200 <= int(status_code) < 300:
            raise FetchError(url, f"HTTP {status_code} for {url}", status_code=status_code)
        return response.content
