"""
HTTP client — GitHub API calls and artifact downloads.

Built on ``urllib.request``.  Every request carries a per-attempt
timeout and goes through ``call_with_retry``; only transient failures
(connection errors, timeouts, bodies cut short of their
``Content-Length``, 408/429/5xx) are retried.

Downloads of several assets run concurrently in a thread pool.  The
first failure sets a shared cancel event so in-flight downloads stop
at their next chunk, and pending ones never start.
"""

from __future__ import annotations

import http.client
import json
import logging
import socket
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from picolayer import __version__
from picolayer.core.errors import FetchFailed, TransientFetchFailed
from picolayer.core.reliability.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

USER_AGENT = f"picolayer/{__version__}"
GITHUB_JSON = "application/vnd.github+json"

_CHUNK_SIZE = 64 * 1024
_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


@dataclass
class HttpResponse:
    """Status, lower-cased headers and body of one response."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        return json.loads(self.body)


class HttpClient:
    """Blocking HTTP client with retry and concurrent downloads.

    Args:
        timeout: Per-attempt timeout in seconds.
        retry: Retry bounds for transient failures.
        github_token: Sent as a bearer token to ``token_hosts``.
        token_hosts: Hosts that receive the GitHub token.
        workers: Thread pool size for ``download_all``.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        retry: RetryPolicy | None = None,
        github_token: str | None = None,
        token_hosts: tuple[str, ...] = ("api.github.com",),
        workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self._token = github_token
        self._token_hosts = token_hosts
        self.workers = workers
        self._sleep = sleep

    # ── Single requests ─────────────────────────────────────────

    def request(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        accept_status: tuple[int, ...] = (),
        cancel: threading.Event | None = None,
    ) -> HttpResponse:
        """GET ``url`` with retry.

        Statuses listed in ``accept_status`` are returned instead of
        raised (used for auth challenges).
        """
        return call_with_retry(
            lambda: self._attempt(url, headers or {}, accept_status, cancel),
            policy=self.retry,
            name=f"GET {_display(url)}",
            sleep=self._sleep,
        )

    def get_json(self, url: str, *, headers: dict[str, str] | None = None) -> Any:
        merged = {"Accept": GITHUB_JSON, **(headers or {})}
        response = self.request(url, headers=merged)
        try:
            return response.json()
        except ValueError as e:
            raise FetchFailed(f"Invalid JSON from {_display(url)}: {e}", url=url) from e

    def get_text(self, url: str, *, headers: dict[str, str] | None = None) -> str:
        return self.request(url, headers=headers).body.decode("utf-8", errors="replace")

    def get_bytes(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> bytes:
        merged = {"Accept": "application/octet-stream", **(headers or {})}
        return self.request(url, headers=merged, cancel=cancel).body

    # ── Concurrent downloads ────────────────────────────────────

    def download_all(
        self,
        urls: list[str],
        *,
        cancel: threading.Event | None = None,
    ) -> list[bytes]:
        """Download every URL concurrently; results keep input order.

        Raises the first failure after cancelling the rest.
        """
        if not urls:
            return []
        cancel = cancel or threading.Event()
        workers = max(1, min(self.workers, len(urls)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="download") as pool:
            futures = [pool.submit(self.get_bytes, url, cancel=cancel) for url in urls]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            failed = next(
                (f for f in futures if f in done and f.exception() is not None),
                None,
            )
            if failed is not None:
                cancel.set()
                for future in pending:
                    future.cancel()
                wait(pending)
                raise failed.exception()

        return [f.result() for f in futures]

    # ── Internals ───────────────────────────────────────────────

    def _headers_for(self, url: str, extra: dict[str, str]) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        host = urllib.parse.urlparse(url).hostname or ""
        if self._token and host in self._token_hosts:
            headers["Authorization"] = f"Bearer {self._token}"
        headers.update(extra)
        return headers

    def _attempt(
        self,
        url: str,
        headers: dict[str, str],
        accept_status: tuple[int, ...],
        cancel: threading.Event | None,
    ) -> HttpResponse:
        if cancel is not None and cancel.is_set():
            raise FetchFailed(f"Download cancelled: {_display(url)}", url=url)

        req = urllib.request.Request(url, headers=self._headers_for(url, headers))
        logger.debug("GET %s", _display(url))
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = _read_body(resp, url, cancel)
                return HttpResponse(
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    body=body,
                )
        except urllib.error.HTTPError as e:
            if e.code in accept_status:
                return HttpResponse(
                    status=e.code,
                    headers={k.lower(): v for k, v in e.headers.items()},
                )
            raise _status_error(url, e) from e
        except urllib.error.URLError as e:
            raise TransientFetchFailed(
                f"Cannot reach {_display(url)}: {e.reason}", url=url
            ) from e
        except http.client.HTTPException as e:
            raise TransientFetchFailed(
                f"Connection broken while reading {_display(url)}: {e!r}", url=url
            ) from e
        except (TimeoutError, socket.timeout) as e:
            raise TransientFetchFailed(
                f"Timed out after {self.timeout}s: {_display(url)}", url=url
            ) from e
        except ConnectionError as e:
            raise TransientFetchFailed(
                f"Connection error for {_display(url)}: {e}", url=url
            ) from e


def _read_body(resp: Any, url: str, cancel: threading.Event | None) -> bytes:
    chunks: list[bytes] = []
    while True:
        if cancel is not None and cancel.is_set():
            raise FetchFailed(f"Download cancelled: {_display(url)}", url=url)
        chunk = resp.read(_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
    body = b"".join(chunks)

    declared = resp.headers.get("Content-Length")
    if declared and declared.isdigit() and len(body) < int(declared):
        raise TransientFetchFailed(
            f"Truncated response from {_display(url)}: got {len(body)} of {declared} bytes",
            url=url,
        )
    return body


def _status_error(url: str, e: urllib.error.HTTPError) -> FetchFailed:
    where = _display(url)
    if e.code in _RETRYABLE_STATUS:
        return TransientFetchFailed(f"HTTP {e.code} from {where}", url=url, status=e.code)
    if e.code == 403 and e.headers.get("X-RateLimit-Remaining") == "0":
        return FetchFailed(
            f"GitHub API rate limit exceeded ({where}); set GITHUB_TOKEN",
            url=url,
            status=e.code,
        )
    if e.code == 404:
        return FetchFailed(f"Not found: {where}", url=url, status=404)
    return FetchFailed(f"HTTP {e.code} from {where}", url=url, status=e.code)


def _display(url: str) -> str:
    """URL without query string (may carry signed tokens)."""
    parts = urllib.parse.urlsplit(url)
    return urllib.parse.urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
