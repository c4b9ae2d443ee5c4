from __future__ import annotations

import threading
import time
from typing import Any, Callable

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

DEFAULT_UA = "gitlab-sync/0.1 python-httpx"

logger = structlog.get_logger()


class RateLimiter:
    """Token bucket limiter shared by every thread using one client."""

    def __init__(self, rate: float = 1.0, capacity: int = 2):
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.updated_at = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            now = time.monotonic()
            elapsed = now - self.updated_at
            self.updated_at = now
            self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
            if self.tokens < 1:
                sleep_for = (1 - self.tokens) / self.rate
                time.sleep(sleep_for)
                self.tokens = 0
                self.updated_at = time.monotonic()
            else:
                self.tokens -= 1


class HttpError(Exception):
    """The remote service could not be reached."""


class RemoteServiceError(Exception):
    """A remote service answered with a non-success status."""

    def __init__(self, operation: str, status_code: int, body: str) -> None:
        super().__init__(f"Failed to {operation} because {status_code}: {body}")
        self.operation = operation
        self.status_code = status_code
        self.body = body


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"retryable status {response.status_code}")
        self.response = response


def raise_for_status(response: httpx.Response, operation: str) -> httpx.Response:
    if not response.is_success:
        raise RemoteServiceError(operation, response.status_code, response.text)
    return response


class HttpClient:
    """Authenticated JSON client bound to one service base URL.

    Requests that fail with 429/5xx or a transport error are retried up to
    ``max_attempts`` times. The default of one attempt disables retries, so a
    failed call surfaces to the caller unchanged.
    """

    def __init__(
        self,
        base_url: str,
        auth: httpx.Auth | tuple[str, str] | None = None,
        token: str | None = None,
        user_agent: str = DEFAULT_UA,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 30.0,
        max_attempts: int = 1,
        session_factory: Callable[..., httpx.Client] = httpx.Client,
    ) -> None:
        headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.max_attempts = max(1, max_attempts)
        self.session = session_factory(
            base_url=self.base_url, timeout=timeout, headers=headers, auth=auth
        )

    def _should_retry_status(self, status: int) -> bool:
        return status in {429, 500, 502, 503, 504}

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()
        try:
            resp = self.session.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise HttpError(f"{method} {self.base_url}{path}: {exc}") from exc
        if self.max_attempts > 1 and self._should_retry_status(resp.status_code):
            raise _RetryableStatus(resp)
        return resp

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        retrying = Retrying(
            retry=retry_if_exception_type((HttpError, _RetryableStatus)),
            wait=wait_exponential_jitter(initial=1, max=8),
            stop=stop_after_attempt(self.max_attempts),
            before_sleep=lambda state: logger.warning(
                "http.retry",
                method=method,
                path=path,
                attempt=state.attempt_number,
                error=str(state.outcome.exception()),
            ),
            reraise=True,
        )
        try:
            return retrying(self._send, method, path, **kwargs)
        except _RetryableStatus as exc:
            return exc.response

    def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any) -> httpx.Response:
        return self.request("POST", path, json=json)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
