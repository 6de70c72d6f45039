"""
Outbound HTTP transport for the Bitbucket API.

Every adapter call goes through Transport.perform(), which wraps a shared
httpx.AsyncClient with tenacity retries and a consecutive-failure circuit
breaker, and keeps the request counters reported by stats().

Retry policy: network failures and 5xx responses are retried with
exponential backoff. 4xx responses are never retried and never trip the
breaker, since they describe the request rather than Bitbucket's health.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from bitbucket_scm.config import BreakerConfig, RetryConfig
from bitbucket_scm.errors import CircuitOpenError, HttpError, TransportError
from bitbucket_scm.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """A successful (2xx) Bitbucket response."""

    status_code: int
    body: Any


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, TransportError):
        return True
    if isinstance(exc, HttpError):
        return not 400 <= exc.status_code < 500
    return False


def _decode_body(resp: httpx.Response, response_type: str) -> Any:
    if response_type == "text":
        return resp.text
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


class Transport:
    """Retrying, circuit-broken call-through to the Bitbucket REST API."""

    def __init__(
        self,
        retry: RetryConfig | None = None,
        breaker: BreakerConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._retry = retry or RetryConfig()
        self._breaker = breaker or BreakerConfig()
        self._client = client or httpx.AsyncClient(timeout=self._breaker.timeout / 1000)
        self._owns_client = client is None
        self._clock = clock

        # Breaker state
        self._consecutive_failures = 0
        self._opened_at: float | None = None

        # Request counters
        self._total = 0
        self._timeouts = 0
        self._success = 0
        self._failure = 0
        self._concurrent = 0
        self._total_time_ms = 0.0

    @property
    def is_closed(self) -> bool:
        return self._opened_at is None

    async def perform(
        self,
        method: str,
        url: str,
        *,
        token: str | None = None,
        json: Any = None,
        form: dict[str, str] | None = None,
        username: str | None = None,
        password: str | None = None,
        response_type: str = "json",
    ) -> TransportResponse:
        """Send one logical request, retrying transient failures.

        Raises HttpError for non-2xx responses, TransportError when no
        response was received, and CircuitOpenError while the breaker is open.
        """
        self._check_breaker()

        self._total += 1
        self._concurrent += 1
        started = self._clock()
        try:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(self._retry.retries + 1),
                wait=wait_exponential(
                    multiplier=self._retry.min_timeout / 1000,
                    exp_base=self._retry.factor,
                    max=self._retry.max_timeout / 1000,
                ),
                retry=retry_if_exception(_should_retry),
                reraise=True,
            )
            async for attempt in retrying:
                with attempt:
                    response = await self._send(
                        method,
                        url,
                        token=token,
                        json=json,
                        form=form,
                        username=username,
                        password=password,
                        response_type=response_type,
                    )
        except Exception as e:
            self._failure += 1
            if _should_retry(e):
                self._record_breaker_failure()
            raise
        else:
            self._success += 1
            self._record_breaker_success()
            return response
        finally:
            self._concurrent -= 1
            self._total_time_ms += (self._clock() - started) * 1000

    async def _send(
        self,
        method: str,
        url: str,
        *,
        token: str | None,
        json: Any,
        form: dict[str, str] | None,
        username: str | None,
        password: str | None,
        response_type: str,
    ) -> TransportResponse:
        headers: dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        auth = (username, password or "") if username else None

        try:
            resp = await self._client.request(
                method,
                url,
                headers=headers,
                json=json,
                data=form,
                auth=auth,
            )
        except httpx.TimeoutException as e:
            self._timeouts += 1
            raise TransportError(f"{method} {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        body = _decode_body(resp, response_type)
        if not resp.is_success:
            logger.debug(
                "Bitbucket request failed",
                method=method,
                url=url,
                status_code=resp.status_code,
            )
            raise HttpError(
                resp.status_code,
                f"{method} {url} returned {resp.status_code}: {body}",
                body=body,
            )
        return TransportResponse(status_code=resp.status_code, body=body)

    # --- Circuit breaker ---

    def _check_breaker(self) -> None:
        if self._opened_at is None:
            return
        if (self._clock() - self._opened_at) * 1000 >= self._breaker.reset_timeout:
            # Half-open: let this call through; its outcome decides the state.
            return
        raise CircuitOpenError()

    def _record_breaker_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self._breaker.max_failures:
            if self._opened_at is None:
                logger.warning(
                    "Circuit breaker opened",
                    consecutive_failures=self._consecutive_failures,
                )
            self._opened_at = self._clock()

    def _record_breaker_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Circuit breaker closed")
        self._consecutive_failures = 0
        self._opened_at = None

    # --- Stats & lifecycle ---

    def stats(self) -> dict[str, Any]:
        """Request counters and breaker state."""
        average = self._total_time_ms / self._total if self._total else 0
        return {
            "requests": {
                "total": self._total,
                "timeouts": self._timeouts,
                "success": self._success,
                "failure": self._failure,
                "concurrent": self._concurrent,
                "averageTime": average,
            },
            "breaker": {"isClosed": self.is_closed},
        }

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
