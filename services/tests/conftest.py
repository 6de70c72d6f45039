"""
Top-level test configuration for the Bitbucket SCM adapter.

Adapters under test talk to an httpx.MockTransport; each test supplies a
handler, sync or async, that plays the Bitbucket API.
"""

import os
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from bitbucket_scm.scm import BitbucketScm
from bitbucket_scm.services.token_manager import OAuthTokenState

# Ensure test-friendly defaults
os.environ.setdefault("BITBUCKET_SCM_JSON_LOGS", "false")
os.environ.setdefault("BITBUCKET_SCM_LOG_LEVEL", "DEBUG")

TEST_CONFIG: dict[str, Any] = {
    "oauthClientId": "myclientid",
    "oauthClientSecret": "myclientsecret",
    "fusebox": {"retry": {"retries": 0, "minTimeout": 0, "maxTimeout": 0}},
}

Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class RecordingHandler:
    """MockTransport handler that records requests and delegates responses."""

    def __init__(self, respond: Handler) -> None:
        self._respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response | Awaitable[httpx.Response]:
        self.requests.append(request)
        return self._respond(request)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest_asyncio.fixture
async def make_scm() -> AsyncGenerator[Callable[..., tuple[BitbucketScm, RecordingHandler]]]:
    """Factory for adapters backed by a mock Bitbucket.

    Returns the adapter and the handler recording its requests. The
    adapter starts with a valid system token so tests only see the
    requests of the operation under test.
    """
    clients: list[httpx.AsyncClient] = []

    def _make(respond: Handler, **overrides: Any) -> tuple[BitbucketScm, RecordingHandler]:
        handler = RecordingHandler(respond)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        scm = BitbucketScm({**TEST_CONFIG, **overrides}, client=client)
        scm.tokens.state = OAuthTokenState(
            access_token="myAccessToken",
            refresh_token="myRefreshToken",
            expires_at=time.time() * 1000 + 3_600_000,
        )
        return scm, handler

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture
def scm_config() -> dict[str, Any]:
    return dict(TEST_CONFIG)
