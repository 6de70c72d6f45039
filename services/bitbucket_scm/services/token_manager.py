"""OAuth token lifecycle for the adapter's own Bitbucket identity.

The adapter authenticates read calls with a token obtained from its OAuth
consumer (client id/secret). The first token comes from the
client_credentials grant; every renewal after that uses the refresh_token
grant. Bitbucket tokens last one to two hours.

Write calls made on behalf of a user (commit statuses, permission checks)
use the caller's token instead so Bitbucket attributes them to that user.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.services.bitbucket_api import BITBUCKET_HOSTNAME, oauth_token_url
from bitbucket_scm.transport import Transport

logger = get_logger(__name__)

# Tolerance applied to the recorded expiry for clock skew between us and
# Bitbucket.
EXPIRY_MARGIN_MS = 5000


@dataclass
class OAuthTokenState:
    """The in-memory token triple. Replaced as a whole on every refresh."""

    access_token: str = ""
    refresh_token: str = ""
    expires_at: float = 0  # epoch milliseconds


def _now_ms() -> float:
    return time.time() * 1000


class TokenManager:
    """Owns the adapter token and refreshes it lazily."""

    def __init__(
        self,
        transport: Transport,
        client_id: str,
        client_secret: str,
        hostname: str = BITBUCKET_HOSTNAME,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self._transport = transport
        self._client_id = client_id
        self._client_secret = client_secret
        self._hostname = hostname
        self._clock = clock
        self._lock = asyncio.Lock()
        self.state = OAuthTokenState()

    def _is_stale(self) -> bool:
        return self.state.expires_at < self._clock() - EXPIRY_MARGIN_MS

    async def get_token(self) -> str:
        """Return a valid access token, refreshing first if it has expired.

        Concurrent callers that find the token stale share one refresh.
        """
        if self._is_stale():
            async with self._lock:
                if self._is_stale():
                    await self.refresh()
        return self.state.access_token

    async def refresh(self) -> None:
        """Obtain a new token.

        Uses client_credentials when no token has been obtained yet and
        refresh_token afterwards. On failure the previous state is kept.
        """
        if self.state.access_token == "":
            form = {"grant_type": "client_credentials"}
        else:
            form = {
                "grant_type": "refresh_token",
                "refresh_token": self.state.refresh_token,
            }

        try:
            response = await self._transport.perform(
                "POST",
                oauth_token_url(self._hostname),
                username=self._client_id,
                password=self._client_secret,
                form=form,
            )
        except Exception as e:
            logger.error("Failed to refresh token", grant_type=form["grant_type"], error=str(e))
            raise

        body = response.body
        self.state = OAuthTokenState(
            access_token=body["access_token"],
            refresh_token=body["refresh_token"],
            expires_at=self._clock() + body["expires_in"] * 1000,
        )
        logger.debug("Bitbucket token obtained", grant_type=form["grant_type"])
