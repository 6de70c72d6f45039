"""Repository webhook management.

add_webhook() is idempotent: it looks for an existing hook with the same
URL (walking the hook list page by page) and updates it in place, or
creates a new one when none exists.
"""

from typing import Any

from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.services import uri_codec
from bitbucket_scm.services.bitbucket_api import repo_url
from bitbucket_scm.services.scm_provider import WebhookDescriptor
from bitbucket_scm.services.token_manager import TokenManager
from bitbucket_scm.transport import Transport, TransportResponse

logger = get_logger(__name__)

WEBHOOK_PAGE_SIZE = 30
WEBHOOK_DESCRIPTION = "Screwdriver-CD build trigger"
DEFAULT_WEBHOOK_EVENTS = [
    "repo:push",
    "pullrequest:created",
    "pullrequest:fulfilled",
    "pullrequest:rejected",
    "pullrequest:updated",
]


def webhook_events_mapping() -> dict[str, Any]:
    """Map orchestrator event groups to Bitbucket webhook event keys."""
    return {
        "pr": [
            "pullrequest:created",
            "pullrequest:fulfilled",
            "pullrequest:rejected",
            "pullrequest:updated",
        ],
        "commit": "push",
    }


class WebhookManager:
    """Finds, creates and updates the orchestrator's repository webhook."""

    def __init__(self, transport: Transport, tokens: TokenManager) -> None:
        self._transport = transport
        self._tokens = tokens

    async def find_webhook(self, repo_id: str, url: str) -> WebhookDescriptor | None:
        """Return the first hook whose URL equals url, searching pages in order.

        Stops after the first page holding fewer than WEBHOOK_PAGE_SIZE hooks.
        """
        page = 1
        while True:
            try:
                token = await self._tokens.get_token()
                response = await self._transport.perform(
                    "GET",
                    f"{repo_url(repo_id, 'hooks')}?pagelen={WEBHOOK_PAGE_SIZE}&page={page}",
                    token=token,
                )
            except Exception as e:
                logger.error("Failed to find webhook", repo_id=repo_id, page=page, error=str(e))
                raise

            hooks = response.body or {}
            values = hooks.get("values") or []
            for hook in values:
                if hook.get("url") == url:
                    return WebhookDescriptor.from_api(hook)

            if len(values) < WEBHOOK_PAGE_SIZE:
                return None
            page += 1

    async def create_or_update_webhook(
        self,
        repo_id: str,
        url: str,
        token: str,
        actions: list[str] | None = None,
        existing: WebhookDescriptor | None = None,
    ) -> TransportResponse:
        """POST a new hook, or PUT over existing so its settings are current.

        Uses the caller's token so the hook is owned by the requesting user.
        """
        body = {
            "description": WEBHOOK_DESCRIPTION,
            "url": url,
            "active": True,
            "events": list(actions) if actions else list(DEFAULT_WEBHOOK_EVENTS),
        }

        if existing is None:
            method, hook_url = "POST", repo_url(repo_id, "hooks")
        else:
            method, hook_url = "PUT", repo_url(repo_id, "hooks", existing.uuid)

        try:
            response = await self._transport.perform(method, hook_url, token=token, json=body)
        except Exception as e:
            logger.error(
                "Failed to create webhook" if existing is None else "Failed to update webhook",
                repo_id=repo_id,
                error=str(e),
            )
            raise

        logger.info(
            "Webhook created" if existing is None else "Webhook updated",
            repo_id=repo_id,
            url=url,
        )
        return response

    async def add_webhook(
        self, scm_uri: str, token: str, webhook_url: str, actions: list[str] | None = None
    ) -> TransportResponse:
        """Attach webhook_url to the repository, updating it if already present."""
        repo_id = uri_codec.decode(scm_uri).repo_id
        existing = await self.find_webhook(repo_id, webhook_url)
        return await self.create_or_update_webhook(repo_id, webhook_url, token, actions, existing)
