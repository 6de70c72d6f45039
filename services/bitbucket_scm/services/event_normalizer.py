"""Webhook normalisation for Bitbucket events.

Bitbucket identifies an event with the X-Event-Key header, e.g.
"repo:push" or "pullrequest:created". Recognised events become a
CanonicalEvent; everything else yields None, which callers treat as
"acknowledged but ignored" rather than an error.

| category    | action                        | canonical action |
|-------------|-------------------------------|------------------|
| repo        | push                          | push             |
| pullrequest | created                       | opened           |
| pullrequest | updated                       | synchronized     |
| pullrequest | fullfilled/fulfilled/rejected | closed           |
"""

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

from bitbucket_scm.errors import HostMismatchError, InvalidWebhookPayloadError
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.services.bitbucket_api import BITBUCKET_HOSTNAME
from bitbucket_scm.services.scm_provider import CanonicalEvent

logger = get_logger(__name__)

EVENT_KEY_HEADER = "x-event-key"
REQUEST_ID_HEADER = "x-request-uuid"

PR_ACTIONS = {
    "created": "opened",
    "updated": "synchronized",
    # Bitbucket's documented key is "fulfilled"; "fullfilled" is kept for
    # senders that still use the historical spelling.
    "fullfilled": "closed",
    "fulfilled": "closed",
    "rejected": "closed",
}


def _header(headers: Mapping[str, Any] | None, key: str) -> str | None:
    if not headers:
        return None
    target = key.lower()
    for header, value in headers.items():
        if header.lower() == target and isinstance(value, str):
            return value
    return None


def _reach(data: Any, path: str, default: Any = None) -> Any:
    """Follow a dotted path through nested mappings."""
    current = data
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return default
        current = current[segment]
    return current


def _checkout_url(payload: Mapping[str, Any], hostname: str) -> str:
    href = _reach(payload, "repository.links.html.href")
    if not isinstance(href, str):
        raise InvalidWebhookPayloadError("Invalid webhook payload")

    link = urlsplit(href)
    checkout_url = f"{link.scheme}://{link.hostname}{link.path}.git"

    if not f"{link.hostname}{link.path}.git".startswith(hostname):
        raise HostMismatchError(checkout_url)
    return checkout_url


def normalize(
    headers: Mapping[str, Any],
    payload: Mapping[str, Any],
    hostname: str = BITBUCKET_HOSTNAME,
    scm_context: str | None = None,
) -> CanonicalEvent | None:
    """Turn a Bitbucket webhook into a CanonicalEvent.

    Returns None for events the adapter does not act on. Raises
    InvalidWebhookPayloadError for structurally broken input and
    HostMismatchError for repositories on another host.
    """
    event_key = _header(headers, EVENT_KEY_HEADER)
    if not event_key:
        raise InvalidWebhookPayloadError(f"Missing {EVENT_KEY_HEADER} header")

    category, _, action = event_key.partition(":")
    hook_id = _header(headers, REQUEST_ID_HEADER)
    checkout_url = _checkout_url(payload, hostname)
    username = _reach(payload, "actor.uuid")

    if category == "repo":
        if action != "push":
            return None

        changes = _reach(payload, "push.changes")
        if not changes:
            raise InvalidWebhookPayloadError("Push payload has no changes")
        change = changes[0]

        return CanonicalEvent(
            type="repo",
            action="push",
            username=username,
            checkout_url=checkout_url,
            branch=_reach(change, "new.name"),
            sha=_reach(change, "new.target.hash"),
            hook_id=hook_id,
            scm_context=scm_context,
            last_commit_message=_reach(change, "new.target.message", default=""),
        )

    if category == "pullrequest":
        canonical_action = PR_ACTIONS.get(action)
        if canonical_action is None:
            return None

        return CanonicalEvent(
            type="pr",
            action=canonical_action,
            username=username,
            checkout_url=checkout_url,
            branch=_reach(payload, "pullrequest.destination.branch.name"),
            sha=_reach(payload, "pullrequest.source.commit.hash"),
            hook_id=hook_id,
            scm_context=scm_context,
            pr_num=_reach(payload, "pullrequest.id"),
            pr_ref=_reach(payload, "pullrequest.source.branch.name"),
            pr_merged=_reach(payload, "pullrequest.state") == "MERGED",
        )

    logger.debug("Ignoring unsupported webhook event", event_key=event_key)
    return None


def can_handle(
    headers: Mapping[str, Any],
    payload: Mapping[str, Any],
    hostname: str = BITBUCKET_HOSTNAME,
) -> bool:
    """True unless normalisation fails.

    Ignored events still count as handled; only malformed payloads and
    repositories on another host return False.
    """
    try:
        normalize(headers, payload, hostname)
    except Exception as e:
        logger.error("Failed to run canHandleWebhook", error=str(e))
        return False
    return True
