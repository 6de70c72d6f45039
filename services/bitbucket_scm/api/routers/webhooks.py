"""Bitbucket webhook receiver.

Normalizes inbound Bitbucket events and hands the canonical event back
to the caller. Ignored event types are acknowledged with a null event.

Endpoints:
    POST /api/v1/webhooks/bitbucket   (Bitbucket webhook receiver)
    GET  /api/v1/stats                (transport counters and breaker state)
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from bitbucket_scm.api.dependencies import get_scm
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.scm import BitbucketScm

router = APIRouter(tags=["webhooks"])
logger = get_logger(__name__)


@router.post("/webhooks/bitbucket")
async def bitbucket_webhook(
    request: Request, scm: BitbucketScm = Depends(get_scm)
) -> dict[str, Any]:
    """Receive a Bitbucket webhook and return its canonical event."""
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    headers = dict(request.headers)
    event = await scm.parse_hook(headers, payload)

    if event is None:
        logger.debug("Webhook event ignored", event_key=headers.get("x-event-key"))
        return {"event": None}

    logger.info(
        "Webhook event received",
        type=event.type,
        action=event.action,
        checkout_url=event.checkout_url,
        hook_id=event.hook_id,
    )
    return {"event": event.to_dict()}


@router.get("/stats")
async def stats(scm: BitbucketScm = Depends(get_scm)) -> dict[str, Any]:
    return scm.stats()
