"""
Health check endpoints for the webhook service.

Provides /health (liveness) and /ready (readiness) endpoints.
"""

from fastapi import APIRouter, Depends, Response, status

from bitbucket_scm.api.dependencies import get_scm
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.scm import BitbucketScm

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    """Liveness probe endpoint.

    Returns 200 if the service is running.
    """
    return {"status": "healthy"}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def ready(
    response: Response, scm: BitbucketScm = Depends(get_scm)
) -> dict[str, str | dict[str, str]]:
    """Readiness probe endpoint.

    Not ready while the Bitbucket circuit breaker is open.
    """
    checks = {"bitbucket": "healthy" if scm.transport.is_closed else "unhealthy"}

    if checks["bitbucket"] != "healthy":
        logger.warning("Readiness check failed", checks=checks)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready", "checks": checks}

    return {"status": "ready", "checks": checks}
