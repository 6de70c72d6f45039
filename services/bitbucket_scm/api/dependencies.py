"""
Adapter lifecycle for the webhook service.

One BitbucketScm per process, created in the app lifespan, so the OAuth
token and breaker state are shared across requests.
"""

from bitbucket_scm.config import BitbucketScmConfig
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.scm import BitbucketScm

logger = get_logger(__name__)

# Module-level adapter reference, initialized in lifespan
_scm: BitbucketScm | None = None


def init_scm(config: BitbucketScmConfig | None) -> None:
    """Build the adapter from validated configuration."""
    global _scm  # noqa: PLW0603
    if config is None:
        raise RuntimeError("Adapter not configured, set BITBUCKET_SCM_SCM__OAUTH_CLIENT_ID")
    _scm = BitbucketScm(config)
    logger.info("Bitbucket adapter initialized", scm_context=_scm.get_scm_contexts()[0])


async def close_scm() -> None:
    """Release the adapter's HTTP client."""
    global _scm  # noqa: PLW0603
    if _scm is not None:
        await _scm.aclose()
        _scm = None


def get_scm() -> BitbucketScm:
    """FastAPI dependency returning the adapter. Raises if not initialized."""
    if _scm is None:
        raise RuntimeError("Adapter not initialized, call init_scm() first")
    return _scm
