"""Bitbucket Cloud REST v2 endpoints and provider constants."""

BITBUCKET_HOSTNAME = "bitbucket.org"
API_URL_V2 = "https://api.bitbucket.org/2.0"
REPO_URL = f"{API_URL_V2}/repositories"
USER_URL = f"{API_URL_V2}/users"

# Branch used when a checkout URL names none
DEFAULT_BRANCH = "master"


def repo_url(repo_id: str | None, *path: str) -> str:
    """URL of a repository resource, e.g. repo_url("owner/{uuid}", "hooks")."""
    return "/".join((REPO_URL, str(repo_id), *path))


def oauth_token_url(hostname: str = BITBUCKET_HOSTNAME) -> str:
    return f"https://{hostname}/site/oauth2/access_token"
