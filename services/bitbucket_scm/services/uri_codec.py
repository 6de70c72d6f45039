"""Checkout URL parsing and scmUri encoding.

An scmUri is the colon-delimited string the orchestrator stores for a
pipeline:

    hostname:owner/{repository-uuid}:branch[:rootDir]

Embedding the repository UUID instead of its slug keeps the identifier
stable across renames. Checkout URLs are the human-facing form:

    git@bitbucket.org:owner/repo.git#branch:path/to/root
    https://user@bitbucket.org/owner/repo.git#branch:path/to/root
"""

import re

from bitbucket_scm.errors import InvalidUrlError, UnsupportedHostError
from bitbucket_scm.services.bitbucket_api import BITBUCKET_HOSTNAME, DEFAULT_BRANCH, repo_url
from bitbucket_scm.services.scm_provider import CheckoutUrlInfo, ScmUriParts
from bitbucket_scm.transport import Transport

CHECKOUT_URL_REGEX = re.compile(
    r"^(?:(?:https://(?:[^@/:\s]+@)?)|git@|org-\d+@)"
    r"([^/:\s]+)(?:/|:)([^/:\s]+)/([^\s]+?)(?:\.git)(#[^\s:]+)?(:[^\s]*)?$"
)

SCM_URI_SEPARATOR = ":"


def is_checkout_url(value: str) -> bool:
    """True if value matches the checkout URL grammar."""
    return CHECKOUT_URL_REGEX.match(value) is not None


def parse_checkout_url(checkout_url: str, root_dir: str | None = None) -> CheckoutUrlInfo:
    """Split a checkout URL into hostname, owner, repo, branch and rootDir.

    An explicit root_dir wins over one embedded in the URL.
    Raises InvalidUrlError if the URL does not match the grammar.
    """
    matched = CHECKOUT_URL_REGEX.match(checkout_url)
    if matched is None:
        raise InvalidUrlError(checkout_url)

    hostname, username, repo, branch_part, root_dir_part = matched.groups()

    return CheckoutUrlInfo(
        hostname=hostname,
        username=username,
        repo=repo,
        branch=branch_part[1:] if branch_part else None,
        root_dir=root_dir or (root_dir_part[1:] if root_dir_part else None) or None,
    )


def encode(hostname: str, repo_id: str, branch: str, root_dir: str | None = None) -> str:
    """Build an scmUri. The rootDir segment is omitted when empty."""
    scm_uri = SCM_URI_SEPARATOR.join((hostname, repo_id, branch or ""))
    return f"{scm_uri}{SCM_URI_SEPARATOR}{root_dir}" if root_dir else scm_uri


def decode(scm_uri: str) -> ScmUriParts:
    """Split an scmUri into its segments.

    No structural validation: a short input leaves the trailing segments
    as None, and extra segments beyond rootDir are ignored.
    """
    parts: list[str | None] = list(scm_uri.split(SCM_URI_SEPARATOR))
    parts += [None] * (4 - len(parts))
    hostname, repo_id, branch, root_dir = parts[:4]
    return ScmUriParts(hostname=hostname, repo_id=repo_id, branch=branch, root_dir=root_dir)


async def resolve(
    checkout_url: str,
    root_dir: str | None,
    *,
    transport: Transport,
    token: str,
    hostname: str = BITBUCKET_HOSTNAME,
) -> str:
    """Resolve a checkout URL into an scmUri.

    Looks up the branch head to learn the repository UUID. Raises
    UnsupportedHostError if the URL points at a host other than hostname;
    transport errors propagate unchanged.
    """
    info = parse_checkout_url(checkout_url, root_dir)
    branch = info.branch or DEFAULT_BRANCH

    if info.hostname != hostname:
        raise UnsupportedHostError(info.hostname)

    response = await transport.perform(
        "GET",
        repo_url(f"{info.username}/{info.repo}", "refs", "branches", branch),
        token=token,
    )
    repository_uuid = response.body["target"]["repository"]["uuid"]

    return encode(info.hostname, f"{info.username}/{repository_uuid}", branch, info.root_dir)
