"""Repository operations against the Bitbucket REST API.

Each operation decodes the scmUri, authenticates, performs one or a few
calls through the Transport and reshapes the response into the
orchestrator's records. Three failures are downgraded on purpose:

- get_file: 404 means "no pipeline config" and yields ""
- decorate_author: 404 yields a placeholder built from the identifier
- update_commit_status: 422 (status rejected) is ignored

Everything else is logged and re-raised unchanged.
"""

import asyncio
import posixpath
from urllib.parse import quote as url_quote
from urllib.parse import unquote

from bitbucket_scm.errors import HttpError, UnknownBuildStatusError
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.services import uri_codec
from bitbucket_scm.services.bitbucket_api import DEFAULT_BRANCH, USER_URL, repo_url
from bitbucket_scm.services.scm_provider import (
    Branch,
    DecoratedAuthor,
    DecoratedCommit,
    DecoratedUrl,
    OpenedPr,
    PermissionSet,
    PrInfo,
)
from bitbucket_scm.services.token_manager import TokenManager
from bitbucket_scm.transport import Transport, TransportResponse

logger = get_logger(__name__)

BRANCH_PAGE_SIZE = 100

STATE_MAP = {
    "SUCCESS": "SUCCESSFUL",
    "RUNNING": "INPROGRESS",
    "QUEUED": "INPROGRESS",
    "FAILURE": "FAILED",
    "ABORTED": "STOPPED",
}

# Repository role filters for the permission probes
PERMISSION_ROLES = {
    "admin": "admin",
    "push": "contributor",
    "pull": None,
}


def status_context(pipeline_id: int | str | None, job_name: str) -> str:
    """Commit status description, e.g. "Screwdriver/123/main".

    All PR jobs of a pipeline share the "PR" context.
    """
    suffix = "PR" if job_name.startswith("PR") else job_name
    return f"Screwdriver/{pipeline_id}/{suffix}"


class RepositoryFacade:
    """Direct-mapping repository operations."""

    def __init__(self, transport: Transport, tokens: TokenManager) -> None:
        self._transport = transport
        self._tokens = tokens

    async def _get(
        self, url: str, token: str | None = None, response_type: str = "json"
    ) -> TransportResponse:
        if token is None:
            token = await self._tokens.get_token()
        return await self._transport.perform("GET", url, token=token, response_type=response_type)

    # --- Files ---

    async def get_file(self, scm_uri: str, path: str, ref: str | None = None) -> str:
        """Fetch a file's content.

        path is either relative to the pipeline's rootDir, or a full checkout
        URL such as git@bitbucket.org:owner/repo.git#branch:path/to/file.yaml.
        Returns "" when the file does not exist.
        """
        if uri_codec.is_checkout_url(path):
            info = uri_codec.parse_checkout_url(path)
            repo_id = f"{info.username}/{info.repo}"
            branch = info.branch or DEFAULT_BRANCH
            full_path = info.root_dir or ""
        else:
            parts = uri_codec.decode(scm_uri)
            repo_id = parts.repo_id
            branch = ref or parts.branch
            # Paths are always relative to rootDir, even with a leading slash
            full_path = path.lstrip("/")
            if parts.root_dir:
                full_path = posixpath.normpath(posixpath.join(parts.root_dir, full_path))

        try:
            response = await self._get(
                repo_url(repo_id, "src", str(branch), full_path), response_type="text"
            )
        except HttpError as e:
            if e.status_code == 404:
                logger.info("File not found", repo_id=repo_id, branch=branch, path=full_path)
                return ""
            logger.error("Failed to get file", repo_id=repo_id, path=full_path, error=str(e))
            raise
        except Exception as e:
            logger.error("Failed to get file", repo_id=repo_id, path=full_path, error=str(e))
            raise

        return response.body

    async def get_changed_files(self) -> None:
        """Bitbucket has no changed-files endpoint for pushes or PRs."""
        return None

    # --- Decoration ---

    async def decorate_author(self, username: str) -> DecoratedAuthor:
        """Look up a user by uuid or account name."""
        try:
            response = await self._get(f"{USER_URL}/{url_quote(username, safe='')}")
        except HttpError as e:
            if e.status_code == 404:
                # Bitbucket no longer resolves most users by name; fall back
                # to a record that lets the build proceed.
                return DecoratedAuthor(url="", name=username, username=username, avatar="")
            logger.error("Failed to decorate author", username=username, error=str(e))
            raise
        except Exception as e:
            logger.error("Failed to decorate author", username=username, error=str(e))
            raise

        body = response.body
        links = body.get("links", {})
        return DecoratedAuthor(
            id=body.get("uuid"),
            url=links.get("html", {}).get("href", ""),
            name=body.get("display_name", ""),
            username=body.get("uuid", ""),
            avatar=links.get("avatar", {}).get("href", ""),
        )

    async def decorate_url(self, scm_uri: str) -> DecoratedUrl:
        parts = uri_codec.decode(scm_uri)
        try:
            response = await self._get(repo_url(parts.repo_id))
        except Exception as e:
            logger.error("Failed to decorate url", repo_id=parts.repo_id, error=str(e))
            raise

        body = response.body
        return DecoratedUrl(
            url=body["links"]["html"]["href"],
            name=body["full_name"],
            branch=parts.branch,
            root_dir=parts.root_dir or "",
        )

    async def decorate_commit(self, scm_uri: str, sha: str) -> DecoratedCommit:
        repo_id = uri_codec.decode(scm_uri).repo_id
        try:
            response = await self._get(repo_url(repo_id, "commit", sha))
        except Exception as e:
            logger.error("Failed to decorate commit", repo_id=repo_id, sha=sha, error=str(e))
            raise

        body = response.body
        author = await self.decorate_author(body["author"]["user"]["uuid"])
        return DecoratedCommit(
            url=body["links"]["html"]["href"],
            message=body["message"],
            author=author,
        )

    # --- Commits & branches ---

    async def get_commit_sha(self, scm_uri: str, pr_num: int | None = None) -> str:
        """Head commit of the PR when pr_num is given, else of the scmUri branch."""
        if pr_num:
            return (await self.get_pr_info(scm_uri, pr_num)).sha

        parts = uri_codec.decode(scm_uri)
        try:
            response = await self._get(
                repo_url(parts.repo_id, "refs", "branches", str(parts.branch))
            )
        except Exception as e:
            logger.error("Failed to get commit sha", repo_id=parts.repo_id, error=str(e))
            raise
        return response.body["target"]["hash"]

    async def get_branch_list(self, scm_uri: str) -> list[Branch]:
        """All branches of the repository, walking every full page."""
        repo_id = uri_codec.decode(scm_uri).repo_id
        branches: list[Branch] = []
        page = 1
        while True:
            try:
                url = repo_url(repo_id, "refs", "branches")
                response = await self._get(f"{url}?pagelen={BRANCH_PAGE_SIZE}&page={page}")
            except Exception as e:
                logger.error("Failed to find branches", repo_id=repo_id, page=page, error=str(e))
                raise

            values = (response.body or {}).get("values") or []
            branches.extend(Branch(name=value.get("name")) for value in values)
            if len(values) != BRANCH_PAGE_SIZE:
                return branches
            page += 1

    # --- Pull requests ---

    async def get_opened_prs(self, scm_uri: str) -> list[OpenedPr]:
        repo_id = uri_codec.decode(scm_uri).repo_id
        try:
            response = await self._get(repo_url(repo_id, "pullrequests"))
        except Exception as e:
            logger.error("Failed to get opened PRs", repo_id=repo_id, error=str(e))
            raise

        return [
            OpenedPr(name=f"PR-{pr['id']}", ref=pr["source"]["branch"]["name"])
            for pr in response.body.get("values", [])
        ]

    async def get_pr_info(self, scm_uri: str, pr_num: int) -> PrInfo:
        repo_id = uri_codec.decode(scm_uri).repo_id
        try:
            response = await self._get(repo_url(repo_id, "pullrequests", str(pr_num)))
        except Exception as e:
            logger.error("Failed to get PR info", repo_id=repo_id, pr_num=pr_num, error=str(e))
            raise

        pr = response.body
        return PrInfo(
            name=f"PR-{pr['id']}",
            ref=pr["source"]["branch"]["name"],
            sha=pr["source"]["commit"]["hash"],
            url=pr["links"]["html"]["href"],
            base_branch=pr["source"]["branch"]["name"],
        )

    # --- Permissions & statuses ---

    async def get_permissions(self, scm_uri: str, token: str) -> PermissionSet:
        """Compute the token owner's admin/push/pull access to the repository.

        The repository is fetched first so a missing repository surfaces as
        its own error. The three role probes then run concurrently; all of
        them finish before the first failure, if any, is raised.
        """
        repo_id = uri_codec.decode(scm_uri).repo_id or ""
        owner, _, uuid = repo_id.partition("/")

        try:
            await self._get(repo_url(f"{owner}/{uuid}"), token=token)
        except Exception as e:
            logger.error("Failed to get repository", repo_id=repo_id, error=str(e))
            raise

        async def has_role(role: str | None) -> bool:
            url = f"{repo_url(owner)}?q=uuid%3D%22{uuid}%22"
            if role:
                url = f"{url}&role={role}"
            try:
                response = await self._get(url, token=token)
            except Exception as e:
                logger.error("Failed to get permissions", repo_id=repo_id, role=role, error=str(e))
                raise
            values = (response.body or {}).get("values") or []
            return any(value.get("uuid") == uuid for value in values)

        # Wait for every probe before surfacing the first failure
        results = await asyncio.gather(
            *(has_role(role) for role in PERMISSION_ROLES.values()), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        admin, push, pull = results
        return PermissionSet(admin=admin, push=push, pull=pull)

    async def update_commit_status(
        self,
        scm_uri: str,
        sha: str,
        build_status: str,
        token: str,
        url: str | None = None,
        job_name: str = "",
        pipeline_id: int | str | None = None,
    ) -> TransportResponse | None:
        """Report a build status on a commit as the calling user.

        Returns None when Bitbucket rejects the status with 422.
        """
        state = STATE_MAP.get(build_status)
        if state is None:
            raise UnknownBuildStatusError(build_status)

        repo_id = uri_codec.decode(scm_uri).repo_id
        try:
            return await self._transport.perform(
                "POST",
                repo_url(repo_id, "commit", sha, "statuses", "build"),
                token=unquote(token),
                json={
                    "url": url,
                    "state": state,
                    "key": sha,
                    "description": status_context(pipeline_id, job_name),
                },
            )
        except HttpError as e:
            if e.status_code == 422:
                logger.debug("Commit status rejected", repo_id=repo_id, sha=sha)
                return None
            logger.error("Failed to update commit status", repo_id=repo_id, sha=sha, error=str(e))
            raise
        except Exception as e:
            logger.error("Failed to update commit status", repo_id=repo_id, sha=sha, error=str(e))
            raise
