"""SCM provider abstraction.

Defines the canonical records the orchestrator consumes and the ScmProvider
protocol that the Bitbucket adapter conforms to. Records are frozen and
render to the orchestrator's camelCase wire shape via to_dict().
"""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class CheckoutUrlInfo:
    """Components of a human checkout URL."""

    hostname: str
    username: str
    repo: str
    branch: str | None = None
    root_dir: str | None = None


@dataclass(frozen=True)
class ScmUriParts:
    """Decoded scmUri. Segments missing from the input are None."""

    hostname: str | None
    repo_id: str | None
    branch: str | None
    root_dir: str | None = None


@dataclass(frozen=True)
class WebhookDescriptor:
    """A repository webhook as Bitbucket describes it."""

    uuid: str
    url: str
    active: bool = True
    events: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, hook: dict[str, Any]) -> "WebhookDescriptor":
        return cls(
            uuid=hook.get("uuid", ""),
            url=hook.get("url", ""),
            active=hook.get("active", True),
            events=tuple(hook.get("events") or ()),
        )


@dataclass(frozen=True)
class CanonicalEvent:
    """Normalized webhook event.

    type is "repo" or "pr". Push events fill last_commit_message; PR events
    fill pr_num, pr_ref and pr_merged.
    """

    type: str
    action: str
    username: str | None
    checkout_url: str
    branch: str | None
    sha: str | None
    hook_id: str | None = None
    scm_context: str | None = None
    last_commit_message: str | None = None
    pr_num: int | None = None
    pr_ref: str | None = None
    pr_merged: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "action": self.action,
            "username": self.username,
            "checkoutUrl": self.checkout_url,
            "branch": self.branch,
            "sha": self.sha,
            "hookId": self.hook_id,
            "scmContext": self.scm_context,
        }
        if self.type == "repo":
            data["lastCommitMessage"] = self.last_commit_message
        else:
            data["prNum"] = self.pr_num
            data["prRef"] = self.pr_ref
            data["prMerged"] = self.pr_merged
        return data


@dataclass(frozen=True)
class PermissionSet:
    admin: bool
    push: bool
    pull: bool

    def to_dict(self) -> dict[str, bool]:
        return {"admin": self.admin, "push": self.push, "pull": self.pull}


@dataclass(frozen=True)
class DecoratedAuthor:
    url: str
    name: str
    username: str
    avatar: str
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "name": self.name,
            "username": self.username,
            "avatar": self.avatar,
        }
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class DecoratedCommit:
    url: str
    message: str
    author: DecoratedAuthor

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "message": self.message, "author": self.author.to_dict()}


@dataclass(frozen=True)
class DecoratedUrl:
    url: str
    name: str
    branch: str | None
    root_dir: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "name": self.name, "branch": self.branch, "rootDir": self.root_dir}


@dataclass(frozen=True)
class OpenedPr:
    name: str
    ref: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "ref": self.ref}


@dataclass(frozen=True)
class PrInfo:
    name: str
    ref: str
    sha: str
    url: str
    base_branch: str

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "ref": self.ref,
            "sha": self.sha,
            "url": self.url,
            "baseBranch": self.base_branch,
        }


@dataclass(frozen=True)
class Branch:
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name}


@dataclass(frozen=True)
class CheckoutCommand:
    """A named shell step for the build executor."""

    command: str
    name: str = "sd-checkout-code"

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "command": self.command}


@dataclass(frozen=True)
class ParentConfig:
    """Location of the parent ("config") pipeline repository."""

    host: str
    org: str
    repo: str
    branch: str
    sha: str


@dataclass(frozen=True)
class BellConfiguration:
    """OAuth provider settings for the orchestrator's login plugin."""

    scm_context: str
    client_id: str
    client_secret: str
    cookie: str
    is_secure: bool
    provider: str = "bitbucket"

    def to_dict(self) -> dict[str, Any]:
        return {
            self.scm_context: {
                "provider": self.provider,
                "cookie": self.cookie,
                "clientId": self.client_id,
                "clientSecret": self.client_secret,
                "isSecure": self.is_secure,
                "forceHttps": self.is_secure,
            }
        }


@runtime_checkable
class ScmProvider(Protocol):
    """Interface an SCM adapter exposes to the orchestrator.

    Operations that act on behalf of a user take that user's token;
    read-only lookups may use the adapter's own credentials instead.
    """

    async def parse_url(self, checkout_url: str, root_dir: str | None = None) -> str:
        """Resolve a checkout URL into an scmUri."""
        ...

    async def parse_hook(
        self, headers: dict[str, str], payload: dict[str, Any]
    ) -> CanonicalEvent | None:
        """Normalize a webhook. Returns None for events the adapter ignores."""
        ...

    async def can_handle_webhook(self, headers: dict[str, str], payload: dict[str, Any]) -> bool:
        ...

    async def decorate_author(self, username: str) -> DecoratedAuthor:
        ...

    async def decorate_url(self, scm_uri: str) -> DecoratedUrl:
        ...

    async def decorate_commit(self, scm_uri: str, sha: str) -> DecoratedCommit:
        ...

    async def get_commit_sha(self, scm_uri: str, pr_num: int | None = None) -> str:
        ...

    async def get_file(self, scm_uri: str, path: str, ref: str | None = None) -> str:
        """Fetch file content. Returns "" when the file does not exist."""
        ...

    async def get_changed_files(self, **kwargs: Any) -> list[str] | None:
        ...

    async def get_permissions(self, scm_uri: str, token: str) -> PermissionSet:
        ...

    async def update_commit_status(
        self,
        scm_uri: str,
        sha: str,
        build_status: str,
        token: str,
        url: str | None = None,
        job_name: str = "",
        pipeline_id: int | str | None = None,
    ) -> Any:
        ...

    def get_bell_configuration(self) -> dict[str, Any]:
        ...

    def get_checkout_command(
        self,
        branch: str,
        host: str,
        org: str,
        repo: str,
        sha: str,
        commit_branch: str | None = None,
        pr_ref: str | None = None,
        parent_config: ParentConfig | None = None,
        root_dir: str | None = None,
    ) -> CheckoutCommand:
        ...

    async def get_opened_prs(self, scm_uri: str) -> list[OpenedPr]:
        ...

    async def get_pr_info(self, scm_uri: str, pr_num: int) -> PrInfo:
        ...

    def get_scm_contexts(self) -> list[str]:
        ...

    async def get_branch_list(self, scm_uri: str) -> list[Branch]:
        ...

    async def add_webhook(
        self, scm_uri: str, token: str, webhook_url: str, actions: list[str] | None = None
    ) -> Any:
        ...

    def stats(self) -> dict[str, Any]:
        ...
