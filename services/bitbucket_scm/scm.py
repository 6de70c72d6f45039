"""Bitbucket Cloud SCM adapter.

BitbucketScm is the object the orchestrator talks to. It validates the
adapter config once, owns the shared Transport and TokenManager, and
exposes the fixed SCM operation surface by delegating to the URI codec,
webhook, event and repository components.
"""

from typing import Any

import httpx

from bitbucket_scm.config import BitbucketScmConfig
from bitbucket_scm.logging_config import get_logger
from bitbucket_scm.services import event_normalizer, uri_codec
from bitbucket_scm.services.bitbucket_api import BITBUCKET_HOSTNAME
from bitbucket_scm.services.checkout_command import build_checkout_command
from bitbucket_scm.services.repository import RepositoryFacade
from bitbucket_scm.services.scm_provider import (
    BellConfiguration,
    Branch,
    CanonicalEvent,
    CheckoutCommand,
    DecoratedAuthor,
    DecoratedCommit,
    DecoratedUrl,
    OpenedPr,
    ParentConfig,
    PermissionSet,
    PrInfo,
)
from bitbucket_scm.services.token_manager import TokenManager
from bitbucket_scm.services.webhook_manager import WebhookManager, webhook_events_mapping
from bitbucket_scm.transport import Transport, TransportResponse

logger = get_logger(__name__)


class BitbucketScm:
    """SCM provider backed by Bitbucket Cloud.

    Read lookups authenticate with the adapter's own OAuth token, refreshed
    lazily. Operations performed on behalf of a user (commit statuses,
    permission checks, webhook writes) take that user's token.
    """

    def __init__(
        self,
        config: BitbucketScmConfig | dict[str, Any],
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = (
            config
            if isinstance(config, BitbucketScmConfig)
            else BitbucketScmConfig.model_validate(config)
        )
        # Only bitbucket.org is supported for now.
        self.hostname = BITBUCKET_HOSTNAME

        self.transport = Transport(
            retry=self.config.fusebox.retry,
            breaker=self.config.fusebox.breaker,
            client=client,
        )
        self.tokens = TokenManager(
            self.transport,
            client_id=self.config.oauth_client_id,
            client_secret=self.config.oauth_client_secret.get_secret_value(),
            hostname=self.hostname,
        )
        self.webhooks = WebhookManager(self.transport, self.tokens)
        self.repository = RepositoryFacade(self.transport, self.tokens)

    async def __aenter__(self) -> "BitbucketScm":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    # --- URLs & webhooks ---

    async def parse_url(self, checkout_url: str, root_dir: str | None = None) -> str:
        """Resolve a checkout URL into an scmUri."""
        token = await self.tokens.get_token()
        try:
            return await uri_codec.resolve(
                checkout_url,
                root_dir,
                transport=self.transport,
                token=token,
                hostname=self.hostname,
            )
        except Exception as e:
            logger.error("Failed to parse url", checkout_url=checkout_url, error=str(e))
            raise

    async def parse_hook(
        self, headers: dict[str, Any], payload: dict[str, Any]
    ) -> CanonicalEvent | None:
        return event_normalizer.normalize(
            headers,
            payload,
            hostname=self.hostname,
            scm_context=self.get_scm_contexts()[0],
        )

    async def can_handle_webhook(self, headers: dict[str, Any], payload: dict[str, Any]) -> bool:
        """True unless the payload is malformed or from another host.

        Events the adapter ignores (forks, comments, ...) still return True.
        """
        return event_normalizer.can_handle(headers, payload, hostname=self.hostname)

    async def add_webhook(
        self,
        scm_uri: str,
        token: str,
        webhook_url: str,
        actions: list[str] | None = None,
    ) -> TransportResponse:
        return await self.webhooks.add_webhook(scm_uri, token, webhook_url, actions)

    def get_webhook_events_mapping(self) -> dict[str, Any]:
        return webhook_events_mapping()

    # --- Repository ---

    async def decorate_author(self, username: str) -> DecoratedAuthor:
        return await self.repository.decorate_author(username)

    async def decorate_url(self, scm_uri: str) -> DecoratedUrl:
        return await self.repository.decorate_url(scm_uri)

    async def decorate_commit(self, scm_uri: str, sha: str) -> DecoratedCommit:
        return await self.repository.decorate_commit(scm_uri, sha)

    async def get_commit_sha(self, scm_uri: str, pr_num: int | None = None) -> str:
        return await self.repository.get_commit_sha(scm_uri, pr_num)

    async def get_file(self, scm_uri: str, path: str, ref: str | None = None) -> str:
        return await self.repository.get_file(scm_uri, path, ref)

    async def get_changed_files(self, **kwargs: Any) -> None:
        """Always None: Bitbucket cannot list a change's files."""
        return await self.repository.get_changed_files()

    async def get_permissions(self, scm_uri: str, token: str) -> PermissionSet:
        return await self.repository.get_permissions(scm_uri, token)

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
        return await self.repository.update_commit_status(
            scm_uri,
            sha,
            build_status,
            token,
            url=url,
            job_name=job_name,
            pipeline_id=pipeline_id,
        )

    async def get_opened_prs(self, scm_uri: str) -> list[OpenedPr]:
        return await self.repository.get_opened_prs(scm_uri)

    async def get_pr_info(self, scm_uri: str, pr_num: int) -> PrInfo:
        return await self.repository.get_pr_info(scm_uri, pr_num)

    async def get_branch_list(self, scm_uri: str) -> list[Branch]:
        return await self.repository.get_branch_list(scm_uri)

    # --- Checkout ---

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
        return build_checkout_command(
            self.config,
            branch=branch,
            host=host,
            org=org,
            repo=repo,
            sha=sha,
            commit_branch=commit_branch,
            pr_ref=pr_ref,
            parent_config=parent_config,
            root_dir=root_dir,
        )

    # --- Orchestrator metadata ---

    def get_scm_contexts(self) -> list[str]:
        return [f"bitbucket:{self.hostname}"]

    def get_bell_configuration(self) -> dict[str, Any]:
        """OAuth login settings for this SCM context."""
        return BellConfiguration(
            scm_context=self.get_scm_contexts()[0],
            client_id=self.config.oauth_client_id,
            client_secret=self.config.oauth_client_secret.get_secret_value(),
            cookie=f"bitbucket-{self.hostname}",
            is_secure=self.config.https,
        ).to_dict()

    def stats(self) -> dict[str, Any]:
        return {self.get_scm_contexts()[0]: self.transport.stats()}
