"""
Exception hierarchy for the Bitbucket SCM adapter.

Every error carries the HTTP status code the orchestrator should surface.
Provider failures keep the status Bitbucket returned.
"""

from typing import Any


class ScmError(Exception):
    """Base exception for adapter operations."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


# --- Caller input ---


class InvalidUrlError(ScmError):
    """The checkout URL does not match the checkout URL grammar."""

    status_code = 400

    def __init__(self, checkout_url: str) -> None:
        self.checkout_url = checkout_url
        super().__init__(f"Invalid scmUrl: {checkout_url}")


class UnsupportedHostError(ScmError):
    """The checkout URL points at a host other than the configured one."""

    status_code = 400

    def __init__(self, hostname: str) -> None:
        self.hostname = hostname
        super().__init__("This checkoutUrl is not supported for your current login host.")


class InvalidWebhookPayloadError(ScmError):
    """The webhook payload lacks the fields needed to normalize it."""

    status_code = 400


class HostMismatchError(ScmError):
    """The webhook payload belongs to a repository on another host."""

    status_code = 400

    def __init__(self, checkout_url: str) -> None:
        self.checkout_url = checkout_url
        super().__init__(f"Incorrect checkout SshHost: {checkout_url}")


class UnknownBuildStatusError(ScmError):
    """The build status has no Bitbucket commit-status equivalent."""

    status_code = 400

    def __init__(self, build_status: str) -> None:
        self.build_status = build_status
        super().__init__(f"Unknown build status: {build_status}")


# --- Transport ---


class HttpError(ScmError):
    """Bitbucket answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, body: Any = None) -> None:
        self.body = body
        super().__init__(message, status_code=status_code)


class TransportError(ScmError):
    """The request never produced an HTTP response (DNS, connect, timeout)."""

    status_code = 502


class CircuitOpenError(ScmError):
    """Calls are short-circuited while the breaker is open."""

    status_code = 503

    def __init__(self) -> None:
        super().__init__("Bitbucket circuit breaker is open")
