"""Bitbucket Cloud SCM adapter for CI/CD orchestrators."""

from bitbucket_scm.config import BitbucketScmConfig
from bitbucket_scm.scm import BitbucketScm

__all__ = ["BitbucketScm", "BitbucketScmConfig"]
