"""Exception hierarchy for GitHub access and dependency analysis."""

from __future__ import annotations

from typing import Optional


class SfGraphError(Exception):
    """Base class for all sfgraph errors."""


class GitHubAPIError(SfGraphError):
    """Non-successful GitHub response that is not handled more specifically."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class AuthenticationError(GitHubAPIError):
    """No token available, or GitHub rejected it."""


class NotFoundError(GitHubAPIError):
    """The requested path does not exist (HTTP 404)."""


class RateLimitError(GitHubAPIError):
    """Still rate limited (HTTP 403) after the single delayed retry."""


class TransientNetworkError(GitHubAPIError):
    """Timeouts or connection failures that outlived every retry."""


class TargetFileNotFoundError(SfGraphError):
    """The file chosen for analysis could not be fetched."""


# Failures that abort a whole analysis instead of being treated as "file absent".
FATAL_ERRORS = (AuthenticationError, RateLimitError, TransientNetworkError)


def is_fatal(exc: BaseException) -> bool:
    return isinstance(exc, FATAL_ERRORS)
