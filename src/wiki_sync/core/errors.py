"""Exception taxonomy shared by the sync engine and its collaborators.

A conflicting merge is an outcome recorded as data (``needs_review``)
and has no exception type.
"""

from __future__ import annotations


class WikiSyncError(Exception):
    """Base class for all wiki-sync errors."""


class ConfigurationError(WikiSyncError):
    """Required configuration (token, model, repository URL) is missing or invalid."""


class SourceError(WikiSyncError):
    """A request to the source provider failed.

    Attributes:
        status_code: HTTP status of the failed response, or ``None`` for
            transport-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMError(WikiSyncError):
    """The completion service returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
