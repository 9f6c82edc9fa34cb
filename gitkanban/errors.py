"""
Exception types shared by the client, the commit pipeline and the store.
"""
from typing import Optional


class GitKanbanError(Exception):
    """Base class for all gitkanban errors."""
    pass


class ConfigError(GitKanbanError):
    """Raised when configuration is invalid or incomplete."""
    pass


class GitHubApiError(GitKanbanError):
    """A non-success or malformed response from the GitHub API.

    ``status`` is the HTTP status when one was received, ``None`` for
    transport failures (connection refused, read timeout).
    """

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"(status {self.status})")
        if self.details:
            parts.append(f": {self.details}")
        return " ".join(parts)


class ConflictError(GitKanbanError):
    """The branch moved between observation and write."""

    def __init__(self, message: str = "Concurrent modification detected",
                 expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.actual = actual


class DeadlineExceeded(GitKanbanError):
    """The per-transaction deadline ran out before a remote call."""
    pass


class ValidationError(GitKanbanError):
    """Input failed validation. ``kind`` is the result tag reported to callers."""

    def __init__(self, message: str, kind: str = "validation_error", field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.field = field


class BoardNotFoundError(GitKanbanError):
    """A board's metadata file is missing where one is required."""
    pass


class BoardExistsError(GitKanbanError):
    """A board with the requested id already exists."""
    pass
