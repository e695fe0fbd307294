class RemoteServiceError(Exception):
    """Any failure while talking to the music catalog service."""


class RateLimited(RemoteServiceError):
    """Operation was rate limited by the catalog. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class TemporaryFailure(RemoteServiceError):
    """Transient catalog or network failure. Retrying may succeed."""


class PermanentFailure(RemoteServiceError):
    """Non-retriable failure due to invalid input or authorization issues."""


class NotFound(RemoteServiceError):
    """Requested resource was not found."""


class ConfigurationError(Exception):
    """Invalid or missing configuration. Fatal to startup and to a crawl."""


class EmptyResultError(ConfigurationError):
    """A listing that must not be empty (e.g. followed artists) came back empty."""


class CacheCommitError(Exception):
    """Persisting dedup records failed."""
