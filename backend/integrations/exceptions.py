"""Typed exception hierarchy for the sync agent.

Provides structured exceptions for differentiated error handling
(missing configuration vs rejected credentials vs transient network
errors vs malformed payloads vs local storage failures).
"""


class QuestradeError(Exception):
    """Base exception for every error the agent surfaces to the user."""

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(QuestradeError):
    """Required configuration is missing, e.g. no seed refresh token."""

    pass


class AuthError(QuestradeError):
    """The refresh-token exchange was rejected or returned an unusable token."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class NetworkError(QuestradeError):
    """Transport failure or non-success HTTP status from an upstream call.

    ``status_code`` is ``None`` for transport failures (DNS, connection
    refused, timeouts).
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_unauthorized(self) -> bool:
        """True when the server rejected the access token (HTTP 401)."""
        return self.status_code == 401

    @property
    def retriable(self) -> bool:
        """Transport failures, 429 and 5xx responses are worth re-running."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class ParseError(QuestradeError):
    """Malformed or unparseable response from the upstream API."""

    pass


class StorageError(QuestradeError):
    """Transactional read/write failure in the persistent store."""

    pass


class PartitionNotFoundError(StorageError):
    """A read or write targeted a partition that was never created."""

    def __init__(self, partition: str):
        self.partition = partition
        super().__init__(f"Partition {partition!r} does not exist")


class TokenPersistenceError(StorageError):
    """A token was obtained from the server but could not be saved.

    The previous refresh token has already been invalidated upstream, so
    the freshly issued one only exists in memory.
    """

    pass
