"""External API integrations.

This package contains:
- Questrade client: OAuth refresh-token grant, accounts and activities
- Exceptions: the agent's typed error hierarchy
- Parsing utilities: shared timestamp helpers
"""

from integrations.exceptions import (
    AuthError,
    ConfigError,
    NetworkError,
    ParseError,
    QuestradeError,
    StorageError,
)
from integrations.questrade_client import QuestradeClient

__all__ = [
    "AuthError",
    "ConfigError",
    "NetworkError",
    "ParseError",
    "QuestradeClient",
    "QuestradeError",
    "StorageError",
]
