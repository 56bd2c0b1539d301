"""Owner of the single live Questrade OAuth token.

Questrade issues a new refresh token with every exchange and invalidates
the one that was used, so the store must always hold the latest token.
A token that was exchanged but never saved is lost on the next start.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TypeVar

from pydantic import ValidationError

from config import settings
from integrations.exceptions import ConfigError, NetworkError, StorageError, TokenPersistenceError
from integrations.parsing_utils import utcnow
from integrations.questrade_client import QuestradeClient
from schemas.questrade import Token
from services.persistent_store import ROOT_PARTITION, TOKEN_KEY, PersistentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CredentialManager:
    """Loads, rotates and persists the OAuth token.

    One instance exclusively owns the current token and is injected into
    every component that makes authenticated calls.
    """

    def __init__(
        self,
        store: PersistentStore,
        client: QuestradeClient,
        seed_refresh_token: str | None = None,
        *,
        always_rotate: bool | None = None,
        expiry_margin: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the manager.

        Args:
            store: Store holding the token under ``ROOT/TOKEN``.
            client: Questrade client used for the refresh-token grant.
            seed_refresh_token: Refresh token used only when no token has
                been stored yet (defaults to settings).
            always_rotate: Exchange the stored token on every start even
                if it is still valid (defaults to settings).
            expiry_margin: Treat a token as expired this long before its
                actual expiry (defaults to settings).
            clock: Returns the current UTC time.
        """
        self._store = store
        self._client = client
        self._seed_refresh_token = (
            settings.QUESTRADE_REFRESH_TOKEN if seed_refresh_token is None else seed_refresh_token
        )
        self._always_rotate = (
            settings.ALWAYS_ROTATE_TOKEN if always_rotate is None else always_rotate
        )
        self._expiry_margin = (
            timedelta(seconds=settings.TOKEN_EXPIRY_MARGIN_SECONDS)
            if expiry_margin is None
            else expiry_margin
        )
        self._clock = clock
        self._token: Token | None = None
        # Each exchange burns the refresh token it used, so reading the
        # current token, deciding and exchanging happen under one lock.
        self._lock = threading.RLock()

    @property
    def token(self) -> Token | None:
        """The live token, or ``None`` before the first load/exchange."""
        return self._token

    def is_token_valid(self, token: Token) -> bool:
        return token.is_valid_at(self._clock(), self._expiry_margin)

    def load_token(self) -> Token | None:
        """Read the stored token, or ``None`` if nothing has been stored.

        Raises:
            StorageError: The store could not be read or the stored
                value is not a token.
        """
        raw = self._store.get(ROOT_PARTITION, TOKEN_KEY)
        if raw is None:
            return None
        try:
            return Token.from_bytes(raw)
        except ValidationError as exc:
            raise StorageError(f"Stored token is unreadable: {exc}") from exc

    def exchange(self, refresh_token: str) -> Token:
        """Exchange ``refresh_token`` for a new token and persist it.

        The new token is saved before it is returned or adopted as the
        live token.

        Raises:
            AuthError: The server rejected the refresh token or answered
                with an unparsable payload.
            NetworkError: The exchange request never got a response.
            TokenPersistenceError: The exchange succeeded but the new token
                could not be saved.
        """
        with self._lock:
            logger.info("Requesting new token")
            issued = self._client.exchange_refresh_token(refresh_token)
            token = issued.model_copy(update={"refreshed_at": self._clock()})
            try:
                self._store.put(ROOT_PARTITION, TOKEN_KEY, token.to_bytes())
            except StorageError as exc:
                logger.error(
                    "Token exchange succeeded but the new token could not be saved"
                )
                raise TokenPersistenceError(
                    f"Obtained a new token but could not save it: {exc}"
                ) from exc
            self._token = token
            logger.info("Saved new token (expires in %ds)", token.expires_in)
            return token

    def bootstrap_or_rotate(self, force: bool = False) -> Token:
        """Load the stored token, rotating or bootstrapping as needed.

        - No stored token: exchange the seed refresh token.
        - Stored token, ``force`` or ``always_rotate`` set, or the token
          expired: exchange the stored refresh token.
        - Otherwise adopt the stored token without a network call.

        Raises:
            ConfigError: No stored token and no seed refresh token.
            AuthError, NetworkError, TokenPersistenceError: See :meth:`exchange`.
        """
        with self._lock:
            stored = self.load_token()
            if stored is None:
                if not self._seed_refresh_token:
                    raise ConfigError(
                        "No token saved in the store and no QUESTRADE_REFRESH_TOKEN set. "
                        "Run 'python -m scripts.setup_questrade' or export the variable."
                    )
                logger.info("No stored token, bootstrapping from seed refresh token")
                return self.exchange(self._seed_refresh_token)

            if force or self._always_rotate:
                return self.exchange(stored.refresh_token)

            if not self.is_token_valid(stored):
                logger.info("Stored token expired, rotating")
                return self.exchange(stored.refresh_token)

            logger.debug("Stored token still valid until %s", stored.expires_at)
            self._token = stored
            return stored

    def ensure_valid_token(self) -> Token:
        """Return a usable token, touching the store/network only if needed."""
        with self._lock:
            if self._token is not None and self.is_token_valid(self._token):
                return self._token
            return self.bootstrap_or_rotate()

    def rotate(self, rejected: Token | None = None) -> Token:
        """Exchange the live token's refresh token unconditionally.

        When ``rejected`` is given and another caller has already replaced
        that token, the replacement is returned instead of rotating again.
        """
        with self._lock:
            current = self._token or self.load_token()
            if current is None:
                return self.bootstrap_or_rotate()
            if rejected is not None and current.access_token != rejected.access_token:
                return current
            return self.exchange(current.refresh_token)

    def call_with_token(self, fn: Callable[[Token], T]) -> T:
        """Run an authenticated call, rotating once if it gets a 401.

        The access token can be revoked before its nominal expiry (e.g.
        after a login elsewhere); one rotation and retry covers that.
        """
        token = self.ensure_valid_token()
        try:
            return fn(token)
        except NetworkError as exc:
            if not exc.is_unauthorized:
                raise
            logger.warning("Access token rejected, rotating and retrying once")
        return fn(self.rotate(rejected=token))
