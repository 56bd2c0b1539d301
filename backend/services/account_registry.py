"""Account registry - mirrors the upstream account list into the store."""

import logging

from pydantic import ValidationError

from integrations.exceptions import StorageError
from integrations.questrade_client import QuestradeClient
from schemas.questrade import Account
from services.credential_manager import CredentialManager
from services.persistent_store import ACCOUNTS_PARTITION, PersistentStore

logger = logging.getLogger(__name__)


def _decode_account(key: str, raw: bytes) -> Account:
    try:
        return Account.from_bytes(raw)
    except ValidationError as exc:
        raise StorageError(f"Stored account {key} is unreadable: {exc}") from exc


class AccountRegistry:
    """Service for fetching and listing brokerage accounts.

    Accounts are upserted by number and never deleted locally; an account
    closed upstream simply stops being refreshed.
    """

    def __init__(
        self,
        store: PersistentStore,
        client: QuestradeClient,
        credentials: CredentialManager,
    ):
        self._store = store
        self._client = client
        self._credentials = credentials

    def fetch_and_persist(self) -> list[Account]:
        """Fetch all accounts upstream and overwrite their stored records.

        Returns:
            The fetched accounts, sorted by account number.

        Raises:
            NetworkError, AuthError, ParseError: The upstream call failed.
            StorageError: The accounts could not be saved.
        """
        logger.info("Requesting accounts")
        response = self._credentials.call_with_token(self._client.get_accounts)

        with self._store.transaction() as tx:
            tx.ensure_partition(ACCOUNTS_PARTITION)
            for account in response.accounts:
                tx.put(ACCOUNTS_PARTITION, account.number, account.to_bytes())

        logger.info("Saved %d accounts", len(response.accounts))
        return sorted(response.accounts, key=lambda a: a.number)

    def list(self) -> list[Account]:
        """Return stored accounts in account-number order. No network call."""
        if not self._store.has_partition(ACCOUNTS_PARTITION):
            return []
        return [
            _decode_account(key, raw)
            for key, raw in self._store.iterate(ACCOUNTS_PARTITION)
        ]

    def get(self, number: str) -> Account | None:
        """Return one stored account, or ``None`` if it was never fetched."""
        if not self._store.has_partition(ACCOUNTS_PARTITION):
            return None
        raw = self._store.get(ACCOUNTS_PARTITION, number)
        if raw is None:
            return None
        return _decode_account(number, raw)
