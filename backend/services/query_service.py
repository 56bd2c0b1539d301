"""Read-only queries over already-synced activities. No network access."""

import logging

from schemas.questrade import Activity
from services.activity_service import decode_activity
from services.persistent_store import PersistentStore, activities_partition

logger = logging.getLogger(__name__)

ALL_TYPES = "all"
TRADES_TYPE = "Trades"


class QueryService:
    """Service for listing stored activities and traded symbols."""

    def __init__(self, store: PersistentStore):
        self._store = store

    def list_activities(self, account_id: str, type_filter: str = ALL_TYPES) -> list[Activity]:
        """Return stored activities for an account, oldest insertion first.

        Args:
            account_id: Account number.
            type_filter: ``"all"`` for everything, otherwise an exact,
                case-sensitive match on the activity ``type``.

        Returns:
            Matching activities; empty if the account was never synced.

        Raises:
            StorageError: The store could not be read.
        """
        partition = activities_partition(account_id)
        if not self._store.has_partition(partition):
            logger.info("No activities stored for account %s", account_id)
            return []

        activities = []
        for key, raw in self._store.iterate(partition):
            activity = decode_activity(key, raw)
            if type_filter == ALL_TYPES or activity.type == type_filter:
                activities.append(activity)

        logger.debug("Found %d activities for %s (type=%s)", len(activities), account_id, type_filter)
        return activities

    def distinct_symbols(self, account_id: str) -> dict[str, int]:
        """Map every symbol ever traded in the account to its symbol id.

        When a symbol appears with several ids, the last stored one wins.
        """
        symbols: dict[str, int] = {}
        for trade in self.list_activities(account_id, TRADES_TYPE):
            symbols[trade.symbol] = trade.symbol_id
        return symbols
