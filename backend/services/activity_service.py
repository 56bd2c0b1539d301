"""Activity service - handles persisting and deduplicating activities."""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple

from pydantic import ValidationError

from integrations.exceptions import StorageError
from schemas.questrade import Activity
from services.persistent_store import StoreTransaction, activities_partition, sequence_key

logger = logging.getLogger(__name__)


class ActivityIdentity(NamedTuple):
    """Natural identity of an activity.

    Questrade exposes no stable activity id, so records are matched on
    what the brokerage reports about them.
    """

    trade_date: datetime | None
    symbol: str
    quantity: Decimal
    net_amount: Decimal


@dataclass
class MergeResult:
    """Outcome of merging one upstream response into the store."""

    received: int = 0
    inserted: int = 0
    duplicates: int = 0


def decode_activity(key: str, raw: bytes) -> Activity:
    """Decode a stored activity, reporting corruption as a storage failure."""
    try:
        return Activity.from_bytes(raw)
    except ValidationError as exc:
        raise StorageError(f"Stored activity {key} is unreadable: {exc}") from exc


class ActivityService:
    """Service for merging upstream activities into an account partition.

    Records are keyed by the partition's sequence counter, so two distinct
    activities can never overwrite each other.  Duplicates are dropped on
    the way in by counting identities: a response may only add as many
    records with a given identity as exceed what is already stored.  This
    makes re-fetching a window (or an activity reported by two adjacent
    windows) a no-op, while identical activities reported together in one
    response are all kept.
    """

    @staticmethod
    def identity(activity: Activity) -> ActivityIdentity:
        return ActivityIdentity(
            trade_date=activity.trade_date,
            symbol=activity.symbol,
            quantity=activity.quantity,
            net_amount=activity.net_amount,
        )

    @staticmethod
    def merge_activities(
        tx: StoreTransaction,
        account_id: str,
        activities: list[Activity],
    ) -> MergeResult:
        """Insert the activities that are not already stored.

        Runs inside the caller's transaction so the merge can be committed
        together with other bookkeeping (e.g. the sync cursor).

        Args:
            tx: Open store transaction.
            account_id: Account the activities belong to.
            activities: One upstream response, in upstream order.

        Returns:
            Counts of received, inserted and skipped records.
        """
        partition = activities_partition(account_id)
        tx.ensure_partition(partition)

        result = MergeResult(received=len(activities))
        if not activities:
            return result

        stored = Counter(
            ActivityService.identity(decode_activity(key, raw))
            for key, raw in tx.iterate(partition)
        )
        seen: Counter[ActivityIdentity] = Counter()

        for activity in activities:
            identity = ActivityService.identity(activity)
            seen[identity] += 1
            if seen[identity] <= stored[identity]:
                result.duplicates += 1
                continue

            sequence = tx.next_sequence(partition)
            record = activity.model_copy(update={"local_sequence_id": sequence})
            tx.put(partition, sequence_key(sequence), record.to_bytes())
            result.inserted += 1

        if result.inserted or result.duplicates:
            logger.info(
                "Activities for %s: %d new, %d duplicates skipped",
                account_id, result.inserted, result.duplicates,
            )
        return result
