"""Partitioned key-value store backed by the SQLAlchemy database.

Every mutation runs inside a transaction that is committed as a whole or
rolled back as a whole.  Partitions are created lazily and idempotently.

Partition layout:
- ``ROOT``: the single live OAuth token under ``TOKEN``
- ``ACCOUNTS``: one entry per account, keyed by account number
- ``ACTIVITIES-{accountID}``: one partition per account, sequence-keyed
- ``SYNC-STATE``: in-progress sync cursors, keyed by account id
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from integrations.exceptions import PartitionNotFoundError, StorageError
from models import StoreEntry, StorePartition

logger = logging.getLogger(__name__)

ROOT_PARTITION = "ROOT"
ACCOUNTS_PARTITION = "ACCOUNTS"
SYNC_STATE_PARTITION = "SYNC-STATE"
TOKEN_KEY = "TOKEN"

FIXED_PARTITIONS = (ROOT_PARTITION, ACCOUNTS_PARTITION, SYNC_STATE_PARTITION)

# Wide enough for any 64-bit counter, so string order matches numeric order.
_SEQUENCE_KEY_WIDTH = 20


def activities_partition(account_id: str) -> str:
    """Return the partition name holding an account's activities."""
    return f"ACTIVITIES-{account_id}"


def sequence_key(sequence: int) -> str:
    """Render a sequence number as a key that sorts numerically."""
    return f"{sequence:0{_SEQUENCE_KEY_WIDTH}d}"


class StoreTransaction:
    """Store operations bound to one open database session.

    Obtained from :meth:`PersistentStore.transaction`; never commits on
    its own.
    """

    def __init__(self, session: Session):
        self._session = session

    def _get_partition(self, name: str) -> StorePartition | None:
        return self._session.get(StorePartition, name)

    def _require_partition(self, name: str) -> StorePartition:
        partition = self._get_partition(name)
        if partition is None:
            raise PartitionNotFoundError(name)
        return partition

    def ensure_partition(self, name: str) -> None:
        """Create the partition if it does not exist yet."""
        if self._get_partition(name) is not None:
            return
        self._session.add(StorePartition(name=name, sequence=0))
        self._session.flush()
        logger.debug("Created partition %s", name)

    def has_partition(self, name: str) -> bool:
        return self._get_partition(name) is not None

    def get(self, partition: str, key: str) -> bytes | None:
        """Return the value stored under ``key``, or ``None`` if absent."""
        self._require_partition(partition)
        entry = self._session.get(StoreEntry, (partition, key))
        if entry is None:
            return None
        return entry.value

    def put(self, partition: str, key: str, value: bytes) -> None:
        """Insert or overwrite the value stored under ``key``."""
        if not isinstance(value, bytes):
            raise TypeError(f"Store values must be bytes, got {type(value).__name__}")
        self._require_partition(partition)
        entry = self._session.get(StoreEntry, (partition, key))
        if entry is None:
            self._session.add(StoreEntry(partition_name=partition, key=key, value=value))
        else:
            entry.value = value
        self._session.flush()

    def delete(self, partition: str, key: str) -> bool:
        """Remove ``key``. Returns ``False`` if there was nothing to remove."""
        self._require_partition(partition)
        entry = self._session.get(StoreEntry, (partition, key))
        if entry is None:
            return False
        self._session.delete(entry)
        self._session.flush()
        return True

    def iterate(self, partition: str) -> list[tuple[str, bytes]]:
        """Return every ``(key, value)`` pair in the partition, in key order."""
        self._require_partition(partition)
        rows = self._session.execute(
            select(StoreEntry.key, StoreEntry.value)
            .where(StoreEntry.partition_name == partition)
            .order_by(StoreEntry.key)
        ).all()
        return [(row.key, row.value) for row in rows]

    def next_sequence(self, partition: str) -> int:
        """Advance and return the partition's sequence counter."""
        record = self._require_partition(partition)
        record.sequence = (record.sequence or 0) + 1
        self._session.flush()
        return record.sequence


class PersistentStore:
    """Transactional, partitioned key-value store.

    The single-operation helpers each run in their own transaction; use
    :meth:`transaction` to group several operations atomically.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize with a session factory.

        Args:
            session_factory: Zero-argument callable returning a new
                SQLAlchemy session, e.g. a ``sessionmaker``.
        """
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Open an all-or-nothing transaction.

        Commits when the block exits normally and rolls back when it
        raises.  Database failures surface as :class:`StorageError`;
        any other exception is re-raised unchanged after the rollback.
        """
        session = self._session_factory()
        try:
            yield StoreTransaction(session)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Store transaction failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def initialize(self) -> None:
        """Create the fixed partitions (ROOT, ACCOUNTS, SYNC-STATE)."""
        with self.transaction() as tx:
            for name in FIXED_PARTITIONS:
                tx.ensure_partition(name)
        logger.debug("Store initialized")

    def ensure_partition(self, name: str) -> None:
        with self.transaction() as tx:
            tx.ensure_partition(name)

    def has_partition(self, name: str) -> bool:
        with self.transaction() as tx:
            return tx.has_partition(name)

    def get(self, partition: str, key: str) -> bytes | None:
        with self.transaction() as tx:
            return tx.get(partition, key)

    def put(self, partition: str, key: str, value: bytes) -> None:
        with self.transaction() as tx:
            tx.put(partition, key, value)

    def delete(self, partition: str, key: str) -> bool:
        with self.transaction() as tx:
            return tx.delete(partition, key)

    def iterate(self, partition: str) -> list[tuple[str, bytes]]:
        with self.transaction() as tx:
            return tx.iterate(partition)

    def next_sequence(self, partition: str) -> int:
        with self.transaction() as tx:
            return tx.next_sequence(partition)
