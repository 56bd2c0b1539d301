"""Key-value store models - partitions and their entries."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, LargeBinary, String
from sqlalchemy.orm import relationship

from database import Base


class StorePartition(Base):
    """A named, independently keyed region of the store.

    Carries the partition's sequence counter. The counter only ever
    increases, so sequence numbers handed out by a partition are unique
    for the life of the database.
    """

    __tablename__ = "store_partitions"

    name = Column(String, primary_key=True)
    sequence = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    entries = relationship(
        "StoreEntry", back_populates="partition", cascade="all, delete-orphan"
    )


class StoreEntry(Base):
    """A single key/value pair inside a partition.

    Values are opaque bytes; callers decide the encoding.
    """

    __tablename__ = "store_entries"

    partition_name = Column(
        String,
        ForeignKey("store_partitions.name", ondelete="CASCADE"),
        primary_key=True,
    )
    key = Column(String, primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    partition = relationship("StorePartition", back_populates="entries")
