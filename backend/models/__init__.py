"""SQLAlchemy ORM models."""

from .store import StoreEntry, StorePartition

__all__ = ["StoreEntry", "StorePartition"]
