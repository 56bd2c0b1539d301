"""Sync service - walks account activity history back in bounded windows.

The activities endpoint refuses ranges longer than about a month, so the
history is fetched window by window, newest first, and merged into the
account's activity partition as it arrives.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import ValidationError

from config import settings
from integrations.exceptions import StorageError
from integrations.parsing_utils import utcnow
from integrations.questrade_client import QuestradeClient
from schemas.questrade import Activity, SyncCursor
from services.account_registry import AccountRegistry
from services.activity_service import ActivityService
from services.credential_manager import CredentialManager
from services.persistent_store import SYNC_STATE_PARTITION, PersistentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncWindow:
    """A closed ``[start, end]`` range passed to one activities request."""

    start: datetime
    end: datetime


@dataclass
class SyncResult:
    """Summary of one account's sync run."""

    account_id: str
    windows_fetched: int = 0
    activities_received: int = 0
    activities_inserted: int = 0
    duplicates_skipped: int = 0
    resumed: bool = False


def window_count(window_days: int, horizon_days: int) -> int:
    """Number of windows needed to reach ``horizon_days`` back, plus one."""
    return math.ceil(horizon_days / window_days) + 1


def plan_windows(anchor: datetime, window_days: int, horizon_days: int) -> list[SyncWindow]:
    """Plan the backward walk from ``anchor``.

    Window ``i`` covers ``[anchor - (i+1)*W, anchor - i*W]``.  Each step
    moves back exactly one window width, so adjacent windows share their
    boundary instant and no time is skipped.  Activities on a shared
    boundary may come back twice; the merge drops the repeat.

    Args:
        anchor: Where the walk starts (normally "now").
        window_days: Width of each window in days.
        horizon_days: How far back the walk must reach at minimum.

    Returns:
        ``ceil(horizon_days / window_days) + 1`` windows, newest first.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")
    width = timedelta(days=window_days)
    return [
        SyncWindow(start=anchor - (i + 1) * width, end=anchor - i * width)
        for i in range(window_count(window_days, horizon_days))
    ]


class ActivitySyncEngine:
    """Service for syncing account activity history into the store.

    Progress is recorded in a per-account cursor that is committed in the
    same transaction as each window's activities.  If a run is interrupted,
    the next run first fetches the time elapsed since the plan's anchor and
    then picks up at the first unfinished window of the same plan.  A
    cursor older than one window is discarded and the walk starts over.
    """

    def __init__(
        self,
        store: PersistentStore,
        client: QuestradeClient,
        credentials: CredentialManager,
        accounts: AccountRegistry,
        *,
        window_days: int | None = None,
        horizon_days: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the engine.

        Args:
            store: Store receiving the activities.
            client: Questrade client for the activities endpoint.
            credentials: Owner of the live token.
            accounts: Registry used by :meth:`sync_all`.
            window_days: Width of each request window (defaults to settings).
            horizon_days: How far back to backfill (defaults to settings).
            clock: Returns the current UTC time.
        """
        self._store = store
        self._client = client
        self._credentials = credentials
        self._accounts = accounts
        self.window_days = window_days or settings.SYNC_WINDOW_DAYS
        self.horizon_days = settings.SYNC_HORIZON_DAYS if horizon_days is None else horizon_days
        self._clock = clock

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def load_cursor(self, account_id: str) -> SyncCursor | None:
        """Return the cursor of an interrupted run, if any."""
        self._store.ensure_partition(SYNC_STATE_PARTITION)
        raw = self._store.get(SYNC_STATE_PARTITION, account_id)
        if raw is None:
            return None
        try:
            return SyncCursor.from_bytes(raw)
        except ValidationError as exc:
            raise StorageError(f"Sync cursor for {account_id} is unreadable: {exc}") from exc

    def _cursor_matches(self, cursor: SyncCursor) -> bool:
        return (
            cursor.window_days == self.window_days
            and cursor.horizon_days == self.horizon_days
        )

    def _start_cursor(self, account_id: str, resume: bool) -> tuple[SyncCursor, bool]:
        cursor = self.load_cursor(account_id)
        now = self._clock()
        if cursor is not None and resume and self._cursor_matches(cursor):
            # The gap since the anchor must fit in a single catch-up request.
            if now - cursor.anchor <= timedelta(days=cursor.window_days):
                logger.info(
                    "Resuming activity sync for %s at window %d (anchor %s)",
                    account_id, cursor.windows_completed + 1, cursor.anchor.isoformat(),
                )
                return cursor, True
            logger.info(
                "Sync cursor for %s is older than one window (anchor %s)",
                account_id, cursor.anchor.isoformat(),
            )

        if cursor is not None:
            logger.info("Discarding previous sync cursor for %s", account_id)
        return (
            SyncCursor(
                account_id=account_id,
                anchor=now,
                window_days=self.window_days,
                horizon_days=self.horizon_days,
                windows_completed=0,
                updated_at=now,
            ),
            False,
        )

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _fetch_window(self, account_id: str, window: SyncWindow) -> list[Activity]:
        return self._credentials.call_with_token(
            lambda token: self._client.get_activities(
                token, account_id, window.start, window.end
            )
        )

    def _merge_window(
        self,
        account_id: str,
        activities: list[Activity],
        result: SyncResult,
        cursor: SyncCursor | None = None,
    ) -> None:
        """Merge one window, committing ``cursor`` in the same transaction."""
        with self._store.transaction() as tx:
            merged = ActivityService.merge_activities(tx, account_id, activities)
            if cursor is not None:
                tx.ensure_partition(SYNC_STATE_PARTITION)
                tx.put(SYNC_STATE_PARTITION, account_id, cursor.to_bytes())

        result.windows_fetched += 1
        result.activities_received += merged.received
        result.activities_inserted += merged.inserted
        result.duplicates_skipped += merged.duplicates

    def sync_account(self, account_id: str, resume: bool = True) -> SyncResult:
        """Backfill one account's activity history.

        A failed request aborts the run; windows already merged stay
        merged and the cursor records where to pick up.

        Args:
            account_id: Account number to sync.
            resume: Continue an interrupted run if one is recorded.
                ``False`` discards it and starts again from now.

        Raises:
            NetworkError, AuthError, ParseError: An upstream call failed.
            StorageError: The store could not be read or written.
        """
        cursor, resumed = self._start_cursor(account_id, resume)
        windows = plan_windows(cursor.anchor, cursor.window_days, cursor.horizon_days)
        result = SyncResult(account_id=account_id, resumed=resumed)

        now = self._clock()
        if resumed and now > cursor.anchor:
            # Activity since the interrupted run started is outside its plan.
            gap = SyncWindow(start=cursor.anchor, end=now)
            logger.info("Catching up %s from %s", account_id, cursor.anchor.isoformat())
            self._merge_window(account_id, self._fetch_window(account_id, gap), result)

        logger.info(
            "Requesting activities for %s (%d of %d windows remaining)",
            account_id, len(windows) - cursor.windows_completed, len(windows),
        )
        for index in range(cursor.windows_completed, len(windows)):
            window = windows[index]
            activities = self._fetch_window(account_id, window)
            cursor = cursor.model_copy(
                update={"windows_completed": index + 1, "updated_at": self._clock()}
            )
            self._merge_window(account_id, activities, result, cursor)

        self._store.delete(SYNC_STATE_PARTITION, account_id)
        logger.info(
            "Activity sync for %s done: %d windows, %d received, %d new, %d duplicates",
            account_id,
            result.windows_fetched,
            result.activities_received,
            result.activities_inserted,
            result.duplicates_skipped,
        )
        return result

    def sync_all(self, resume: bool = True) -> list[SyncResult]:
        """Sync every stored account in account-number order.

        Stops at the first failing account; later accounts are not tried.
        """
        results = []
        for account in self._accounts.list():
            results.append(self.sync_account(account.number, resume=resume))
        return results
