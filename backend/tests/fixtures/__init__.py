"""Test fixtures and sample data."""

from datetime import timedelta

import pytest

from integrations.questrade_client import QuestradeClient
from services.account_registry import AccountRegistry
from services.credential_manager import CredentialManager
from services.persistent_store import PersistentStore
from services.query_service import QueryService
from services.sync_service import ActivitySyncEngine
from tests.fixtures.mocks import LOGIN_URL, SEED_REFRESH_TOKEN, FakeQuestrade, FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    """A clock frozen at a fixed instant."""
    return FrozenClock()


@pytest.fixture
def fake_questrade() -> FakeQuestrade:
    """An empty fake upstream; tests fill in accounts and activities."""
    return FakeQuestrade()


@pytest.fixture
def questrade_client(fake_questrade: FakeQuestrade):
    """A QuestradeClient talking to the fake upstream."""
    client = QuestradeClient(login_url=LOGIN_URL, http_client=fake_questrade.http_client())
    yield client
    client.close()


@pytest.fixture
def credentials(store: PersistentStore, questrade_client: QuestradeClient, clock) -> CredentialManager:
    """A CredentialManager seeded with the fake's seed refresh token."""
    return CredentialManager(
        store,
        questrade_client,
        seed_refresh_token=SEED_REFRESH_TOKEN,
        always_rotate=False,
        expiry_margin=timedelta(seconds=60),
        clock=clock,
    )


@pytest.fixture
def registry(store, questrade_client, credentials) -> AccountRegistry:
    return AccountRegistry(store, questrade_client, credentials)


@pytest.fixture
def sync_engine(store, questrade_client, credentials, registry, clock) -> ActivitySyncEngine:
    """A sync engine with 30-day windows and a 900-day horizon."""
    return ActivitySyncEngine(
        store,
        questrade_client,
        credentials,
        registry,
        window_days=30,
        horizon_days=900,
        clock=clock,
    )


@pytest.fixture
def queries(store) -> QueryService:
    return QueryService(store)
