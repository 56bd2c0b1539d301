"""Tests for QueryService."""

from datetime import datetime, timedelta, timezone

import pytest

from schemas.questrade import Activity
from services.activity_service import ActivityService
from services.query_service import ALL_TYPES, TRADES_TYPE
from tests.fixtures.mocks import make_activity_payload

ACCOUNT = "26598145"
DAY = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _seed(store, payloads, account_id=ACCOUNT):
    with store.transaction() as tx:
        ActivityService.merge_activities(
            tx, account_id, [Activity.model_validate(p) for p in payloads]
        )


@pytest.fixture
def mixed_history(store):
    _seed(
        store,
        [
            make_activity_payload(DAY, symbol="AAPL", symbolId=8049),
            make_activity_payload(DAY, symbol="", symbolId=0, activity_type="Deposits", net_amount=5000.0),
            make_activity_payload(DAY + timedelta(days=1), symbol="MSFT", symbolId=27426),
            make_activity_payload(DAY, symbol="VTI", symbolId=8071, activity_type="Dividends", net_amount=12.3),
            make_activity_payload(DAY + timedelta(days=2), symbol="AAPL", symbolId=8049, quantity=-10, net_amount=1600.0),
        ],
    )


class TestListActivities:
    def test_all_returns_everything_in_insertion_order(self, queries, mixed_history):
        activities = queries.list_activities(ACCOUNT)
        assert [a.local_sequence_id for a in activities] == [1, 2, 3, 4, 5]

    def test_all_is_default(self, queries, mixed_history):
        assert queries.list_activities(ACCOUNT) == queries.list_activities(ACCOUNT, ALL_TYPES)

    def test_exact_type_filter(self, queries, mixed_history):
        trades = queries.list_activities(ACCOUNT, TRADES_TYPE)
        assert [a.symbol for a in trades] == ["AAPL", "MSFT", "AAPL"]
        assert [a.type for a in queries.list_activities(ACCOUNT, "Deposits")] == ["Deposits"]

    def test_filter_is_case_sensitive(self, queries, mixed_history):
        assert queries.list_activities(ACCOUNT, "trades") == []
        assert queries.list_activities(ACCOUNT, "ALL") == []

    def test_filtered_is_subset_of_all(self, queries, mixed_history):
        everything = queries.list_activities(ACCOUNT)
        for type_filter in ("Trades", "Deposits", "Dividends", "Withdrawals"):
            filtered = queries.list_activities(ACCOUNT, type_filter)
            assert all(a in everything for a in filtered)
            assert all(a.type == type_filter for a in filtered)

    def test_unsynced_account_is_empty(self, queries, fake_questrade):
        assert queries.list_activities("NEVER-SYNCED") == []
        assert fake_questrade.requests == []


class TestDistinctSymbols:
    def test_symbols_from_trades_only(self, queries, mixed_history):
        assert queries.distinct_symbols(ACCOUNT) == {"AAPL": 8049, "MSFT": 27426}

    def test_last_symbol_id_wins(self, queries, store):
        _seed(
            store,
            [
                make_activity_payload(DAY, symbol="BRK.B", symbolId=1),
                make_activity_payload(DAY + timedelta(days=1), symbol="BRK.B", symbolId=2),
            ],
        )
        assert queries.distinct_symbols(ACCOUNT) == {"BRK.B": 2}

    def test_no_trades(self, queries, store):
        _seed(store, [make_activity_payload(DAY, activity_type="Deposits")])
        assert queries.distinct_symbols(ACCOUNT) == {}

    def test_unsynced_account(self, queries):
        assert queries.distinct_symbols("NEVER-SYNCED") == {}
