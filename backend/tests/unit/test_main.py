"""Tests for the command-line interface."""

import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from integrations.exceptions import StorageError
from main import Agent, build_agent, build_parser, main
from services.persistent_store import ROOT_PARTITION, TOKEN_KEY
from tests.fixtures.mocks import FROZEN_NOW, make_account_payload, make_activity_payload

ACCOUNT = "26598145"


@pytest.fixture
def agent(store, questrade_client, credentials, registry, sync_engine, queries) -> Agent:
    return Agent(
        store=store,
        client=questrade_client,
        credentials=credentials,
        accounts=registry,
        sync=sync_engine,
        queries=queries,
    )


@pytest.fixture
def with_history(fake_questrade):
    fake_questrade.accounts = [make_account_payload(ACCOUNT), make_account_payload("26598146")]
    fake_questrade.activities[ACCOUNT] = [
        make_activity_payload(FROZEN_NOW - timedelta(days=3), symbol="AAPL", symbolId=8049),
        make_activity_payload(FROZEN_NOW - timedelta(days=40), symbol="MSFT", symbolId=27426),
        make_activity_payload(
            FROZEN_NOW - timedelta(days=10), symbol="", activity_type="Deposits", net_amount=1000.0
        ),
    ]
    return fake_questrade


class TestParser:
    def test_requires_a_command(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args([])
        assert exc_info.value.code == 2

    def test_sync_activities_requires_account(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["sync-activities"])
        assert exc_info.value.code == 2

    def test_list_activities_type_defaults_to_all(self):
        args = build_parser().parse_args(["list-activities", ACCOUNT])
        assert args.type == "all"

    def test_restart_flag(self):
        args = build_parser().parse_args(["sync-activities", "all", "--restart"])
        assert args.account == "all"
        assert args.restart is True


class TestSyncCredentials:
    def test_rotates_and_persists(self, agent, store, capsys):
        assert main(["sync-credentials"], agent=agent) == 0

        out = capsys.readouterr().out
        assert "Token refreshed" in out
        assert b"refresh-R1" in store.get(ROOT_PARTITION, TOKEN_KEY)

    def test_always_exchanges(self, agent, fake_questrade):
        main(["sync-credentials"], agent=agent)
        main(["sync-credentials"], agent=agent)
        assert len(fake_questrade.token_requests) == 2

    def test_rejected_token_exits_1(self, agent, fake_questrade, store, capsys):
        fake_questrade.valid_refresh_tokens.clear()

        assert main(["sync-credentials"], agent=agent) == 1
        assert "Error:" in capsys.readouterr().err
        assert store.get(ROOT_PARTITION, TOKEN_KEY) is None


class TestAccounts:
    def test_sync_then_list(self, agent, with_history, capsys):
        assert main(["sync-accounts"], agent=agent) == 0
        capsys.readouterr()

        assert main(["list-accounts"], agent=agent) == 0
        accounts = json.loads(capsys.readouterr().out)
        assert [a["number"] for a in accounts] == [ACCOUNT, "26598146"]

    def test_list_empty(self, agent, fake_questrade, capsys):
        assert main(["list-accounts"], agent=agent) == 0
        assert "No accounts stored" in capsys.readouterr().out
        assert fake_questrade.requests == []


class TestActivities:
    def test_sync_and_list(self, agent, with_history, capsys):
        assert main(["sync-activities", ACCOUNT], agent=agent) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary[0]["account_id"] == ACCOUNT
        assert summary[0]["windows_fetched"] == 31
        assert summary[0]["activities_inserted"] == 3

        assert main(["list-activities", ACCOUNT], agent=agent) == 0
        activities = json.loads(capsys.readouterr().out)
        assert len(activities) == 3
        assert {a["type"] for a in activities} == {"Trades", "Deposits"}

        assert main(["list-activities", ACCOUNT, "--type", "Trades"], agent=agent) == 0
        trades = json.loads(capsys.readouterr().out)
        assert [t["symbol"] for t in trades] == ["AAPL", "MSFT"]

    def test_sync_all(self, agent, with_history, capsys):
        main(["sync-accounts"], agent=agent)
        capsys.readouterr()

        assert main(["sync-activities", "all"], agent=agent) == 0
        summary = json.loads(capsys.readouterr().out)
        assert [s["account_id"] for s in summary] == [ACCOUNT, "26598146"]

    def test_sync_all_without_accounts(self, agent, capsys):
        assert main(["sync-activities", "all"], agent=agent) == 0
        assert "No accounts stored" in capsys.readouterr().out

    def test_network_failure_exits_1(self, agent, with_history, capsys):
        with_history.fail_activity_request = 2

        assert main(["sync-activities", ACCOUNT], agent=agent) == 1
        assert "HTTP 500" in capsys.readouterr().err

    def test_restart(self, agent, with_history, sync_engine):
        with_history.fail_activity_request = 2
        main(["sync-activities", ACCOUNT], agent=agent)
        with_history.fail_activity_request = None

        main(["sync-activities", ACCOUNT, "--restart"], agent=agent)

        assert len(with_history.activity_requests) == 2 + 31
        assert sync_engine.load_cursor(ACCOUNT) is None

    def test_list_unsynced_account(self, agent, fake_questrade, capsys):
        assert main(["list-activities", "NOPE"], agent=agent) == 0
        assert "No activities found for account NOPE" in capsys.readouterr().out
        assert fake_questrade.requests == []


class TestListSymbols:
    def test_symbols(self, agent, with_history, capsys):
        main(["sync-activities", ACCOUNT], agent=agent)
        capsys.readouterr()

        assert main(["list-symbols", ACCOUNT], agent=agent) == 0
        assert json.loads(capsys.readouterr().out) == {"AAPL": 8049, "MSFT": 27426}

    def test_no_trades(self, agent, capsys):
        assert main(["list-symbols", ACCOUNT], agent=agent) == 0
        assert "No trades found" in capsys.readouterr().out


class TestStartup:
    def test_startup_failure_exits_1(self, capsys):
        with patch("main.create_agent", side_effect=StorageError("Could not open database")):
            assert main(["list-accounts"]) == 1
        assert "Could not open database" in capsys.readouterr().err

    def test_created_agent_closed_after_command(self):
        agent = MagicMock()
        agent.accounts.list.return_value = []
        with patch("main.create_agent", return_value=agent):
            assert main(["list-accounts"]) == 0
        agent.close.assert_called_once()

    def test_injected_agent_left_open(self):
        agent = MagicMock()
        agent.accounts.list.return_value = []
        main(["list-accounts"], agent=agent)
        agent.close.assert_not_called()

    def test_injected_agent_runs_several_commands(self, agent, fake_questrade):
        assert main(["sync-credentials"], agent=agent) == 0
        assert main(["sync-credentials"], agent=agent) == 0
        assert main(["sync-accounts"], agent=agent) == 0
        assert len(fake_questrade.token_requests) == 2

    def test_build_agent_shares_one_credential_manager(self, store, questrade_client):
        agent = build_agent(store, questrade_client)
        assert agent.accounts._credentials is agent.credentials
        assert agent.sync._credentials is agent.credentials
        assert agent.sync._accounts is agent.accounts
