"""Command-line entry point for the Questrade sync agent.

Each command runs once and exits; any agent error exits non-zero.

Usage:
    python -m main sync-credentials
    python -m main sync-accounts
    python -m main list-accounts
    python -m main sync-activities 12345678
    python -m main sync-activities all --restart
    python -m main list-activities 12345678 --type Trades
    python -m main list-symbols 12345678
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass

from sqlalchemy.exc import SQLAlchemyError

from database import get_session_local, init_db
from integrations.exceptions import QuestradeError, StorageError
from integrations.questrade_client import QuestradeClient
from logging_config import setup_logging
from services.account_registry import AccountRegistry
from services.credential_manager import CredentialManager
from services.persistent_store import PersistentStore
from services.query_service import ALL_TYPES, QueryService
from services.sync_service import ActivitySyncEngine

logger = logging.getLogger(__name__)


@dataclass
class Agent:
    """The wired-up components one command runs against."""

    store: PersistentStore
    client: QuestradeClient
    credentials: CredentialManager
    accounts: AccountRegistry
    sync: ActivitySyncEngine
    queries: QueryService

    def close(self) -> None:
        self.client.close()


def build_agent(store: PersistentStore, client: QuestradeClient) -> Agent:
    """Wire the components around one store and one client."""
    credentials = CredentialManager(store, client)
    accounts = AccountRegistry(store, client, credentials)
    return Agent(
        store=store,
        client=client,
        credentials=credentials,
        accounts=accounts,
        sync=ActivitySyncEngine(store, client, credentials, accounts),
        queries=QueryService(store),
    )


def create_agent() -> Agent:
    """Open the configured database and build the agent on top of it."""
    try:
        init_db()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not open database: {exc}") from exc
    store = PersistentStore(get_session_local())
    store.initialize()
    return build_agent(store, QuestradeClient())


def print_json(payload) -> None:
    """Pretty-print a JSON-compatible payload to stdout."""
    print(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync_credentials(agent: Agent, args: argparse.Namespace) -> None:
    token = agent.credentials.bootstrap_or_rotate(force=True)
    print(f"Token refreshed. API server: {token.api_server}")
    print(f"Access token expires in {token.expires_in}s")


def cmd_sync_accounts(agent: Agent, args: argparse.Namespace) -> None:
    accounts = agent.accounts.fetch_and_persist()
    print_json([a.model_dump(mode="json", by_alias=True) for a in accounts])


def cmd_list_accounts(agent: Agent, args: argparse.Namespace) -> None:
    accounts = agent.accounts.list()
    if not accounts:
        print("No accounts stored. Try sync-accounts.")
        return
    print_json([a.model_dump(mode="json", by_alias=True) for a in accounts])


def cmd_sync_activities(agent: Agent, args: argparse.Namespace) -> None:
    resume = not args.restart
    if args.account == "all":
        results = agent.sync.sync_all(resume=resume)
        if not results:
            print("No accounts stored. Try sync-accounts.")
            return
    else:
        results = [agent.sync.sync_account(args.account, resume=resume)]
    print_json([asdict(r) for r in results])


def cmd_list_activities(agent: Agent, args: argparse.Namespace) -> None:
    activities = agent.queries.list_activities(args.account, args.type)
    if not activities:
        print(f"No activities found for account {args.account}. Try sync-activities.")
        return
    print_json([a.model_dump(mode="json", by_alias=True) for a in activities])


def cmd_list_symbols(agent: Agent, args: argparse.Namespace) -> None:
    symbols = agent.queries.distinct_symbols(args.account)
    if not symbols:
        print(f"No trades found for account {args.account}. Try sync-activities.")
        return
    print_json(dict(sorted(symbols.items())))


COMMANDS = {
    "sync-credentials": cmd_sync_credentials,
    "sync-accounts": cmd_sync_accounts,
    "list-accounts": cmd_list_accounts,
    "sync-activities": cmd_sync_activities,
    "list-activities": cmd_list_activities,
    "list-symbols": cmd_list_symbols,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="questrade-sync",
        description="Sync Questrade accounts and activity history into a local store.",
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")

    sub.add_parser("sync-credentials", help="Exchange the refresh token for a new token")
    sub.add_parser("sync-accounts", help="Fetch accounts from Questrade and store them")
    sub.add_parser("list-accounts", help="List stored accounts")

    sync = sub.add_parser("sync-activities", help="Backfill activity history")
    sync.add_argument("account", help="Account number, or 'all' for every stored account")
    sync.add_argument(
        "--restart",
        action="store_true",
        help="Ignore an interrupted run and start again from now",
    )

    activities = sub.add_parser("list-activities", help="List stored activities")
    activities.add_argument("account", help="Account number")
    activities.add_argument(
        "--type",
        default=ALL_TYPES,
        help="Activity type to show, e.g. Trades, Dividends (default: all)",
    )

    symbols = sub.add_parser("list-symbols", help="List every symbol traded in an account")
    symbols.add_argument("account", help="Account number")

    return parser


def main(argv: list[str] | None = None, agent: Agent | None = None) -> int:
    """Entry point: parse args, run one command, return the exit code."""
    args = build_parser().parse_args(argv)
    setup_logging()

    # An injected agent belongs to the caller and stays open.
    owns_agent = agent is None
    try:
        if owns_agent:
            agent = create_agent()
    except QuestradeError as exc:
        logger.error("Startup failed: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        COMMANDS[args.command](agent, args)
    except QuestradeError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if owns_agent:
            agent.close()
    return 0


def run() -> None:
    """Console-script wrapper around :func:`main`."""
    sys.exit(main())


if __name__ == "__main__":
    run()
