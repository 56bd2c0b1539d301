#!/usr/bin/env python3
"""Questrade setup script.

Stores the seed refresh token the agent bootstraps from.

Usage:
    1. Log in to Questrade and open the API centre (App Hub)
    2. Register a personal app and generate a new manual token
    3. Run this script and paste the token when prompted
    4. Run 'python -m main sync-credentials' to exchange it

The manual token can only be exchanged once. After the first exchange
the agent keeps its own rotating token in the database, and the seed is
only needed again if that database is lost.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.keychain import (
    SEED_TOKEN_KEY as SEED_KEY,
    clear_seed_token,
    has_seed_token,
    store_seed_token,
)


def main(argv: list[str] | None = None) -> None:
    """Prompt for a seed refresh token and store it in the keychain."""
    parser = argparse.ArgumentParser(description="Store the Questrade seed refresh token.")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove the stored seed refresh token instead",
    )
    args = parser.parse_args(argv)

    if args.clear:
        if clear_seed_token():
            print(f"Removed {SEED_KEY} from keychain")
        else:
            print(f"No {SEED_KEY} to remove (or keychain unavailable)")
        return

    print("Questrade Setup")
    print("=" * 50)
    print()
    print("To get a seed refresh token:")
    print("  1. Log in to Questrade and open the API centre")
    print("  2. Register a personal app (read account data is enough)")
    print("  3. Click 'Generate new token' and copy it")
    print()

    if has_seed_token():
        print(f"Note: a {SEED_KEY} is already stored and will be replaced.")
        print()

    token = input("Paste your refresh token: ").strip()
    if not token:
        print("Error: No refresh token provided")
        sys.exit(1)

    if not store_seed_token(token):
        print("Error: Could not store the token in the keychain.")
        print()
        print("Instead, add the following to your .env file:")
        print()
        print(f"{SEED_KEY}=<your token>")
        sys.exit(1)

    print()
    print(f"Stored {SEED_KEY} in keychain.")
    print("Run 'python -m main sync-credentials' to exchange it for a live token.")


if __name__ == "__main__":
    main()
