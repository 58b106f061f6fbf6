"""CLI tool for admin operations.

Usage:
    python -m autotrader.cli issue-token <user_id>
    python -m autotrader.cli set-credentials <user_id>
    python -m autotrader.cli run-cycle <position_monitor|order_sync|signal_analysis>
"""

import asyncio
import sys
import getpass

from autotrader.database import engine, create_db_and_tables
from autotrader.engine.errors import AutotraderError
from autotrader.engine.user_settings import get_user_settings, save_credentials
from autotrader.services.auth import create_access_token
from autotrader.utils.constants import CYCLE_NAMES
from autotrader.utils.logging import setup_logging


def _parse_user_id(args: list[str]) -> int:
    if not args or not args[0].isdigit():
        print("A numeric user id is required.")
        sys.exit(1)
    return int(args[0])


def issue_token(args: list[str]):
    """Print a bearer token for an existing (or new) user id."""
    user_id = _parse_user_id(args)
    create_db_and_tables()
    get_user_settings(engine, user_id)
    print(create_access_token(user_id))


def set_credentials(args: list[str]):
    """Store Indodax API keys for a user."""
    user_id = _parse_user_id(args)
    create_db_and_tables()

    api_key = input("Indodax API key: ").strip()
    secret_key = getpass.getpass("Indodax secret key: ").strip()
    if not api_key or not secret_key:
        print("Both keys are required.")
        sys.exit(1)

    try:
        save_credentials(engine, user_id, api_key, secret_key)
    except AutotraderError as e:
        print(f"Failed: {e}")
        sys.exit(1)
    print(f"Credentials stored for user {user_id}.")


async def _run_cycle(name: str):
    from autotrader.engine.components import get_components
    from autotrader.engine.scheduler import get_orchestrator

    try:
        return await get_orchestrator().trigger(name)
    finally:
        await get_components().market.close()


def run_cycle(args: list[str]):
    """Run one cycle in the foreground and print its report."""
    name = args[0] if args else ""
    if name not in CYCLE_NAMES:
        print(f"Cycle must be one of: {', '.join(CYCLE_NAMES)}")
        sys.exit(1)

    setup_logging()
    create_db_and_tables()
    report = asyncio.run(_run_cycle(name))
    if report is None:
        print(f"{name} did not complete; see the job log.")
        sys.exit(1)

    print(f"{name}: {report.summary()}")
    for result in report.results:
        print(f"  [{result.outcome.value}] {result.item_id}: {result.message}")


COMMANDS = {
    "issue-token": issue_token,
    "set-credentials": set_credentials,
    "run-cycle": run_cycle,
}


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m autotrader.cli <command> [args]")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    command = sys.argv[1]
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        sys.exit(1)
    handler(sys.argv[2:])


if __name__ == "__main__":
    main()
