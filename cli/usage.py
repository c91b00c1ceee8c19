#!/usr/bin/env python3
"""
CLI tool for inspecting and maintaining download ledgers.

Usage:
    python -m cli.usage status --profile 3f2a9c
    python -m cli.usage sync --profile 3f2a9c --user-id 42
    python -m cli.usage reset --profile 3f2a9c

Commands:
    - status: Limit, used and remaining for a profile (as a user, or anonymous)
    - sync:   Reconcile the profile's ledger with the user's server counter
    - reset:  Clear the profile's local ledger
"""
import sys
import argparse
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.table import Table

import config
from auth.models import db, User
from core.models import ImageLimits, Identity, UsageSnapshot
from services.ledger_storage import JsonFileLedgerStorage
from services.reconciliation import Reconciler
from services.usage_ledger import UsageLedger

console = Console()


def print_success(message: str):
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str):
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str):
    console.print(f"[yellow]⚠[/yellow] {message}")


def load_identity(flask_app, user_id: Optional[int]) -> Optional[Identity]:
    """Identity of ``user_id`` from the database, or None for anonymous."""
    if user_id is None:
        return None
    with flask_app.app_context():
        user = db.session.get(User, user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        return user.to_identity()


def build_ledger(flask_app, profile: str, identity: Optional[Identity],
                 ledger_dir: Optional[Path] = None) -> UsageLedger:
    """Ledger for ``profile`` with syncs run inline."""
    from app import build_counter_store

    return UsageLedger(
        storage=JsonFileLedgerStorage(ledger_dir or config.LEDGER_DIR, profile),
        identity_provider=lambda: identity,
        reconciler=Reconciler(build_counter_store(flask_app)),
        executor=None,
        limits=ImageLimits.from_config()
    )


def render_snapshot(profile: str, identity: Optional[Identity], snapshot: UsageSnapshot):
    table = Table(title=f"Download usage: {profile}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    plan = "anonymous" if identity is None else f"{identity.subscription_tier} ({identity.subscription_status})"
    table.add_row("Plan", plan)
    table.add_row("Limit", "unlimited" if snapshot.unlimited else str(int(snapshot.limit)))
    table.add_row("Used", str(snapshot.used))
    table.add_row("Remaining", "unlimited" if snapshot.unlimited else str(int(snapshot.remaining)))
    console.print(table)


def main(argv: Optional[List[str]] = None, flask_app=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Inspect and maintain GeoTag download ledgers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("command", choices=["status", "sync", "reset"])
    parser.add_argument(
        "--profile",
        required=True,
        help="Browser profile key (the X-Profile-Id the client sends)"
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Account to evaluate the limit for (anonymous if omitted)"
    )
    parser.add_argument(
        "--ledger-dir",
        type=Path,
        default=None,
        help=f"Ledger directory (default: {config.LEDGER_DIR})"
    )
    args = parser.parse_args(argv)

    if flask_app is None:
        from app import app as flask_app

    try:
        identity = load_identity(flask_app, args.user_id)
    except LookupError as e:
        print_error(str(e))
        return 1

    try:
        ledger = build_ledger(flask_app, args.profile, identity, args.ledger_dir)
    except ValueError as e:
        print_error(str(e))
        return 1

    if args.command == "reset":
        ledger.reset()
        print_success(f"Ledger '{args.profile}' cleared")

    elif args.command == "sync":
        if identity is None:
            print_error("sync needs --user-id")
            return 1
        result = ledger.reconcile()
        if not result.succeeded:
            print_warning(f"Sync failed: {result.error}")
            return 1
        print_success(f"Sync {result.action.value}: local {result.local_before} "
                      f"-> {result.final_count} (server was {result.server_before})")

    render_snapshot(args.profile, identity, ledger.snapshot())
    return 0


if __name__ == "__main__":
    sys.exit(main())
