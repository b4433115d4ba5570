"""Seed or reset the ledger file.

Creates the sample accounts at the starting balance, then replays the sample
OpSec penalties through the transfer service so the seeded activity obeys
the same invariants as live traffic.

Usage: python -m micropatrons.db.seed [--reset-only] [--usernames a,b,c]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Sequence

from micropatrons.config import get_settings
from micropatrons.database import close_db, create_schema, get_session_factory, init_db
from micropatrons.ledger.sql_store import SqlLedgerStore
from micropatrons.ledger.store import LedgerStore
from micropatrons.transfers.service import TransferService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

SAMPLE_USERNAMES: list[str] = [
    "Axe", "Beanie", "Ben", "Bingo", "Blue", "Bob", "Britt", "Cuz", "Dicey",
    "Disco", "Donny", "Dre", "Dune", "Dynamo", "Egor", "Equinox",
    "Goblinlackey", "Hatake", "Hocho", "Ibex", "Jed", "Jimmy", "Joseph",
    "Kain", "Khaleesi", "Kirsty", "Leafygreens", "Lionlamb", "Malves",
    "Margo", "Min", "Oiiaoiia", "Opaque", "Pandas", "Quantumflux", "R3M3",
    "Rambo", "Raz", "Redy", "Riva", "Roscoe", "Sneed", "Snowwhite", "Spud",
    "Taobao", "Thor", "Tuna", "Vader", "Walker", "Wren", "Yamen", "Yingli",
]

# (victim, attacker): Ben caught five people with unlocked machines
SAMPLE_PENALTIES: list[tuple[str, str]] = [
    ("Hatake", "Ben"),
    ("Pandas", "Ben"),
    ("Dune", "Ben"),
    ("Thor", "Ben"),
    ("Equinox", "Ben"),
]


async def reset_ledger(store: LedgerStore) -> None:
    """Remove all activity and accounts."""
    await store.clear()
    logger.info("Ledger cleared")


async def seed_ledger(
    store: LedgerStore,
    service: TransferService,
    usernames: Sequence[str] = SAMPLE_USERNAMES,
    penalties: Sequence[tuple[str, str]] = SAMPLE_PENALTIES,
    starting_balance: int = 200_000,
) -> int:
    """Replace the ledger contents with sample data. Returns the number of penalties applied.

    Penalties naming an account outside ``usernames`` are skipped.
    """
    await reset_ledger(store)

    for username in usernames:
        await store.create_account(username, starting_balance)
    logger.info("Created %d accounts at %d µPatrons", len(usernames), starting_balance)

    known = set(usernames)
    applied = 0
    for victim, attacker in penalties:
        if victim not in known or attacker not in known:
            logger.warning("Skipping penalty %s -> %s: unknown account", victim, attacker)
            continue
        await service.report_opsec_violation(victim, attacker)
        applied += 1
        logger.info("Penalty: %s -> %s (%d µPatrons)", victim, attacker, service.penalty_amount)

    return applied


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed or reset the Micropatrons ledger.")
    parser.add_argument("--reset-only", action="store_true", help="clear all data without reseeding")
    parser.add_argument("--usernames", help="comma-separated account names to create instead of the sample set")
    return parser.parse_args(argv)


async def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()

    await init_db(settings.database_url, settings.db_busy_timeout_seconds)
    try:
        await create_schema()
        store = SqlLedgerStore(get_session_factory())
        if args.reset_only:
            await reset_ledger(store)
            return

        if args.usernames:
            # Repeated names collapse to their first occurrence
            usernames = list(dict.fromkeys(u.strip() for u in args.usernames.split(",") if u.strip()))
        else:
            usernames = SAMPLE_USERNAMES
        service = TransferService(store, penalty_amount=settings.opsec_penalty_amount)
        applied = await seed_ledger(store, service, usernames, starting_balance=settings.starting_balance)
        logger.info("Seeded %s: %d accounts, %d transfers", settings.database_url, len(usernames), applied)
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
