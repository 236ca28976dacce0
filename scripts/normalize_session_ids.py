"""Trim stray whitespace from stored chat session ids.

Older workflow runs wrote history rows with a leading space in the session
id. Reads still tolerate that form, but cleaned rows keep lookups exact.

Usage:
    python -m scripts.normalize_session_ids [--dry-run]
"""

import argparse
import asyncio

from oraculo.core.database import async_session_factory, engine
from oraculo.repositories.chat_repo import ChatRepository


async def normalize_session_ids(dry_run: bool) -> None:
    """Trim session ids in the history and session tables."""
    async with async_session_factory() as session:
        repo = ChatRepository(session)
        history_rows, session_rows, skipped = await repo.trim_session_ids()
        if dry_run:
            await session.rollback()
            print(
                f"Would fix {history_rows} history rows and {session_rows} session rows."
            )
        else:
            await session.commit()
            print(f"Fixed {history_rows} history rows and {session_rows} session rows.")
        if skipped:
            print(f"Skipped {skipped} session rows whose trimmed id is already in use.")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Trim whitespace from session ids")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report the rows that would change without committing",
    )
    args = parser.parse_args()

    asyncio.run(normalize_session_ids(args.dry_run))


if __name__ == "__main__":
    main()
