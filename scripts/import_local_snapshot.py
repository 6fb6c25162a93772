#!/usr/bin/env python3
"""One-time import of a browser local-storage inventory snapshot.

The snapshot is a JSON file exported from the browser, either an object with
``tieTrackTies`` and ``tieTrackCategories`` keys (the local-storage entries)
or a bare list of tie records.

Usage:
    # Dry run to preview what will be imported
    python scripts/import_local_snapshot.py snapshot.json --dry-run

    # Live import
    python scripts/import_local_snapshot.py snapshot.json

Ties whose name already exists in the database are skipped. Images stored
as data URLs are replaced with the placeholder image.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any


def load_snapshot(path: Path) -> tuple[list[dict[str, Any]], list[str]]:
    """Read ties and categories from a snapshot file."""
    data = json.loads(path.read_text(encoding="utf-8"))

    if isinstance(data, list):
        return data, []

    ties = data.get("tieTrackTies", [])
    categories = data.get("tieTrackCategories", [])
    # Local storage keeps values as JSON strings
    if isinstance(ties, str):
        ties = json.loads(ties)
    if isinstance(categories, str):
        categories = json.loads(categories)
    return list(ties), [c for c in categories if isinstance(c, str)]


async def run_import(path: Path, dry_run: bool):
    from tietrack.db import async_session_maker, engine, init_db
    from tietrack.services.legacy_import import import_legacy_snapshot

    ties, categories = load_snapshot(path)
    print(f"Snapshot: {len(ties)} ties, {len(categories)} categories")

    await init_db()
    async with async_session_maker() as db:
        stats = await import_legacy_snapshot(db, ties, categories, dry_run=dry_run)
        if dry_run:
            await db.rollback()
        else:
            await db.commit()

    await engine.dispose()
    return stats


def main():
    parser = argparse.ArgumentParser(
        description="Import a local-storage inventory snapshot into TieTrack"
    )
    parser.add_argument(
        "snapshot",
        type=Path,
        help="Path to the exported snapshot JSON file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without making changes",
    )

    args = parser.parse_args()

    if not args.snapshot.is_file():
        print(f"Snapshot not found: {args.snapshot}", file=sys.stderr)
        sys.exit(1)

    stats = asyncio.run(run_import(args.snapshot, args.dry_run))

    print(f"\n{'=' * 60}")
    print("Import Summary" + (" (dry run)" if args.dry_run else ""))
    print(f"{'=' * 60}")
    print(f"  Ties in snapshot: {stats.ties_seen}")
    print(f"  Ties created: {stats.ties_created}")
    print(f"  Ties skipped (duplicates): {stats.ties_skipped}")
    print(f"  Categories created: {stats.categories_created}")
    print(f"  Errors: {len(stats.errors)}")

    if stats.errors:
        print("\nErrors:")
        for error in stats.errors[:10]:
            print(f"  - {error}")
        if len(stats.errors) > 10:
            print(f"  ... and {len(stats.errors) - 10} more")

    print()


if __name__ == "__main__":
    main()
