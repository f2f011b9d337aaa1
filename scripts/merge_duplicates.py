#!/usr/bin/env python3
"""
Merge duplicate products.

Usage:
    python scripts/merge_duplicates.py DUPLICATE_ID TARGET_ID [--yes]
    python scripts/merge_duplicates.py --find [--threshold 0.8] [--yes]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trendwatch.db.session import AsyncSessionLocal
from trendwatch.errors import TrendwatchError
from trendwatch.logging_config import setup_logging
from trendwatch.merge.discovery import find_duplicate_candidates, merge_duplicate_groups
from trendwatch.merge.operator import merge_operator
from trendwatch.query.ranking import get_product


def _confirm(prompt: str) -> bool:
    return input(prompt).lower() == "yes"


async def merge(duplicate_id: int, target_id: int, assume_yes: bool) -> int:
    async with AsyncSessionLocal() as db:
        try:
            duplicate = await get_product(db, duplicate_id)
            target = await get_product(db, target_id)
        except TrendwatchError as e:
            print(f"[FAIL] {e.message}")
            return 1

        print(f"Duplicate: #{duplicate.id} {duplicate.name} (score {duplicate.current_score})")
        print(f"Target:    #{target.id} {target.name} (score {target.current_score})")

        if not assume_yes and not _confirm("\nMerge the duplicate into the target? (yes/no): "):
            print("Merge cancelled.")
            return 0

        try:
            result = await merge_operator.merge(db, duplicate_id, target_id)
        except TrendwatchError as e:
            print(f"[FAIL] {e.message}")
            return 1

    print("\n[OK] Merge complete!")
    print(f"  - Signals moved:   {result.merged_signal_count}")
    print(f"  - Signals dropped: {result.dropped_signal_count}")
    print(f"  - Reviews moved:   {result.transferred_review_count}")
    if result.alias_slug:
        print(f"  - Alias kept:      {result.alias_slug}")
    if result.score:
        print(f"  - New score:       {result.score.current_score}")
    return 0


async def find_and_merge(threshold, assume_yes: bool) -> int:
    async with AsyncSessionLocal() as db:
        try:
            groups = await find_duplicate_candidates(db, threshold)
        except TrendwatchError as e:
            print(f"[FAIL] {e.message}")
            return 1

        if not groups:
            print("[OK] No duplicates found")
            return 0

        for group in groups:
            target = group.target
            print(f"\nKeep #{target.id} {target.name} ({target.status})")
            for duplicate in group.duplicates:
                print(f"  merge #{duplicate.id} {duplicate.name} ({duplicate.status})")

        total = sum(len(group.duplicates) for group in groups)
        if not assume_yes and not _confirm(f"\nMerge {total} duplicates? (yes/no): "):
            print("Merge cancelled.")
            return 0

        summary = await merge_duplicate_groups(db, groups)

    print(f"\n[OK] Merged {summary.updated} duplicates")
    for error in summary.errors:
        print(f"[FAIL] {error}")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Merge duplicate products")
    parser.add_argument("duplicate_id", type=int, nargs="?")
    parser.add_argument("target_id", type=int, nargs="?")
    parser.add_argument("--find", action="store_true", help="Find duplicates by name and merge them")
    parser.add_argument("--threshold", type=float, help="Name similarity needed with --find")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    args = parser.parse_args()

    if not args.find and (args.duplicate_id is None or args.target_id is None):
        parser.error("give DUPLICATE_ID and TARGET_ID, or --find")

    setup_logging()
    if args.find:
        sys.exit(asyncio.run(find_and_merge(args.threshold, args.yes)))
    sys.exit(asyncio.run(merge(args.duplicate_id, args.target_id, args.yes)))
