#!/usr/bin/env python3
"""
Backfill age-decay fields on products created before decay tracking.

Sets first_detected_at from the earliest signal (else created_at) and
rescores each backfilled product.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trendwatch.db.session import AsyncSessionLocal
from trendwatch.logging_config import setup_logging
from trendwatch.scoring.engine import scoring_engine


async def backfill() -> int:
    print("Backfilling decay fields...")

    async with AsyncSessionLocal() as db:
        summary = await scoring_engine.backfill_decay_fields(db)

    if summary.updated == 0 and summary.failed == 0:
        print("\nAll products already have decay fields. Nothing to do.")
        return 0

    print(f"  - Backfilled: {summary.updated}")
    print(f"  - Failed:     {summary.failed}")
    for error in summary.errors[:10]:
        print(f"    ! {error}")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(backfill()))
