#!/usr/bin/env python3
"""
Daily score update.

Recomputes every product's decayed score and writes one score history row
per product. Exits non-zero when any product failed.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trendwatch.db.session import AsyncSessionLocal
from trendwatch.logging_config import setup_logging
from trendwatch.scoring.engine import scoring_engine


async def daily_update() -> int:
    print("Recalculating trend scores...")

    async with AsyncSessionLocal() as db:
        summary = await scoring_engine.recalculate_all(db)

    print(f"  - Updated: {summary.updated}")
    print(f"  - Skipped: {summary.skipped}")
    print(f"  - Failed:  {summary.failed}")
    for error in summary.errors[:10]:
        print(f"    ! {error}")

    if summary.failed or summary.aborted:
        print("\n[FAIL] Daily update finished with errors")
        return 1
    print("\n[OK] Daily update complete!")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(daily_update()))
