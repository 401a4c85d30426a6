#!/usr/bin/env python3
"""Generate a weekly digest from cron.

By default builds last week's digest (run it early Monday, business time).
Pass --current to rebuild the week in progress instead.
"""

import argparse
import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from praisebot.core.db import AsyncSessionLocal
from praisebot.core.logging import get_logger, setup_logging
from praisebot.core.time import utc_now
from praisebot.digest.aggregator import generate_current_week_digest, generate_last_week_digest

logger = get_logger("praisebot.scripts.weekly_digest")


async def main(current: bool = False) -> int:
    setup_logging("digest")
    now = utc_now()

    async with AsyncSessionLocal() as session:
        if current:
            result = await generate_current_week_digest(session, now)
        else:
            result = await generate_last_week_digest(session, now)

    if not result.ok:
        logger.error(f"Weekly digest failed ({result.error_type}): {result.error}")
        return 1

    logger.info(
        f"Weekly digest {result.digest.week_start}..{result.digest.week_end} stored: "
        f"{result.stats.total_recognitions} recognitions"
    )
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate the PraiseBot weekly digest")
    parser.add_argument("--current", action="store_true", help="Digest the current week instead of last week")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(current=args.current)))
