#!/usr/bin/env python3
"""Database seeding script for PraiseBot.

Creates all tables and loads users and badges from config/seed.yaml using
the repository layer.
"""

import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from praisebot.core.db import AsyncSessionLocal, create_all
from praisebot.core.logging import get_logger, setup_logging
from praisebot.core.repositories import list_badges, list_users
from praisebot.core.seed import load_seed_config, seed_from_config

logger = get_logger("praisebot.scripts.seed")


async def main() -> int:
    """Main seeding function."""
    setup_logging("seed")

    try:
        await create_all()
        logger.info("Database tables ready")

        config = load_seed_config(project_root / "config" / "seed.yaml")

        async with AsyncSessionLocal() as session:
            counts = await seed_from_config(session, config)
            users = await list_users(session)
            badges = await list_badges(session)

        logger.info(
            f"Seeding finished: {counts['users']} users and {counts['badges']} badges processed; "
            f"{len(users)} users and {len(badges)} badges in database"
        )
        return 0

    except Exception as e:
        logger.exception(f"Error during seeding: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
