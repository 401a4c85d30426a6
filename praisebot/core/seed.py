"""Seed users and badges from a YAML file through the repository layer."""

from pathlib import Path
from typing import Any, Dict, Union

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.core.errors import PraiseBotError
from praisebot.core.logging import get_logger
from praisebot.core.repositories import create_user, list_users, upsert_badge

logger = get_logger(__name__)


def load_seed_config(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Load the seed YAML; a missing file yields an empty config."""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Seed file {path} not found, skipping")
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


async def seed_from_config(session: AsyncSession, config: Dict[str, Any]) -> Dict[str, int]:
    """
    Upsert badges by key and create users whose names are not present yet.

    Returns:
        Counts of badges and users processed
    """
    counts = {'badges': 0, 'users': 0}

    for badge in config.get('badges') or []:
        try:
            await upsert_badge(session, badge['key'], badge.get('label', badge['key']), badge.get('emoji', ''))
            counts['badges'] += 1
        except (KeyError, PraiseBotError) as e:
            logger.error(f"Error seeding badge {badge!r}: {e}")

    existing = {user.name for user in await list_users(session)}
    for user in config.get('users') or []:
        name = (user.get('name') or '').strip()
        if not name or name in existing:
            continue
        try:
            await create_user(session, name, user.get('dept'))
            existing.add(name)
            counts['users'] += 1
        except PraiseBotError as e:
            logger.error(f"Error seeding user {name}: {e}")

    logger.info(f"Seed complete: {counts}")
    return counts
