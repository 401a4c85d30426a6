"""Repository layer for database operations.

Provides the async range queries the hype engine and the weekly digest
aggregator read from, the idempotent digest upsert, and the CRUD calls
behind the feed, claps, badges and admin screens.

Read failures are raised as QueryError and write failures as WriteError so
callers can apply their own policy.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.core.errors import QueryError, ValidationError, WriteError
from praisebot.core.logging import get_logger
from praisebot.core.models import (
    DEFAULT_EFFECT_KEY, EFFECT_KEYS, REACTION_CLAP,
    Badge, Reaction, Recognition, User, UserBadge, WeeklyDigest, new_id,
)
from praisebot.core.time import as_utc, utc_now

logger = get_logger(__name__)

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

FEED_PERIOD_DAYS = {"week": 7, "month": 30}

# Bulk deletes skip identity-map synchronization so rowcount stays exact
BULK_DELETE = {"synchronize_session": False}


@dataclass
class FeedFilters:
    """Filters for the recognition feed."""
    period: str = "all"  # 'week' | 'month' | 'all'
    person_mode: str = "any"  # 'any' | 'from' | 'to'
    person_id: Optional[str] = None
    query: Optional[str] = None


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _require_uuid(value: Optional[str], field: str) -> str:
    if not value or not UUID_RE.match(value):
        raise ValidationError(f"Invalid {field}: {value!r}", operation="validate")
    return value


# ==========================================
# RECOGNITION RANGE QUERIES
# ==========================================

async def count_recognitions(session: AsyncSession, start: datetime, end: datetime) -> int:
    """
    Count recognitions created in [start, end).

    Args:
        session: Database session
        start: Inclusive lower bound
        end: Exclusive upper bound

    Returns:
        Number of recognitions in the range
    """
    stmt = (
        select(func.count(Recognition.id))
        .where(Recognition.created_at >= as_utc(start))
        .where(Recognition.created_at < as_utc(end))
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="count_recognitions") from e

    return int(result.scalar_one() or 0)


async def list_recognitions(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    inclusive_end: bool = False,
    ascending: bool = True,
) -> List[Recognition]:
    """
    List recognitions created between start and end, ordered by creation time.

    Args:
        session: Database session
        start: Inclusive lower bound
        end: Upper bound, inclusive when inclusive_end is set
        inclusive_end: Whether end itself belongs to the range
        ascending: Oldest first when True, newest first otherwise

    Returns:
        Recognitions in query order
    """
    upper = Recognition.created_at <= as_utc(end) if inclusive_end else Recognition.created_at < as_utc(end)
    order = Recognition.created_at.asc() if ascending else Recognition.created_at.desc()

    stmt = (
        select(Recognition)
        .where(Recognition.created_at >= as_utc(start))
        .where(upper)
        .order_by(order, Recognition.id)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="list_recognitions") from e

    recognitions = list(result.scalars().all())
    logger.debug(f"Retrieved {len(recognitions)} recognitions between {start} and {end}")
    return recognitions


async def list_recognition_timestamps(session: AsyncSession, since: datetime) -> List[datetime]:
    """Creation timestamps of every recognition at or after since, newest first."""
    stmt = (
        select(Recognition.created_at)
        .where(Recognition.created_at >= as_utc(since))
        .order_by(Recognition.created_at.desc())
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="list_recognition_timestamps") from e

    return [as_utc(ts) for ts in result.scalars().all()]


# ==========================================
# USERS
# ==========================================

async def list_users_by_ids(session: AsyncSession, ids: Iterable[str]) -> List[User]:
    """Fetch users for a batch of ids in one query."""
    id_list = [i for i in dict.fromkeys(ids) if i]
    if not id_list:
        return []

    stmt = select(User).where(User.id.in_(id_list))
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="list_users_by_ids") from e

    return list(result.scalars().all())


async def list_users(session: AsyncSession) -> List[User]:
    """All users ordered by name."""
    try:
        result = await session.execute(select(User).order_by(User.name))
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="list_users") from e
    return list(result.scalars().all())


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    try:
        result = await session.execute(select(User).where(User.id == user_id))
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="get_user") from e
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, name: str, dept: Optional[str] = None) -> User:
    """Create a user."""
    if not name or not name.strip():
        raise ValidationError("User name must not be empty", operation="create_user")

    user = User(name=name.strip(), dept=dept)
    session.add(user)
    try:
        await session.commit()
        await session.refresh(user)
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="create_user") from e

    logger.info(f"Created user: {user.name} ({user.id})")
    return user


async def search_users(session: AsyncSession, query: str, limit: int = 10) -> List[User]:
    """Case-insensitive substring search on user name."""
    stmt = select(User).where(User.name.ilike(f"%{query}%")).order_by(User.name).limit(limit)
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="search_users") from e
    return list(result.scalars().all())


# ==========================================
# RECOGNITIONS (FEED)
# ==========================================

async def create_recognition(
    session: AsyncSession,
    from_user_id: str,
    to_user_id: str,
    message: str,
    effect_key: str = DEFAULT_EFFECT_KEY,
    created_at: Optional[datetime] = None,
) -> Recognition:
    """
    Insert a recognition after validating both user ids.

    Raises:
        ValidationError: Malformed user id or unknown effect key
        WriteError: Insert failed
    """
    _require_uuid(from_user_id, "from_user_id")
    _require_uuid(to_user_id, "to_user_id")
    if effect_key not in EFFECT_KEYS:
        raise ValidationError(f"Unknown effect key: {effect_key!r}", operation="create_recognition")

    recognition = Recognition(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        message=message or "",
        effect_key=effect_key,
        created_at=as_utc(created_at or utc_now()),
    )
    session.add(recognition)
    try:
        await session.commit()
        await session.refresh(recognition)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to create recognition: {e}")
        raise WriteError(str(e), operation="create_recognition") from e

    logger.info(
        f"Created recognition: {recognition.id}",
        extra={"from_user_id": from_user_id, "to_user_id": to_user_id, "effect_key": effect_key},
    )
    return recognition


async def fetch_feed(
    session: AsyncSession,
    filters: FeedFilters,
    now: Optional[datetime] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Recognition]:
    """
    Newest-first page of the recognition feed.

    Args:
        session: Database session
        filters: Period, person and text filters
        now: Reference instant for the period filter
        limit: Page size
        offset: Rows to skip

    Returns:
        Page of recognitions
    """
    stmt = select(Recognition)

    days = FEED_PERIOD_DAYS.get(filters.period)
    if days is not None:
        since = as_utc(now or utc_now()) - timedelta(days=days)
        stmt = stmt.where(Recognition.created_at >= since)

    if filters.person_id:
        if filters.person_mode == "from":
            stmt = stmt.where(Recognition.from_user_id == filters.person_id)
        elif filters.person_mode == "to":
            stmt = stmt.where(Recognition.to_user_id == filters.person_id)
        else:
            stmt = stmt.where(or_(
                Recognition.from_user_id == filters.person_id,
                Recognition.to_user_id == filters.person_id,
            ))

    if filters.query:
        stmt = stmt.where(Recognition.message.ilike(f"%{filters.query}%"))

    stmt = stmt.order_by(Recognition.created_at.desc(), Recognition.id).offset(offset).limit(limit)

    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_feed") from e

    return list(result.scalars().all())


async def fetch_recognitions_for_user(
    session: AsyncSession,
    user_id: str,
    kind: str = "received",
    limit: int = 10,
) -> List[Recognition]:
    """Latest recognitions a user received or sent."""
    columns = {"received": Recognition.to_user_id, "sent": Recognition.from_user_id}
    if kind not in columns:
        raise ValidationError(f"Unknown recognition kind: {kind!r}", operation="fetch_recognitions_for_user")
    column = columns[kind]
    stmt = (
        select(Recognition)
        .where(column == user_id)
        .order_by(Recognition.created_at.desc())
        .limit(limit)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_recognitions_for_user") from e
    return list(result.scalars().all())


async def fetch_recent_recipients(session: AsyncSession, user_id: str, max_users: int = 5) -> List[User]:
    """Distinct recent recipients of a sender's last ten recognitions, most recent first."""
    stmt = (
        select(Recognition.to_user_id)
        .where(Recognition.from_user_id == user_id)
        .order_by(Recognition.created_at.desc())
        .limit(10)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_recent_recipients") from e

    unique_ids = list(dict.fromkeys(result.scalars().all()))[:max_users]
    if not unique_ids:
        return []

    users = {u.id: u for u in await list_users_by_ids(session, unique_ids)}
    return [users[i] for i in unique_ids if i in users]


# ==========================================
# REACTIONS
# ==========================================

async def add_clap(session: AsyncSession, recognition_id: str, user_id: str) -> Optional[Reaction]:
    """
    Add a clap. Returns None when the user already clapped.
    """
    reaction = Reaction(recognition_id=recognition_id, user_id=user_id, type=REACTION_CLAP)
    session.add(reaction)
    try:
        await session.commit()
        await session.refresh(reaction)
    except IntegrityError:
        await session.rollback()
        logger.debug(f"User {user_id} already clapped recognition {recognition_id}")
        return None
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="add_clap") from e

    return reaction


async def remove_clap(session: AsyncSession, recognition_id: str, user_id: str) -> bool:
    """Remove a user's clap. Returns whether a row was deleted."""
    stmt = (
        delete(Reaction)
        .where(Reaction.recognition_id == recognition_id)
        .where(Reaction.user_id == user_id)
        .where(Reaction.type == REACTION_CLAP)
    )
    try:
        result = await session.execute(stmt, execution_options=BULK_DELETE)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="remove_clap") from e

    return (result.rowcount or 0) > 0


async def toggle_clap(session: AsyncSession, recognition_id: str, user_id: str, has_clapped: bool) -> Dict[str, bool]:
    """
    Flip a user's clap state.

    Returns:
        {'success': bool, 'has_clapped': bool} with the resulting state
    """
    if has_clapped:
        removed = await remove_clap(session, recognition_id, user_id)
        return {"success": removed, "has_clapped": not removed}

    reaction = await add_clap(session, recognition_id, user_id)
    return {"success": reaction is not None, "has_clapped": reaction is not None}


async def clap_summary(
    session: AsyncSession,
    recognition_ids: List[str],
    current_user_id: Optional[str] = None,
) -> Dict[str, Dict[str, Any]]:
    """Clap count and whether the current user clapped, per recognition."""
    summary = {rid: {"clap_count": 0, "user_has_clapped": False} for rid in recognition_ids}
    if not recognition_ids:
        return summary

    stmt = select(Reaction).where(Reaction.recognition_id.in_(recognition_ids))
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="clap_summary") from e

    for reaction in result.scalars().all():
        entry = summary[reaction.recognition_id]
        entry["clap_count"] += 1
        if current_user_id and reaction.user_id == current_user_id:
            entry["user_has_clapped"] = True

    return summary


# ==========================================
# WEEKLY DIGESTS
# ==========================================

async def upsert_weekly_digest(
    session: AsyncSession,
    week_start: date,
    week_end: date,
    stats: Dict[str, Any],
) -> WeeklyDigest:
    """
    Insert or replace the digest for one (week_start, week_end) window.

    An existing row keeps its id and gets its stats_json fully replaced.

    Raises:
        WriteError: The upsert failed; nothing was written
    """
    insert = _insert_for(session)
    stmt = insert(WeeklyDigest).values(
        id=new_id(),
        week_start=week_start,
        week_end=week_end,
        stats_json=stats,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["week_start", "week_end"],
        set_={"stats_json": stmt.excluded.stats_json},
    )

    try:
        await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to upsert weekly digest {week_start}..{week_end}: {e}")
        raise WriteError(str(e), operation="upsert_weekly_digest") from e

    select_stmt = (
        select(WeeklyDigest)
        .where(WeeklyDigest.week_start == week_start)
        .where(WeeklyDigest.week_end == week_end)
        .execution_options(populate_existing=True)
    )
    try:
        result = await session.execute(select_stmt)
        digest = result.scalar_one()
    except SQLAlchemyError as e:
        raise WriteError(f"Digest written but could not be read back: {e}", operation="upsert_weekly_digest") from e

    logger.info(f"Upserted weekly digest {week_start}..{week_end}: {digest.id}")
    return digest


async def fetch_weekly_digests(session: AsyncSession, limit: int = 10) -> List[WeeklyDigest]:
    """Most recent digests first."""
    stmt = select(WeeklyDigest).order_by(WeeklyDigest.week_start.desc()).limit(limit)
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_weekly_digests") from e
    return list(result.scalars().all())


async def fetch_weekly_digest(session: AsyncSession, week_start: date) -> Optional[WeeklyDigest]:
    """Digest starting on week_start, if one exists."""
    stmt = (
        select(WeeklyDigest)
        .where(WeeklyDigest.week_start == week_start)
        .order_by(WeeklyDigest.week_end.desc())
        .limit(1)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_weekly_digest") from e
    return result.scalar_one_or_none()


# ==========================================
# BADGES
# ==========================================

async def list_badges(session: AsyncSession) -> List[Badge]:
    try:
        result = await session.execute(select(Badge).order_by(Badge.key))
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="list_badges") from e
    return list(result.scalars().all())


async def upsert_badge(session: AsyncSession, key: str, label: str, emoji: str = "") -> Badge:
    """Create a badge or update its label and emoji by key."""
    try:
        result = await session.execute(select(Badge).where(Badge.key == key))
        badge = result.scalar_one_or_none()
        if badge is None:
            badge = Badge(key=key, label=label, emoji=emoji)
            session.add(badge)
        else:
            badge.label = label
            badge.emoji = emoji
        await session.commit()
        await session.refresh(badge)
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="upsert_badge") from e

    return badge


def _user_badge_dict(user_badge: UserBadge, badge: Badge, user: Optional[User] = None) -> Dict[str, Any]:
    data = {
        "id": user_badge.id,
        "user_id": user_badge.user_id,
        "badge_id": user_badge.badge_id,
        "week_start": user_badge.week_start.isoformat(),
        "badge": {"id": badge.id, "key": badge.key, "label": badge.label, "emoji": badge.emoji},
    }
    if user is not None:
        data["user"] = {"id": user.id, "name": user.name, "dept": user.dept}
    return data


async def fetch_user_badges(
    session: AsyncSession,
    user_id: str,
    week_start: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Badges a user holds, newest first, optionally for one week."""
    stmt = (
        select(UserBadge, Badge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.created_at.desc())
    )
    if week_start is not None:
        stmt = stmt.where(UserBadge.week_start == week_start)

    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_user_badges") from e

    return [_user_badge_dict(ub, badge) for ub, badge in result.all()]


async def fetch_week_badges(session: AsyncSession, week_start: date) -> List[Dict[str, Any]]:
    """All badge awards for one week with badge and user joined."""
    stmt = (
        select(UserBadge, Badge, User)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .join(User, User.id == UserBadge.user_id)
        .where(UserBadge.week_start == week_start)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e), operation="fetch_week_badges") from e

    return [_user_badge_dict(ub, badge, user) for ub, badge, user in result.all()]


async def assign_badge(session: AsyncSession, user_id: str, badge_id: str, week_start: date) -> UserBadge:
    """Award a badge to a user for a week."""
    user_badge = UserBadge(user_id=user_id, badge_id=badge_id, week_start=week_start)
    session.add(user_badge)
    try:
        await session.commit()
        await session.refresh(user_badge)
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="assign_badge") from e

    logger.info(f"Assigned badge {badge_id} to {user_id} for week {week_start}")
    return user_badge


async def remove_badge(session: AsyncSession, user_badge_id: str) -> bool:
    """Delete one badge award. Returns whether a row was deleted."""
    try:
        result = await session.execute(
            delete(UserBadge).where(UserBadge.id == user_badge_id), execution_options=BULK_DELETE
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="remove_badge") from e
    return (result.rowcount or 0) > 0


# ==========================================
# ADMIN
# ==========================================

async def delete_all_history(session: AsyncSession, include_badges: bool = False) -> Dict[str, int]:
    """
    Delete reactions, recognitions and weekly digests (and badge awards).

    Deletes in foreign-key order inside one transaction.

    Returns:
        Deleted row counts per table
    """
    deleted: Dict[str, int] = {}
    try:
        result = await session.execute(delete(Reaction), execution_options=BULK_DELETE)
        deleted["reactions"] = result.rowcount or 0
        result = await session.execute(delete(Recognition), execution_options=BULK_DELETE)
        deleted["recognitions"] = result.rowcount or 0
        result = await session.execute(delete(WeeklyDigest), execution_options=BULK_DELETE)
        deleted["weekly_digests"] = result.rowcount or 0
        if include_badges:
            result = await session.execute(delete(UserBadge), execution_options=BULK_DELETE)
            deleted["user_badges"] = result.rowcount or 0
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to delete history: {e}")
        raise WriteError(str(e), operation="delete_all_history") from e

    logger.warning(f"Deleted all history: {deleted}")
    return deleted


async def delete_recent_history(
    session: AsyncSession,
    now: Optional[datetime] = None,
    hours: int = 24,
) -> Dict[str, int]:
    """Delete recognitions from the last `hours` hours and their reactions."""
    since = as_utc(now or utc_now()) - timedelta(hours=hours)
    recent_ids = select(Recognition.id).where(Recognition.created_at >= since)

    try:
        reactions = await session.execute(
            delete(Reaction).where(Reaction.recognition_id.in_(recent_ids)),
            execution_options=BULK_DELETE,
        )
        recognitions = await session.execute(
            delete(Recognition).where(Recognition.created_at >= since),
            execution_options=BULK_DELETE,
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise WriteError(str(e), operation="delete_recent_history") from e

    deleted = {
        "reactions": reactions.rowcount or 0,
        "recognitions": recognitions.rowcount or 0,
    }
    logger.warning(f"Deleted recent history since {since.isoformat()}: {deleted}")
    return deleted
