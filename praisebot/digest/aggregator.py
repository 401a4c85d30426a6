"""Weekly digest aggregator.

Scans every recognition in a week window, tallies recipients and senders,
keeps the top three of each with names resolved at aggregation time, picks
a few featured recognitions and upserts the snapshot keyed by the week
boundaries.

Policy:
- Ties in a ranking keep the order in which users were first seen while
  tallying (explicit stable sort on (-count, first_seen)).
- Featured recognitions are the first N in query order; the query order is
  configurable.
- Any read failure aborts before writing. A failed write is reported, not
  retried.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.core.errors import PraiseBotError, QueryError, WriteError
from praisebot.core.logging import get_logger
from praisebot.core.models import WeeklyDigest
from praisebot.core.repositories import (
    list_recognitions, list_users_by_ids, upsert_weekly_digest,
)
from praisebot.core.settings import get_settings
from praisebot.core.time import business_date, localize, previous_week_range, week_range

logger = get_logger(__name__)

UNKNOWN_USER_NAME = 'Unknown'
DEFAULT_TOP_N = 3
DEFAULT_FEATURED_COUNT = 3


@dataclass
class RankingEntry:
    """One row of a top-N ranking."""
    user_id: str
    user_name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {'user_id': self.user_id, 'user_name': self.user_name, 'count': self.count}


@dataclass
class WeeklyStats:
    """Statistics payload stored in weekly_digests.stats_json."""
    total_recognitions: int = 0
    top_receivers: List[RankingEntry] = field(default_factory=list)
    top_givers: List[RankingEntry] = field(default_factory=list)
    featured_recognitions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_recognitions': self.total_recognitions,
            'top_receivers': [entry.to_dict() for entry in self.top_receivers],
            'top_givers': [entry.to_dict() for entry in self.top_givers],
            'featured_recognitions': list(self.featured_recognitions),
        }


@dataclass
class DigestResult:
    """Outcome of a digest run: the persisted digest or a failure reason."""
    digest: Optional[WeeklyDigest] = None
    stats: Optional[WeeklyStats] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.digest is not None and self.error is None

    @classmethod
    def success(cls, digest: WeeklyDigest, stats: WeeklyStats) -> 'DigestResult':
        return cls(digest=digest, stats=stats)

    @classmethod
    def failure(cls, error: PraiseBotError) -> 'DigestResult':
        return cls(error=str(error), error_type=type(error).__name__)


def tally(recognitions: Iterable[Any]) -> Tuple['OrderedDict[str, int]', 'OrderedDict[str, int]']:
    """
    Count recognitions per recipient and per sender.

    Returns:
        (receiver_counts, giver_counts); key order is first-seen order
    """
    receivers: 'OrderedDict[str, int]' = OrderedDict()
    givers: 'OrderedDict[str, int]' = OrderedDict()
    for rec in recognitions:
        receivers[rec.to_user_id] = receivers.get(rec.to_user_id, 0) + 1
        givers[rec.from_user_id] = givers.get(rec.from_user_id, 0) + 1
    return receivers, givers


def rank_top(
    counts: Mapping[str, int],
    names: Mapping[str, str],
    limit: int = DEFAULT_TOP_N,
) -> List[RankingEntry]:
    """
    Top `limit` users by count.

    Sorted by count descending, then by first-seen sequence (the mapping's
    iteration order). Unresolved ids get the name 'Unknown'.
    """
    sequenced = [(user_id, count, seq) for seq, (user_id, count) in enumerate(counts.items())]
    sequenced.sort(key=lambda item: (-item[1], item[2]))
    return [
        RankingEntry(user_id=user_id, user_name=names.get(user_id) or UNKNOWN_USER_NAME, count=count)
        for user_id, count, _ in sequenced[:limit]
    ]


def pick_featured(recognitions: Sequence[Any], limit: int = DEFAULT_FEATURED_COUNT) -> List[str]:
    """First `limit` recognition ids in query order."""
    return [rec.id for rec in recognitions[:limit]]


def build_weekly_stats(
    recognitions: Sequence[Any],
    names: Mapping[str, str],
    top_n: int = DEFAULT_TOP_N,
    featured_count: int = DEFAULT_FEATURED_COUNT,
    newest_first: bool = False,
) -> WeeklyStats:
    """
    Pure aggregation of a week's recognitions into a stats payload.

    recognitions must be oldest first; rankings break ties on that order.
    newest_first only changes which recognitions are featured.
    """
    receivers, givers = tally(recognitions)
    return WeeklyStats(
        total_recognitions=len(recognitions),
        top_receivers=rank_top(receivers, names, top_n),
        top_givers=rank_top(givers, names, top_n),
        featured_recognitions=pick_featured(
            list(reversed(recognitions)) if newest_first else recognitions, featured_count
        ),
    )


async def generate_weekly_digest(
    session: AsyncSession,
    week_start: datetime,
    week_end: datetime,
) -> DigestResult:
    """
    Compute and persist the digest for one week window.

    Args:
        session: Database session
        week_start: Inclusive start of the window; naive values are business-local
        week_end: Inclusive end of the window; naive values are business-local

    Returns:
        DigestResult with the persisted digest, or the failure reason
    """
    settings = get_settings()
    start_time = time.time()
    newest_first = settings.digest_featured_order == 'desc'
    week_start = localize(week_start)
    week_end = localize(week_end)

    logger.info(
        f"Generating weekly digest for {week_start.isoformat()} .. {week_end.isoformat()}",
        extra={'featured_order': settings.digest_featured_order},
    )

    try:
        recognitions = await list_recognitions(session, week_start, week_end, inclusive_end=True)
        receivers, givers = tally(recognitions)
        users = await list_users_by_ids(session, list(receivers) + list(givers))
    except QueryError as e:
        logger.error(f"Error fetching recognitions for digest: {e}")
        return DigestResult.failure(e)

    names = {user.id: user.name for user in users}
    stats = build_weekly_stats(
        recognitions,
        names,
        top_n=settings.digest_top_n,
        featured_count=settings.digest_featured_count,
        newest_first=newest_first,
    )

    # Keyed by business-local dates whatever offset the window was written in
    start_day = business_date(week_start)
    end_day = business_date(week_end)

    try:
        digest = await upsert_weekly_digest(session, start_day, end_day, stats.to_dict())
    except WriteError as e:
        logger.error(f"Error creating weekly digest: {e}")
        return DigestResult.failure(e)

    runtime = time.time() - start_time
    logger.info(
        f"Weekly digest {start_day}..{end_day} saved in {runtime:.2f}s: "
        f"{stats.total_recognitions} recognitions, {len(names)} users resolved"
    )
    return DigestResult.success(digest, stats)


async def generate_current_week_digest(session: AsyncSession, now: datetime) -> DigestResult:
    """Digest for the business-local week containing now."""
    start, end = week_range(business_date(now))
    return await generate_weekly_digest(session, start, end)


async def generate_last_week_digest(session: AsyncSession, now: datetime) -> DigestResult:
    """Digest for the business-local week before the one containing now."""
    start, end = previous_week_range(business_date(now))
    return await generate_weekly_digest(session, start, end)
