"""Today's recognition count and the team streak.

A day is active when at least one recognition falls on it in business
local time. The streak counts consecutive active days ending today; a day
with zero recognitions today means no streak at all.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.core.logging import get_logger
from praisebot.core.repositories import count_recognitions, list_recognition_timestamps
from praisebot.core.settings import get_settings
from praisebot.core.time import as_utc, business_date, business_day_bounds

logger = get_logger(__name__)


@dataclass(frozen=True)
class HypeStats:
    """Numbers shown on the hype widget."""
    today_count: int = 0
    streak_days: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'today_count': self.today_count, 'streak_days': self.streak_days}


ZERO_STATS = HypeStats(0, 0)


def active_dates(timestamps: Iterable[datetime], offset_hours: Optional[int] = None) -> Set[date]:
    """Distinct business-local dates of the given instants."""
    return {business_date(ts, offset_hours) for ts in timestamps}


def streak_length(active: Set[date], today: date) -> int:
    """Consecutive active days walking back from today; the first gap ends it."""
    streak = 0
    day = today
    while day in active:
        streak += 1
        day -= timedelta(days=1)
    return streak


async def compute_hype_stats(
    session: AsyncSession,
    now: datetime,
    lookback_days: Optional[int] = None,
    offset_hours: Optional[int] = None,
) -> HypeStats:
    """
    Compute today's count and the current streak.

    Never raises: any storage failure degrades to zeroed stats and a logged
    diagnostic, since the widget is display only.

    Args:
        session: Database session
        now: Reference instant, supplied by the caller
        lookback_days: History window for the streak walk (default from settings)
        offset_hours: Business UTC offset override

    Returns:
        HypeStats with today_count and streak_days
    """
    if lookback_days is None:
        lookback_days = get_settings().streak_lookback_days

    now = as_utc(now)
    today = business_date(now, offset_hours)
    start, end = business_day_bounds(today, offset_hours)

    try:
        today_count = await count_recognitions(session, start, end)
    except Exception as e:
        logger.error(f"Error fetching today's recognition count: {e}")
        return ZERO_STATS

    if today_count == 0:
        return HypeStats(today_count=0, streak_days=0)

    try:
        history = await list_recognition_timestamps(session, now - timedelta(days=lookback_days))
    except Exception as e:
        logger.error(f"Error fetching streak history: {e}")
        return ZERO_STATS

    streak = streak_length(active_dates(history, offset_hours), today)
    logger.debug(f"Hype stats for {today.isoformat()}: count={today_count}, streak={streak}")
    return HypeStats(today_count=today_count, streak_days=streak)
