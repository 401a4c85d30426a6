"""Weekly digest aggregation."""

from praisebot.digest.aggregator import (
    DigestResult,
    RankingEntry,
    WeeklyStats,
    build_weekly_stats,
    generate_weekly_digest,
    pick_featured,
    rank_top,
    tally,
)

__all__ = [
    "DigestResult",
    "RankingEntry",
    "WeeklyStats",
    "build_weekly_stats",
    "generate_weekly_digest",
    "pick_featured",
    "rank_top",
    "tally",
]
