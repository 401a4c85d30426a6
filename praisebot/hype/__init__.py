"""Daily hype widget: prompt of the day, today's count and team streak."""

from praisebot.hype.ladder import HypeStage, hype_stage, streak_caption
from praisebot.hype.streak import HypeStats, compute_hype_stats, streak_length
from praisebot.hype.topics import DAILY_TOPICS, daily_topic, topic_index

__all__ = [
    "DAILY_TOPICS",
    "HypeStage",
    "HypeStats",
    "compute_hype_stats",
    "daily_topic",
    "hype_stage",
    "streak_caption",
    "streak_length",
    "topic_index",
]
