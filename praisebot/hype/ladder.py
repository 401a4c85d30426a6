"""Hype thermometer stages for today's count."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

MAX_LEVEL = 6
MILESTONE_THRESHOLD = 5

# (name, icon) for counts 0..5 and 6+
STAGES: Tuple[Tuple[str, str], ...] = (
    ('しーん', '🫧'),
    ('ぬくもり', '☁️'),
    ('あったかい', '🌤️'),
    ('熱い', '🔥'),
    ('祭り', '🎉'),
    ('最高の雰囲気', '✨'),
    ('称賛デー', '🏁'),
)


@dataclass(frozen=True)
class HypeStage:
    level: int
    name: str
    icon: str
    progress: float
    next_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'name': self.name,
            'icon': self.icon,
            'progress': self.progress,
            'next_message': self.next_message,
        }


def next_milestone_message(count: int) -> str:
    if count < MILESTONE_THRESHOLD:
        return f'あと{MILESTONE_THRESHOLD - count}件で「{STAGES[MILESTONE_THRESHOLD][0]}」'
    if count == MILESTONE_THRESHOLD:
        return f'あと{MAX_LEVEL - count}件で「{STAGES[MAX_LEVEL][0]}」'
    return f'{STAGES[MAX_LEVEL][0]}！（いい感じです）'


def hype_stage(today_count: int) -> HypeStage:
    """Map today's count to its thermometer stage."""
    count = max(today_count, 0)
    level = min(count, MAX_LEVEL)
    name, icon = STAGES[level]
    return HypeStage(
        level=level,
        name=name,
        icon=icon,
        progress=level / MAX_LEVEL,
        next_message=next_milestone_message(count),
    )


def streak_caption(streak_days: int) -> str:
    """Streak line; a zero streak is phrased as an invitation, not a failure."""
    if streak_days > 0:
        return f'🔥 {streak_days}日連続！'
    return '💤 今日はまだ0件（最初の1件で復活）'
