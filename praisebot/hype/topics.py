"""Prompt of the day.

The prompt is chosen by hashing the business-local calendar date, so every
instance that ships the same ordered list shows the same prompt on the same
day, with no I/O and no randomness.
"""

from datetime import datetime
from typing import Optional, Sequence

from praisebot.core.time import business_date, date_key

# Order matters: the index is derived from the date hash
DAILY_TOPICS = (
    '最近「助かる〜」と思ったことは？',
    '影で支えてくれている人は誰？',
    '今週、笑顔が素敵だった人は？',
    '素早いレスで助けてくれた人は？',
    '会議でナイスな発言をした人は？',
    '困っている時に声をかけてくれた人は？',
    '細かい気配りをしてくれた人は？',
    '技術的な質問に答えてくれた人は？',
    '新しい知識をシェアしてくれた人は？',
    'ムードメーカーだと思う人は？',
    '丁寧なドキュメントを書いてくれた人は？',
    'バグ修正・障害対応を頑張っていた人は？',
    'ランチや休憩で和ませてくれた人は？',
    '期待以上の成果を出していた人は？',
    '最近チャットでの反応が早い人は？',
    '地味だけど重要な仕事をしてくれた人は？',
    '新しい提案をしてくれた人は？',
    '周りをやる気にさせてくれる人は？',
    '整理整頓や掃除をしてくれた人は？',
    'いつも挨拶が気持ちいい人は？',
)

HASH_MULTIPLIER = 31
CLIPBOARD_TEMPLATE = '【今日のお題】{topic}：'


def string_hash(text: str) -> int:
    """
    Polynomial rolling hash over UTF-16 code units, wrapped to signed 32 bits.

    Matches the classic ``h = h * 31 + c`` string hash so the same key hashes
    identically on every platform.
    """
    h = 0
    encoded = text.encode('utf-16-le')
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * HASH_MULTIPLIER + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def topic_index(key: str, count: int) -> int:
    """Index into a list of `count` prompts for a date key."""
    if count <= 0:
        raise ValueError("Prompt list must not be empty")
    return abs(string_hash(key)) % count


def daily_topic(
    instant: datetime,
    prompts: Sequence[str] = DAILY_TOPICS,
    offset_hours: Optional[int] = None,
) -> str:
    """
    Prompt of the day for the business-local date of an instant.

    Args:
        instant: Any instant; only its local calendar date matters
        prompts: Ordered prompt list
        offset_hours: Business UTC offset override

    Returns:
        The selected prompt
    """
    key = date_key(business_date(instant, offset_hours))
    return prompts[topic_index(key, len(prompts))]


def format_topic_clipboard(topic: str) -> str:
    """Text copied for the user to start typing right after the colon."""
    return CLIPBOARD_TEMPLATE.format(topic=topic)
