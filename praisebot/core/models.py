"""Database models for PraiseBot."""
import uuid

from sqlalchemy import (
    String, DateTime, Date, Text, ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base

EFFECT_KEYS = ("confetti", "sparkle", "clap", "firework", "stamp", "none")
DEFAULT_EFFECT_KEY = "confetti"
REACTION_CLAP = "clap"


def new_id() -> str:
    """Generate a new opaque row identifier."""
    return str(uuid.uuid4())


class User(Base):
    """People who send and receive recognitions."""
    __tablename__ = "users"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    name = mapped_column(String(200), nullable=False, index=True)
    dept = mapped_column(String(200), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


class Recognition(Base):
    """One praise message from a sender to a recipient."""
    __tablename__ = "recognitions"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    from_user_id = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    to_user_id = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    message = mapped_column(Text, nullable=False, default="")
    effect_key = mapped_column(String(16), nullable=False, default=DEFAULT_EFFECT_KEY)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)  # UTC

    def to_dict(self):
        return {
            "id": self.id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "message": self.message,
            "effect_key": self.effect_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Reaction(Base):
    """Claps on a recognition, one per user and type."""
    __tablename__ = "reactions"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    recognition_id = mapped_column(ForeignKey("recognitions.id"), index=True, nullable=False)
    user_id = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    type = mapped_column(String(16), nullable=False, default=REACTION_CLAP)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("recognition_id", "user_id", "type", name="uq_reaction_user_type"),
    )


class WeeklyDigest(Base):
    """Persisted per-week statistics snapshot."""
    __tablename__ = "weekly_digests"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    week_start = mapped_column(Date, nullable=False, index=True)
    week_end = mapped_column(Date, nullable=False)
    stats_json = mapped_column(JSON, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("week_start", "week_end", name="uq_weekly_digest_window"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "stats_json": self.stats_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Badge(Base):
    """Badge definitions an admin can hand out per week."""
    __tablename__ = "badges"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    key = mapped_column(String(64), unique=True, nullable=False)
    label = mapped_column(String(200), nullable=False)
    emoji = mapped_column(String(16), nullable=False, default="")
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserBadge(Base):
    """Badge awarded to a user for a given week."""
    __tablename__ = "user_badges"

    id = mapped_column(String(36), primary_key=True, default=new_id)
    user_id = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    badge_id = mapped_column(ForeignKey("badges.id"), index=True, nullable=False)
    week_start = mapped_column(Date, nullable=False, index=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


Index('idx_recognitions_to_created', Recognition.to_user_id, Recognition.created_at)
Index('idx_recognitions_from_created', Recognition.from_user_id, Recognition.created_at)
Index('idx_weekly_digests_week_start_desc', WeeklyDigest.week_start.desc())
