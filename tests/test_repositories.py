"""Repository tests against an in-memory SQLite database."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from praisebot.core import repositories as repo
from praisebot.core.errors import QueryError, ValidationError, WriteError
from praisebot.core.models import Recognition

from tests.conftest import add_recognition, add_user

NOW = datetime(2024, 6, 10, 3, 0, tzinfo=timezone.utc)


# ==========================================
# RANGE QUERIES
# ==========================================

@pytest.mark.asyncio
async def test_count_recognitions_is_half_open(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    start = datetime(2024, 6, 9, 15, 0, tzinfo=timezone.utc)
    end = start + timedelta(days=1)

    await add_recognition(session, a.id, b.id, start)                         # included
    await add_recognition(session, a.id, b.id, end - timedelta(seconds=1))   # included
    await add_recognition(session, a.id, b.id, end)                           # excluded
    await add_recognition(session, a.id, b.id, start - timedelta(seconds=1)) # excluded

    assert await repo.count_recognitions(session, start, end) == 2


@pytest.mark.asyncio
async def test_list_recognitions_inclusive_end_and_order(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    start = datetime(2024, 6, 3, tzinfo=timezone.utc)
    end = datetime(2024, 6, 4, tzinfo=timezone.utc)

    first = await add_recognition(session, a.id, b.id, start + timedelta(hours=1))
    last = await add_recognition(session, a.id, b.id, end)

    exclusive = await repo.list_recognitions(session, start, end)
    inclusive = await repo.list_recognitions(session, start, end, inclusive_end=True)
    newest_first = await repo.list_recognitions(session, start, end, inclusive_end=True, ascending=False)

    assert [r.id for r in exclusive] == [first.id]
    assert [r.id for r in inclusive] == [first.id, last.id]
    assert [r.id for r in newest_first] == [last.id, first.id]


@pytest.mark.asyncio
async def test_list_recognition_timestamps_are_aware_utc(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    await add_recognition(session, a.id, b.id, NOW)
    await add_recognition(session, a.id, b.id, NOW - timedelta(days=90))

    timestamps = await repo.list_recognition_timestamps(session, NOW - timedelta(days=60))

    assert timestamps == [NOW]
    assert timestamps[0].tzinfo is not None


@pytest.mark.asyncio
async def test_query_failure_is_wrapped():
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))

    with pytest.raises(QueryError) as exc_info:
        await repo.count_recognitions(session, NOW, NOW)

    assert exc_info.value.operation == "count_recognitions"


# ==========================================
# USERS
# ==========================================

@pytest.mark.asyncio
async def test_users_crud_and_search(session):
    await repo.create_user(session, "Sato", "Engineering")
    await repo.create_user(session, "Suzuki")
    await repo.create_user(session, "Takahashi")

    names = [u.name for u in await repo.list_users(session)]
    assert names == ["Sato", "Suzuki", "Takahashi"]

    found = await repo.search_users(session, "su")
    assert [u.name for u in found] == ["Suzuki"]


@pytest.mark.asyncio
async def test_create_user_rejects_blank_name(session):
    with pytest.raises(ValidationError):
        await repo.create_user(session, "   ")


@pytest.mark.asyncio
async def test_list_users_by_ids_skips_empty(session):
    assert await repo.list_users_by_ids(session, []) == []

    a = await add_user(session, "Aoi")
    users = await repo.list_users_by_ids(session, [a.id, a.id, "missing"])
    assert [u.id for u in users] == [a.id]


# ==========================================
# RECOGNITIONS
# ==========================================

@pytest.mark.asyncio
async def test_create_recognition_validates_ids_and_effect(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")

    with pytest.raises(ValidationError):
        await repo.create_recognition(session, "not-a-uuid", b.id, "thanks")
    with pytest.raises(ValidationError):
        await repo.create_recognition(session, a.id, b.id, "thanks", effect_key="lasers")

    rec = await repo.create_recognition(session, a.id, b.id, "thanks", created_at=NOW)
    assert rec.effect_key == "confetti"
    assert rec.message == "thanks"


@pytest.mark.asyncio
async def test_feed_filters(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    c = await add_user(session, "Chika")

    old = await add_recognition(session, a.id, b.id, NOW - timedelta(days=20), "Great DOCS")
    mid = await add_recognition(session, b.id, c.id, NOW - timedelta(days=3), "quick fix")
    new = await add_recognition(session, c.id, a.id, NOW - timedelta(hours=1), "nice docs")

    everything = await repo.fetch_feed(session, repo.FeedFilters(), now=NOW)
    assert [r.id for r in everything] == [new.id, mid.id, old.id]

    week = await repo.fetch_feed(session, repo.FeedFilters(period="week"), now=NOW)
    assert [r.id for r in week] == [new.id, mid.id]

    month = await repo.fetch_feed(session, repo.FeedFilters(period="month"), now=NOW)
    assert len(month) == 3

    sent_by_b = await repo.fetch_feed(session, repo.FeedFilters(person_mode="from", person_id=b.id), now=NOW)
    assert [r.id for r in sent_by_b] == [mid.id]

    to_b = await repo.fetch_feed(session, repo.FeedFilters(person_mode="to", person_id=b.id), now=NOW)
    assert [r.id for r in to_b] == [old.id]

    any_a = await repo.fetch_feed(session, repo.FeedFilters(person_id=a.id), now=NOW)
    assert [r.id for r in any_a] == [new.id, old.id]

    docs = await repo.fetch_feed(session, repo.FeedFilters(query="docs"), now=NOW)
    assert [r.id for r in docs] == [new.id, old.id]

    page = await repo.fetch_feed(session, repo.FeedFilters(), now=NOW, limit=1, offset=1)
    assert [r.id for r in page] == [mid.id]


@pytest.mark.asyncio
async def test_recognitions_for_user_and_recent_recipients(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    c = await add_user(session, "Chika")

    await add_recognition(session, a.id, b.id, NOW - timedelta(hours=3))
    await add_recognition(session, a.id, c.id, NOW - timedelta(hours=2))
    await add_recognition(session, a.id, b.id, NOW - timedelta(hours=1))

    received = await repo.fetch_recognitions_for_user(session, b.id, "received")
    sent = await repo.fetch_recognitions_for_user(session, a.id, "sent")
    assert len(received) == 2
    assert len(sent) == 3

    recipients = await repo.fetch_recent_recipients(session, a.id)
    assert [u.name for u in recipients] == ["Ben", "Chika"]


@pytest.mark.asyncio
async def test_recognitions_for_user_rejects_unknown_kind():
    session = AsyncMock()

    with pytest.raises(ValidationError):
        await repo.fetch_recognitions_for_user(session, "u1", "given")

    session.execute.assert_not_awaited()


# ==========================================
# REACTIONS
# ==========================================

@pytest.mark.asyncio
async def test_clap_toggle_and_duplicates(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    rec = await add_recognition(session, a.id, b.id, NOW)
    a_id, b_id, rec_id = a.id, b.id, rec.id

    first = await repo.add_clap(session, rec_id, b_id)
    assert first is not None
    assert await repo.add_clap(session, rec_id, b_id) is None

    summary = await repo.clap_summary(session, [rec_id], b_id)
    assert summary[rec_id] == {"clap_count": 1, "user_has_clapped": True}

    toggled = await repo.toggle_clap(session, rec_id, b_id, has_clapped=True)
    assert toggled == {"success": True, "has_clapped": False}

    toggled = await repo.toggle_clap(session, rec_id, a_id, has_clapped=False)
    assert toggled == {"success": True, "has_clapped": True}

    summary = await repo.clap_summary(session, [rec_id], b_id)
    assert summary[rec_id] == {"clap_count": 1, "user_has_clapped": False}


# ==========================================
# WEEKLY DIGESTS
# ==========================================

@pytest.mark.asyncio
async def test_upsert_weekly_digest_is_keyed_by_window(session):
    first = await repo.upsert_weekly_digest(session, date(2024, 6, 3), date(2024, 6, 9), {"total_recognitions": 1})
    second = await repo.upsert_weekly_digest(session, date(2024, 6, 3), date(2024, 6, 9), {"total_recognitions": 5})
    other = await repo.upsert_weekly_digest(session, date(2024, 6, 10), date(2024, 6, 16), {"total_recognitions": 2})

    assert second.id == first.id
    assert second.stats_json == {"total_recognitions": 5}
    assert other.id != first.id

    digests = await repo.fetch_weekly_digests(session)
    assert [d.week_start for d in digests] == [date(2024, 6, 10), date(2024, 6, 3)]

    fetched = await repo.fetch_weekly_digest(session, date(2024, 6, 3))
    assert fetched.stats_json == {"total_recognitions": 5}
    assert await repo.fetch_weekly_digest(session, date(2024, 5, 27)) is None


# ==========================================
# BADGES
# ==========================================

@pytest.mark.asyncio
async def test_badges_assign_and_remove(session):
    a = await add_user(session, "Aoi")
    helper = await repo.upsert_badge(session, "helper", "Helper", "🦸")
    again = await repo.upsert_badge(session, "helper", "Super Helper", "🦸")
    assert again.id == helper.id
    assert again.label == "Super Helper"

    week = date(2024, 6, 3)
    award = await repo.assign_badge(session, a.id, helper.id, week)

    mine = await repo.fetch_user_badges(session, a.id)
    assert mine[0]["badge"]["key"] == "helper"
    assert await repo.fetch_user_badges(session, a.id, date(2024, 6, 10)) == []

    week_awards = await repo.fetch_week_badges(session, week)
    assert week_awards[0]["user"]["name"] == "Aoi"

    assert await repo.remove_badge(session, award.id) is True
    assert await repo.remove_badge(session, award.id) is False


# ==========================================
# ADMIN
# ==========================================

@pytest.mark.asyncio
async def test_delete_all_history(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    rec = await add_recognition(session, a.id, b.id, NOW)
    await repo.add_clap(session, rec.id, b.id)
    await repo.upsert_weekly_digest(session, date(2024, 6, 3), date(2024, 6, 9), {})

    deleted = await repo.delete_all_history(session)

    assert deleted == {"reactions": 1, "recognitions": 1, "weekly_digests": 1}
    assert await repo.count_recognitions(session, NOW - timedelta(days=1), NOW + timedelta(days=1)) == 0
    # Users are untouched
    assert len(await repo.list_users(session)) == 2


@pytest.mark.asyncio
async def test_delete_recent_history_keeps_older(session):
    a = await add_user(session, "Aoi")
    b = await add_user(session, "Ben")
    old = await add_recognition(session, a.id, b.id, NOW - timedelta(hours=30))
    recent = await add_recognition(session, a.id, b.id, NOW - timedelta(hours=2))
    await repo.add_clap(session, recent.id, b.id)

    deleted = await repo.delete_recent_history(session, now=NOW)

    assert deleted == {"reactions": 1, "recognitions": 1}
    remaining = await repo.list_recognitions(session, NOW - timedelta(days=2), NOW)
    assert [r.id for r in remaining] == [old.id]


@pytest.mark.asyncio
async def test_write_failure_is_wrapped_and_rolled_back():
    session = AsyncMock()
    session.add = lambda obj: None
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("read only"))

    with pytest.raises(WriteError):
        await repo.create_user(session, "Aoi")

    session.rollback.assert_awaited_once()
