"""PraiseBot API service."""

import secrets
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.api.base import create_app
from praisebot.core import repositories as repo
from praisebot.core.db import get_db
from praisebot.core.errors import PraiseBotError, QueryError, ValidationError, WriteError
from praisebot.core.logging import get_logger
from praisebot.core.models import DEFAULT_EFFECT_KEY
from praisebot.core.settings import settings
from praisebot.core.time import business_date, localize, utc_now, week_range
from praisebot.digest.aggregator import generate_weekly_digest
from praisebot.hype.ladder import hype_stage, streak_caption
from praisebot.hype.streak import compute_hype_stats
from praisebot.hype.topics import daily_topic, format_topic_clipboard

app = create_app("api")
logger = get_logger(__name__)

security = HTTPBasic(auto_error=False)


# ==========================================
# REQUEST / RESPONSE MODELS
# ==========================================

class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    dept: Optional[str] = Field(default=None, max_length=200)


class RecognitionCreateRequest(BaseModel):
    from_user_id: str
    to_user_id: str
    message: str = Field(default="", max_length=2000)
    effect_key: str = DEFAULT_EFFECT_KEY


class ClapRequest(BaseModel):
    user_id: str
    has_clapped: bool = False


class DigestRunRequest(BaseModel):
    """Either a reference date or an explicit window."""
    reference_date: Optional[date] = Field(default=None, description="Any day inside the target week")
    week_start: Optional[datetime] = Field(
        default=None,
        description="Inclusive window start. Any UTC offset is accepted; a value without one is read as business-local time",
    )
    week_end: Optional[datetime] = Field(
        default=None,
        description="Inclusive window end, same timezone rule as week_start. The stored digest is keyed by the business-local dates of both bounds",
    )


class DigestResponse(BaseModel):
    id: str
    week_start: str
    week_end: str
    stats_json: Dict[str, Any]
    created_at: Optional[str] = None


class BadgeAssignRequest(BaseModel):
    user_id: str
    badge_id: str
    week_start: date


class HypeResponse(BaseModel):
    today_count: int
    streak_days: int
    streak_caption: str
    stage: Dict[str, Any]
    topic: str


def _user_dict(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "dept": user.dept,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _raise_for(error: PraiseBotError):
    """Translate repository errors into HTTP errors."""
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=400, detail=str(error))
    if isinstance(error, QueryError):
        raise HTTPException(status_code=502, detail=str(error))
    raise HTTPException(status_code=500, detail=str(error))


def require_admin(credentials: Optional[HTTPBasicCredentials] = Depends(security)):
    """Verify basic auth credentials if admin auth is enabled."""
    if not settings.admin_auth_enabled:
        return None

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Basic"},
        )

    is_correct_username = secrets.compare_digest(credentials.username, settings.admin_username)
    is_correct_password = secrets.compare_digest(credentials.password, settings.admin_password)

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


# ==========================================
# HYPE
# ==========================================

@app.get("/hype", response_model=HypeResponse)
async def get_hype(db: AsyncSession = Depends(get_db)):
    """Today's count, streak, thermometer stage and prompt of the day."""
    now = utc_now()
    stats = await compute_hype_stats(db, now)
    return HypeResponse(
        today_count=stats.today_count,
        streak_days=stats.streak_days,
        streak_caption=streak_caption(stats.streak_days),
        stage=hype_stage(stats.today_count).to_dict(),
        topic=daily_topic(now),
    )


@app.get("/hype/topic")
async def get_topic():
    """Prompt of the day and the text to copy."""
    now = utc_now()
    topic = daily_topic(now)
    return {
        "date": business_date(now).isoformat(),
        "topic": topic,
        "clipboard_text": format_topic_clipboard(topic),
    }


# ==========================================
# WEEKLY DIGESTS
# ==========================================

@app.post("/digests/run", response_model=DigestResponse)
async def run_digest(
    request: DigestRunRequest,
    db: AsyncSession = Depends(get_db),
    username: Optional[str] = Depends(require_admin),
):
    """
    Generate (or regenerate) the digest for one week.

    With explicit week_start/week_end the window is used as given; otherwise
    the Monday-to-Sunday week around reference_date (default today).
    """
    if request.week_start is not None and request.week_end is not None:
        start, end = localize(request.week_start), localize(request.week_end)
        if end < start:
            raise HTTPException(status_code=422, detail="week_end must not precede week_start")
    elif request.week_start is not None or request.week_end is not None:
        raise HTTPException(status_code=422, detail="week_start and week_end must be given together")
    else:
        start, end = week_range(request.reference_date or business_date(utc_now()))

    logger.info(
        "Digest run requested via API",
        extra={"week_start": start.isoformat(), "week_end": end.isoformat(), "user": username},
    )

    result = await generate_weekly_digest(db, start, end)
    if not result.ok:
        raise HTTPException(status_code=500, detail=f"Weekly digest failed: {result.error}")

    return DigestResponse(**result.digest.to_dict())


@app.get("/digests", response_model=List[DigestResponse])
async def list_digests(limit: int = Query(default=10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    try:
        digests = await repo.fetch_weekly_digests(db, limit)
    except PraiseBotError as e:
        _raise_for(e)
    return [DigestResponse(**d.to_dict()) for d in digests]


@app.get("/digests/{week_start}", response_model=DigestResponse)
async def get_digest(week_start: date, db: AsyncSession = Depends(get_db)):
    try:
        digest = await repo.fetch_weekly_digest(db, week_start)
    except PraiseBotError as e:
        _raise_for(e)
    if digest is None:
        raise HTTPException(status_code=404, detail=f"No digest for week starting {week_start}")
    return DigestResponse(**digest.to_dict())


# ==========================================
# USERS
# ==========================================

@app.get("/users")
async def list_users(db: AsyncSession = Depends(get_db)):
    try:
        users = await repo.list_users(db)
    except PraiseBotError as e:
        _raise_for(e)
    return [_user_dict(u) for u in users]


@app.get("/users/search")
async def search_users(q: str = Query(..., min_length=1), db: AsyncSession = Depends(get_db)):
    try:
        users = await repo.search_users(db, q)
    except PraiseBotError as e:
        _raise_for(e)
    return [_user_dict(u) for u in users]


@app.post("/users", status_code=201)
async def create_user(request: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    try:
        user = await repo.create_user(db, request.name, request.dept)
    except PraiseBotError as e:
        _raise_for(e)
    return _user_dict(user)


@app.get("/users/{user_id}")
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    try:
        user = await repo.get_user(db, user_id)
    except PraiseBotError as e:
        _raise_for(e)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_dict(user)


@app.get("/users/{user_id}/recognitions")
async def user_recognitions(
    user_id: str,
    kind: str = Query(default="received", pattern="^(received|sent)$"),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Profile lists: latest recognitions the user received or sent, newest first."""
    try:
        recognitions = await repo.fetch_recognitions_for_user(db, user_id, kind, limit)
    except PraiseBotError as e:
        _raise_for(e)
    return [rec.to_dict() for rec in recognitions]


@app.get("/users/{user_id}/recent-recipients")
async def recent_recipients(user_id: str, db: AsyncSession = Depends(get_db)):
    try:
        users = await repo.fetch_recent_recipients(db, user_id)
    except PraiseBotError as e:
        _raise_for(e)
    return [_user_dict(u) for u in users]


# ==========================================
# RECOGNITIONS
# ==========================================

@app.post("/recognitions", status_code=201)
async def create_recognition(request: RecognitionCreateRequest, db: AsyncSession = Depends(get_db)):
    try:
        recognition = await repo.create_recognition(
            db,
            request.from_user_id,
            request.to_user_id,
            request.message,
            request.effect_key,
        )
    except PraiseBotError as e:
        _raise_for(e)
    return recognition.to_dict()


@app.get("/recognitions")
async def get_feed(
    period: str = Query(default="all", pattern="^(week|month|all)$"),
    person_mode: str = Query(default="any", pattern="^(any|from|to)$"),
    person_id: Optional[str] = None,
    q: Optional[str] = None,
    current_user_id: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Feed page with sender/recipient details and clap state."""
    filters = repo.FeedFilters(period=period, person_mode=person_mode, person_id=person_id, query=q)
    try:
        recognitions = await repo.fetch_feed(db, filters, now=utc_now(), limit=limit, offset=offset)
        if not recognitions:
            return []
        user_ids = {r.from_user_id for r in recognitions} | {r.to_user_id for r in recognitions}
        users = {u.id: u for u in await repo.list_users_by_ids(db, user_ids)}
        claps = await repo.clap_summary(db, [r.id for r in recognitions], current_user_id)
    except PraiseBotError as e:
        _raise_for(e)

    items = []
    for rec in recognitions:
        item = rec.to_dict()
        sender = users.get(rec.from_user_id)
        recipient = users.get(rec.to_user_id)
        item["from_user"] = _user_dict(sender) if sender else None
        item["to_user"] = _user_dict(recipient) if recipient else None
        item.update(claps[rec.id])
        items.append(item)
    return items


@app.post("/recognitions/{recognition_id}/clap")
async def toggle_clap(recognition_id: str, request: ClapRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await repo.toggle_clap(db, recognition_id, request.user_id, request.has_clapped)
    except PraiseBotError as e:
        _raise_for(e)


# ==========================================
# BADGES
# ==========================================

@app.get("/badges")
async def list_badges(db: AsyncSession = Depends(get_db)):
    try:
        badges = await repo.list_badges(db)
    except PraiseBotError as e:
        _raise_for(e)
    return [{"id": b.id, "key": b.key, "label": b.label, "emoji": b.emoji} for b in badges]


@app.get("/badges/week/{week_start}")
async def week_badges(week_start: date, db: AsyncSession = Depends(get_db)):
    try:
        return await repo.fetch_week_badges(db, week_start)
    except PraiseBotError as e:
        _raise_for(e)


@app.get("/users/{user_id}/badges")
async def user_badges(user_id: str, week_start: Optional[date] = None, db: AsyncSession = Depends(get_db)):
    try:
        return await repo.fetch_user_badges(db, user_id, week_start)
    except PraiseBotError as e:
        _raise_for(e)


@app.post("/badges/assign", status_code=201)
async def assign_badge(
    request: BadgeAssignRequest,
    db: AsyncSession = Depends(get_db),
    _: Optional[str] = Depends(require_admin),
):
    try:
        user_badge = await repo.assign_badge(db, request.user_id, request.badge_id, request.week_start)
    except PraiseBotError as e:
        _raise_for(e)
    return {
        "id": user_badge.id,
        "user_id": user_badge.user_id,
        "badge_id": user_badge.badge_id,
        "week_start": user_badge.week_start.isoformat(),
    }


@app.delete("/badges/assignments/{user_badge_id}")
async def remove_badge(
    user_badge_id: str,
    db: AsyncSession = Depends(get_db),
    _: Optional[str] = Depends(require_admin),
):
    try:
        removed = await repo.remove_badge(db, user_badge_id)
    except PraiseBotError as e:
        _raise_for(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Badge assignment not found")
    return {"success": True}


# ==========================================
# ADMIN
# ==========================================

@app.delete("/admin/history")
async def delete_history(
    include_badges: bool = False,
    recent_only: bool = False,
    db: AsyncSession = Depends(get_db),
    username: Optional[str] = Depends(require_admin),
):
    """Wipe recognition history, or only the last 24 hours of it."""
    logger.warning(
        "History deletion requested",
        extra={"include_badges": include_badges, "recent_only": recent_only, "user": username},
    )
    try:
        if recent_only:
            deleted = await repo.delete_recent_history(db, now=utc_now())
        else:
            deleted = await repo.delete_all_history(db, include_badges=include_badges)
    except WriteError as e:
        raise HTTPException(status_code=500, detail=f"History deletion failed: {e}")
    return {"success": True, "deleted": deleted}


if __name__ == "__main__":
    uvicorn.run(
        "praisebot.api.app:app",
        host=settings.service_host,
        port=settings.service_port or 8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
