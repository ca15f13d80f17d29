import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, get_current_identity
from .database import get_db
from .models import WatchlistItem
from .store import delete_owned, list_owned, upsert_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/watchlist", tags=["watchlist"])

MOVIE_UPDATE_COLUMNS = ("title", "poster_path", "release_date", "overview", "vote_average", "vote_count")


class MovieRequest(BaseModel):
    id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=500)
    poster_path: str | None = Field(default=None, max_length=500)
    release_date: str | None = Field(default=None, max_length=40)
    overview: str | None = None
    vote_average: float | None = None
    vote_count: int | None = None


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


def movie_values(body: MovieRequest) -> dict:
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    return {
        "movie_id": body.id,
        "title": title,
        "poster_path": _clean(body.poster_path),
        "release_date": _clean(body.release_date),
        "overview": _clean(body.overview),
        "vote_average": body.vote_average,
        "vote_count": body.vote_count,
    }


def serialize_movie_row(item) -> dict:
    return {
        "id": str(item.id),
        "movie_id": int(item.movie_id),
        "title": item.title,
        "poster_path": item.poster_path,
        "release_date": item.release_date,
        "overview": item.overview,
        "vote_average": item.vote_average,
        "vote_count": item.vote_count,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


def validate_external_id(value: int, label: str = "movie id") -> int:
    if value <= 0:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    return value


@router.get("")
async def list_watchlist(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_owned(db, WatchlistItem, identity.email)
    return [serialize_movie_row(row) for row in rows]


@router.post("")
async def add_watchlist_item(
    body: MovieRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    values = movie_values(body)
    await upsert_row(
        db,
        WatchlistItem,
        {"owner_email": identity.email, **values},
        conflict_columns=("owner_email", "movie_id"),
        update_columns=MOVIE_UPDATE_COLUMNS,
    )
    await db.commit()
    logger.info("Watchlist upsert (owner=%s, movie_id=%s)", identity.email, body.id)
    return {"success": True, "message": "Movie added to watchlist"}


@router.delete("/{movie_id}")
async def remove_watchlist_item(
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    removed = await delete_owned(db, WatchlistItem, identity.email, WatchlistItem.movie_id, movie_id)
    await db.commit()
    return {"success": True, "message": "Movie removed from watchlist", "removed": removed > 0}
