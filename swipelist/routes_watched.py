import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, display_name_for, get_current_identity
from .database import get_db
from .models import EmailWatchlistItem, WatchedMovie
from .routes_watchlist import MOVIE_UPDATE_COLUMNS, MovieRequest, movie_values, validate_external_id
from .store import delete_owned, find_watched, friends_who_watched, list_owned, upsert_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/watched", tags=["watched"])


class AddWatchedRequest(MovieRequest):
    rating: int | None = Field(default=None, ge=1, le=10)
    comment: str | None = Field(default=None, max_length=2000)
    remove_from_watchlist: bool = True


def _serialize_watched_item(item: WatchedMovie) -> dict:
    return {
        "id": str(item.id),
        "movie_id": int(item.movie_id),
        "title": item.title,
        "poster_path": item.poster_path,
        "release_date": item.release_date,
        "overview": item.overview,
        "vote_average": item.vote_average,
        "vote_count": item.vote_count,
        "watched_at": item.watched_at.isoformat() if item.watched_at else None,
        "comment": item.comment,
        "rating": item.rating,
    }


@router.get("")
async def list_watched(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_owned(db, WatchedMovie, identity.email, WatchedMovie.watched_at.asc())
    return [_serialize_watched_item(row) for row in rows]


@router.post("")
async def add_watched_item(
    body: AddWatchedRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    values = movie_values(body)
    values.update(
        comment=(body.comment or "").strip() or None,
        rating=body.rating,
        watched_at=datetime.now(timezone.utc),
    )
    await upsert_row(
        db,
        WatchedMovie,
        {"owner_email": identity.email, **values},
        conflict_columns=("owner_email", "movie_id"),
        update_columns=(*MOVIE_UPDATE_COLUMNS, "comment", "rating", "watched_at"),
    )
    if body.remove_from_watchlist:
        await delete_owned(db, EmailWatchlistItem, identity.email, EmailWatchlistItem.movie_id, body.id)
    await db.commit()
    logger.info("Watched upsert (owner=%s, movie_id=%s)", identity.email, body.id)
    return {"success": True, "message": "Movie marked as watched"}


@router.get("/{movie_id}/friends")
async def list_friends_who_watched(
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    rows = await friends_who_watched(db, identity.email, movie_id)
    return [
        {
            "email": row.owner_email,
            "display_name": display_name_for(row.owner_email),
            "watched_at": row.watched_at.isoformat() if row.watched_at else None,
            "rating": row.rating,
        }
        for row in rows
    ]


@router.get("/{movie_id}")
async def get_watched_status(
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    row = await find_watched(db, identity.email, movie_id)
    return {"watched": row is not None, "item": _serialize_watched_item(row) if row else None}


@router.delete("/{movie_id}")
async def remove_watched_item(
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    removed = await delete_owned(db, WatchedMovie, identity.email, WatchedMovie.movie_id, movie_id)
    await db.commit()
    return {"success": True, "message": "Movie removed from watched list", "removed": removed > 0}
