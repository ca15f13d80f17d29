import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, get_current_identity
from .database import get_db
from .models import Watchlist, WatchlistMovie
from .routes_watchlist import MOVIE_UPDATE_COLUMNS, MovieRequest, movie_values, validate_external_id
from .store import (
    DEFAULT_WATCHLIST_NAME,
    copy_movies_into,
    count_movies_by_list,
    create_default_watchlist,
    get_default_watchlist,
    upsert_row,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/watchlists", tags=["watchlists"])

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class CreateWatchlistRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    color: str | None = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: str | None = Field(default=None, max_length=40)


class UpdateWatchlistRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    color: str | None = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: str | None = Field(default=None, max_length=40)
    sort_order: int | None = Field(default=None, ge=0)


class AddWatchlistMovieRequest(MovieRequest):
    notes: str | None = Field(default=None, max_length=2000)
    priority: int = Field(default=0, ge=0, le=10)


class UpdateWatchlistMovieRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)
    priority: int | None = Field(default=None, ge=0, le=10)


def _normalize_list_name(name: str) -> str:
    return " ".join(name.strip().split())


def _serialize_watchlist(watchlist: Watchlist, movie_count: int = 0) -> dict:
    return {
        "id": watchlist.id,
        "name": watchlist.name,
        "description": watchlist.description,
        "color": watchlist.color,
        "icon": watchlist.icon,
        "is_default": bool(watchlist.is_default),
        "sort_order": int(watchlist.sort_order or 0),
        "movie_count": int(movie_count),
        "created_at": watchlist.created_at.isoformat() if watchlist.created_at else None,
        "updated_at": watchlist.updated_at.isoformat() if watchlist.updated_at else None,
    }


def _serialize_watchlist_movie(movie: WatchlistMovie) -> dict:
    return {
        "id": movie.id,
        "watchlist_id": movie.watchlist_id,
        "movie_id": int(movie.movie_id),
        "title": movie.title,
        "poster_path": movie.poster_path,
        "release_date": movie.release_date,
        "overview": movie.overview,
        "vote_average": movie.vote_average,
        "vote_count": movie.vote_count,
        "notes": movie.notes,
        "priority": int(movie.priority or 0),
        "created_at": movie.created_at.isoformat() if movie.created_at else None,
    }


async def _get_watchlist_or_404(db: AsyncSession, owner_email: str, watchlist_id: int) -> Watchlist:
    watchlist = (
        await db.execute(
            select(Watchlist).where(
                Watchlist.id == watchlist_id,
                Watchlist.owner_email == owner_email,
            )
        )
    ).scalar_one_or_none()
    if not watchlist:
        raise HTTPException(status_code=404, detail="Watchlist not found")
    return watchlist


async def _name_taken(db: AsyncSession, owner_email: str, name: str, exclude_id: int | None = None) -> bool:
    # The default list name belongs to the default list alone.
    if name.lower() == DEFAULT_WATCHLIST_NAME.lower():
        return True
    query = select(Watchlist.id).where(
        Watchlist.owner_email == owner_email,
        func.lower(Watchlist.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.where(Watchlist.id != exclude_id)
    return (await db.execute(query.limit(1))).scalar_one_or_none() is not None


async def _list_movies(db: AsyncSession, watchlist_id: int) -> list[WatchlistMovie]:
    rows = (
        await db.execute(
            select(WatchlistMovie)
            .where(WatchlistMovie.watchlist_id == watchlist_id)
            .order_by(WatchlistMovie.priority.desc(), WatchlistMovie.created_at.asc())
        )
    ).scalars().all()
    return list(rows)


@router.get("")
async def list_watchlists(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = (
        await db.execute(
            select(Watchlist)
            .where(Watchlist.owner_email == identity.email)
            .order_by(Watchlist.sort_order.asc(), Watchlist.created_at.desc())
        )
    ).scalars().all()
    counts = await count_movies_by_list(db, [row.id for row in rows])
    return [_serialize_watchlist(row, counts.get(row.id, 0)) for row in rows]


@router.post("")
async def create_watchlist(
    body: CreateWatchlistRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    name = _normalize_list_name(body.name)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    if await _name_taken(db, identity.email, name):
        raise HTTPException(status_code=409, detail="Watchlist with this name already exists")

    max_order = await db.scalar(
        select(func.max(Watchlist.sort_order)).where(Watchlist.owner_email == identity.email)
    )
    now = datetime.now(timezone.utc)
    watchlist = Watchlist(
        owner_email=identity.email,
        name=name,
        description=(body.description or "").strip(),
        color=body.color or "#3b82f6",
        icon=(body.icon or "").strip() or "list",
        is_default=False,
        sort_order=0 if max_order is None else int(max_order) + 1,
        created_at=now,
        updated_at=now,
    )
    db.add(watchlist)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Watchlist with this name already exists")
    return _serialize_watchlist(watchlist, 0)


@router.get("/{watchlist_id}")
async def get_watchlist(
    watchlist_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    movies = await _list_movies(db, watchlist.id)
    return {
        **_serialize_watchlist(watchlist, len(movies)),
        "movies": [_serialize_watchlist_movie(movie) for movie in movies],
    }


@router.patch("/{watchlist_id}")
async def update_watchlist(
    watchlist_id: int,
    body: UpdateWatchlistRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    if body.name is not None:
        name = _normalize_list_name(body.name)
        if not name:
            raise HTTPException(status_code=400, detail="name is required")
        if name != watchlist.name:
            if watchlist.is_default:
                raise HTTPException(status_code=400, detail="Cannot change name of default watchlist")
            if await _name_taken(db, identity.email, name, exclude_id=watchlist.id):
                raise HTTPException(status_code=409, detail="Watchlist with this name already exists")
            watchlist.name = name
    if body.description is not None:
        watchlist.description = body.description.strip()
    if body.color is not None:
        watchlist.color = body.color
    if body.icon is not None:
        watchlist.icon = body.icon.strip() or watchlist.icon
    if body.sort_order is not None:
        watchlist.sort_order = body.sort_order
    watchlist.updated_at = datetime.now(timezone.utc)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Watchlist with this name already exists")
    counts = await count_movies_by_list(db, [watchlist.id])
    return _serialize_watchlist(watchlist, counts.get(watchlist.id, 0))


@router.delete("/{watchlist_id}")
async def delete_watchlist(
    watchlist_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    if watchlist.is_default:
        raise HTTPException(status_code=400, detail="Cannot delete default watchlist")

    default_list = await get_default_watchlist(db, identity.email)
    if default_list is None:
        default_list = await create_default_watchlist(db, identity.email)
    movies = await _list_movies(db, watchlist.id)
    moved, skipped = await copy_movies_into(db, default_list, movies)
    await db.execute(delete(WatchlistMovie).where(WatchlistMovie.watchlist_id == watchlist.id))
    await db.delete(watchlist)
    await db.commit()
    logger.info(
        "Deleted watchlist (owner=%s, watchlist_id=%s, moved=%d, skipped=%d)",
        identity.email,
        watchlist_id,
        moved,
        skipped,
    )
    return {
        "success": True,
        "message": "Watchlist deleted",
        "default_watchlist_id": default_list.id,
        "moved": moved,
    }


@router.get("/{watchlist_id}/movies")
async def list_watchlist_movies(
    watchlist_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    movies = await _list_movies(db, watchlist.id)
    return [_serialize_watchlist_movie(movie) for movie in movies]


@router.post("/{watchlist_id}/movies")
async def add_watchlist_movie(
    watchlist_id: int,
    body: AddWatchlistMovieRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    values = movie_values(body)
    values.update(notes=(body.notes or "").strip() or None, priority=body.priority)
    await upsert_row(
        db,
        WatchlistMovie,
        {"watchlist_id": watchlist.id, "owner_email": identity.email, **values},
        conflict_columns=("watchlist_id", "movie_id"),
        update_columns=(*MOVIE_UPDATE_COLUMNS, "notes", "priority"),
    )
    watchlist.updated_at = datetime.now(timezone.utc)
    await db.commit()
    return {"success": True, "message": "Movie added to watchlist"}


@router.patch("/{watchlist_id}/movies/{movie_id}")
async def update_watchlist_movie(
    watchlist_id: int,
    movie_id: int,
    body: UpdateWatchlistMovieRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    movie = (
        await db.execute(
            select(WatchlistMovie).where(
                WatchlistMovie.watchlist_id == watchlist.id,
                WatchlistMovie.movie_id == movie_id,
            )
        )
    ).scalar_one_or_none()
    if not movie:
        raise HTTPException(status_code=404, detail="Movie not found in this watchlist")
    if body.notes is not None:
        movie.notes = body.notes.strip() or None
    if body.priority is not None:
        movie.priority = body.priority
    await db.commit()
    return {"success": True, "message": "Movie updated", "movie": _serialize_watchlist_movie(movie)}


@router.delete("/{watchlist_id}/movies/{movie_id}")
async def remove_watchlist_movie(
    watchlist_id: int,
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    watchlist = await _get_watchlist_or_404(db, identity.email, watchlist_id)
    movie = (
        await db.execute(
            select(WatchlistMovie).where(
                WatchlistMovie.watchlist_id == watchlist.id,
                WatchlistMovie.movie_id == movie_id,
            )
        )
    ).scalar_one_or_none()
    if not movie:
        return {"success": True, "message": "Movie removed from watchlist", "removed": False}
    await db.delete(movie)
    watchlist.updated_at = datetime.now(timezone.utc)
    await db.commit()
    return {"success": True, "message": "Movie removed from watchlist", "removed": True}
