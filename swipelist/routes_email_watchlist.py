import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, get_current_identity
from .database import get_db
from .models import EmailWatchlistItem
from .routes_watchlist import (
    MOVIE_UPDATE_COLUMNS,
    MovieRequest,
    movie_values,
    serialize_movie_row,
    validate_external_id,
)
from .store import delete_owned, list_owned, upsert_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/email-watchlist", tags=["email-watchlist"])


@router.get("")
async def list_email_watchlist(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_owned(db, EmailWatchlistItem, identity.email)
    return [serialize_movie_row(row) for row in rows]


@router.post("")
async def add_email_watchlist_item(
    body: MovieRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    values = movie_values(body)
    await upsert_row(
        db,
        EmailWatchlistItem,
        {"owner_email": identity.email, **values},
        conflict_columns=("owner_email", "movie_id"),
        update_columns=MOVIE_UPDATE_COLUMNS,
    )
    await db.commit()
    logger.info("Email watchlist upsert (owner=%s, movie_id=%s)", identity.email, body.id)
    return {"success": True, "message": "Movie added to watchlist"}


@router.delete("/{movie_id}")
async def remove_email_watchlist_item(
    movie_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(movie_id)
    removed = await delete_owned(db, EmailWatchlistItem, identity.email, EmailWatchlistItem.movie_id, movie_id)
    await db.commit()
    return {"success": True, "message": "Movie removed from watchlist", "removed": removed > 0}
