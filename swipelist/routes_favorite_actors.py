import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, get_current_identity
from .database import get_db
from .models import FavoriteActor
from .routes_watchlist import validate_external_id
from .store import delete_owned, list_owned, upsert_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/favorite-actors", tags=["favorite-actors"])


class FavoriteActorRequest(BaseModel):
    id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=300)
    profile_path: str | None = Field(default=None, max_length=500)
    known_for_department: str | None = Field(default=None, max_length=100)
    popularity: float | None = None


def _serialize_favorite_actor(actor: FavoriteActor) -> dict:
    return {
        "id": str(actor.id),
        "actor_id": int(actor.actor_id),
        "name": actor.name,
        "profile_path": actor.profile_path,
        "known_for_department": actor.known_for_department,
        "popularity": actor.popularity,
        "created_at": actor.created_at.isoformat() if actor.created_at else None,
    }


@router.get("")
async def list_favorite_actors(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_owned(db, FavoriteActor, identity.email)
    return [_serialize_favorite_actor(row) for row in rows]


@router.post("")
async def add_favorite_actor(
    body: FavoriteActorRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    await upsert_row(
        db,
        FavoriteActor,
        {
            "owner_email": identity.email,
            "actor_id": body.id,
            "name": name,
            "profile_path": (body.profile_path or "").strip() or None,
            "known_for_department": (body.known_for_department or "").strip() or None,
            "popularity": body.popularity,
        },
        conflict_columns=("owner_email", "actor_id"),
        update_columns=("name", "profile_path", "known_for_department", "popularity"),
    )
    await db.commit()
    logger.info("Favorite actor upsert (owner=%s, actor_id=%s)", identity.email, body.id)
    return {"success": True, "message": "Actor added to favorites"}


@router.delete("/{actor_id}")
async def remove_favorite_actor(
    actor_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    validate_external_id(actor_id, "actor id")
    removed = await delete_owned(db, FavoriteActor, identity.email, FavoriteActor.actor_id, actor_id)
    await db.commit()
    return {"success": True, "message": "Actor removed from favorites", "removed": removed > 0}
