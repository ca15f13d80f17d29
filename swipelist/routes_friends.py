import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, display_name_for, get_current_identity, normalize_email
from .database import get_db
from .models import EmailWatchlistItem, Friendship
from .ratelimit import FRIEND_REQUEST_RATE_LIMIT, limiter
from .routes_watchlist import serialize_movie_row
from .store import (
    FRIEND_STATUS_ACCEPTED,
    FRIEND_STATUS_PENDING,
    are_friends,
    find_friendship,
    friend_pair,
    list_owned,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/friends", tags=["friends"])


class FriendRequest(BaseModel):
    friend_email: EmailStr


class UpdateFriendshipRequest(BaseModel):
    status: Literal["accepted", "rejected"]


def _serialize_friendship(friendship: Friendship, viewer_email: str) -> dict:
    outgoing = friendship.requester_email == viewer_email
    friend_email = friendship.recipient_email if outgoing else friendship.requester_email
    return {
        "id": friendship.id,
        "status": friendship.status,
        "direction": "outgoing" if outgoing else "incoming",
        "friend": {
            "email": friend_email,
            "display_name": display_name_for(friend_email),
        },
        "created_at": friendship.created_at.isoformat() if friendship.created_at else None,
        "updated_at": friendship.updated_at.isoformat() if friendship.updated_at else None,
    }


async def _get_friendship_or_404(db: AsyncSession, friendship_id: int) -> Friendship:
    friendship = (
        await db.execute(select(Friendship).where(Friendship.id == friendship_id))
    ).scalar_one_or_none()
    if not friendship:
        raise HTTPException(status_code=404, detail="Friendship not found")
    return friendship


@router.get("")
async def list_friends(
    status: Literal["accepted", "pending", "sent", "all"] = Query("accepted"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    email = identity.email
    query = select(Friendship)
    if status == "pending":
        query = query.where(
            Friendship.recipient_email == email,
            Friendship.status == FRIEND_STATUS_PENDING,
        )
    elif status == "sent":
        query = query.where(
            Friendship.requester_email == email,
            Friendship.status == FRIEND_STATUS_PENDING,
        )
    else:
        query = query.where(
            or_(
                Friendship.requester_email == email,
                Friendship.recipient_email == email,
            )
        )
        if status == "accepted":
            query = query.where(Friendship.status == FRIEND_STATUS_ACCEPTED)

    rows = (await db.execute(query.order_by(Friendship.created_at.asc()))).scalars().all()
    return [_serialize_friendship(row, email) for row in rows]


@router.post("")
@limiter.limit(FRIEND_REQUEST_RATE_LIMIT)
async def send_friend_request(
    request: Request,
    body: FriendRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    friend_email = normalize_email(body.friend_email)
    if friend_email == identity.email:
        raise HTTPException(status_code=400, detail="You cannot add yourself as a friend")

    existing = await find_friendship(db, identity.email, friend_email)
    if existing:
        if existing.status == FRIEND_STATUS_ACCEPTED:
            raise HTTPException(status_code=400, detail="You are already friends with this user")
        if existing.recipient_email == identity.email:
            existing.status = FRIEND_STATUS_ACCEPTED
            existing.updated_at = datetime.now(timezone.utc)
            await db.commit()
            logger.info("Friend request accepted (requester=%s, recipient=%s)", friend_email, identity.email)
            return {
                "success": True,
                "message": "Friend request accepted",
                "friendship": _serialize_friendship(existing, identity.email),
            }
        raise HTTPException(status_code=400, detail="Friend request already sent")

    low, high = friend_pair(identity.email, friend_email)
    now = datetime.now(timezone.utc)
    friendship = Friendship(
        requester_email=identity.email,
        recipient_email=friend_email,
        pair_low=low,
        pair_high=high,
        status=FRIEND_STATUS_PENDING,
        created_at=now,
        updated_at=now,
    )
    db.add(friendship)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Friend request already sent")

    logger.info("Friend request sent (requester=%s, recipient=%s)", identity.email, friend_email)
    return {
        "success": True,
        "message": "Friend request sent",
        "friendship": _serialize_friendship(friendship, identity.email),
    }


@router.patch("/{friendship_id}")
async def update_friendship(
    friendship_id: int,
    body: UpdateFriendshipRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    friendship = await _get_friendship_or_404(db, friendship_id)
    if friendship.recipient_email != identity.email:
        raise HTTPException(status_code=403, detail="You are not authorized to update this friendship")
    if friendship.status != FRIEND_STATUS_PENDING:
        raise HTTPException(status_code=400, detail="This friendship is not pending")

    if body.status == "rejected":
        await db.delete(friendship)
        await db.commit()
        return {"success": True, "message": "Friend request rejected", "friendship": None}

    friendship.status = FRIEND_STATUS_ACCEPTED
    friendship.updated_at = datetime.now(timezone.utc)
    await db.commit()
    return {
        "success": True,
        "message": "Friend request accepted",
        "friendship": _serialize_friendship(friendship, identity.email),
    }


@router.delete("/{friendship_id}")
async def remove_friendship(
    friendship_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    friendship = await _get_friendship_or_404(db, friendship_id)
    if identity.email not in (friendship.requester_email, friendship.recipient_email):
        raise HTTPException(status_code=404, detail="Friendship not found")
    await db.delete(friendship)
    await db.commit()
    return {"success": True, "message": "Friendship removed"}


@router.get("/{friend_email}/watchlist")
async def get_friend_watchlist(
    friend_email: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    normalized = normalize_email(friend_email)
    if not normalized:
        raise HTTPException(status_code=400, detail="Friend email is required")
    if not await are_friends(db, identity.email, normalized):
        raise HTTPException(status_code=403, detail="You are not friends with this user")

    rows = await list_owned(db, EmailWatchlistItem, normalized)
    return {
        "friend": {"email": normalized, "display_name": display_name_for(normalized)},
        "watchlist": [serialize_movie_row(row) for row in rows],
    }
