import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity, get_current_identity
from .database import get_db
from .store import get_default_watchlist, migrate_legacy_watchlist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/migrate-watchlist", tags=["watchlists"])


@router.post("")
async def migrate_watchlist(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await migrate_legacy_watchlist(db, identity.email)
        if result["migrated"]:
            await db.commit()
    except IntegrityError:
        await db.rollback()
        # A concurrent run already created the default list.
        existing_default = await get_default_watchlist(db, identity.email)
        if existing_default is None:
            raise
        logger.info("Concurrent watchlist migration detected (owner=%s)", identity.email)
        result = {
            "migrated": False,
            "watchlist_id": existing_default.id,
            "stats": {"total": 0, "migrated": 0, "skipped": 0},
        }

    return {
        "success": True,
        "message": "Migration completed" if result["migrated"] else "Nothing to migrate",
        "watchlist_id": result["watchlist_id"],
        "stats": result["stats"],
    }
