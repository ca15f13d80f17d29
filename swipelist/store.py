import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EmailWatchlistItem, Friendship, WatchedMovie, Watchlist, WatchlistMovie

logger = logging.getLogger(__name__)

FRIEND_STATUS_PENDING = "pending"
FRIEND_STATUS_ACCEPTED = "accepted"

DEFAULT_WATCHLIST_NAME = "Unsorted"
DEFAULT_WATCHLIST_DESCRIPTION = "Movies without a category"
DEFAULT_WATCHLIST_COLOR = "#3b82f6"
DEFAULT_WATCHLIST_ICON = "inbox"

MOVIE_FIELDS = ("title", "poster_path", "release_date", "overview", "vote_average", "vote_count")

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    try:
        return _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"Upsert is not supported on the {dialect!r} dialect")


async def upsert_row(
    db: AsyncSession,
    model,
    values: dict,
    *,
    conflict_columns: Sequence[str],
    update_columns: Iterable[str],
) -> None:
    """Insert ``values`` or overwrite ``update_columns`` of the row that owns the same key.

    Runs as one ``INSERT ... ON CONFLICT DO UPDATE`` statement, so two racing
    adds for the same key converge on a single row.
    """
    insert = _insert_for(db)
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    await db.execute(stmt)


async def list_owned(db: AsyncSession, model, owner_email: str, *order_by) -> list:
    ordering = order_by or (model.created_at.asc(),)
    rows = (
        await db.execute(
            select(model)
            .where(model.owner_email == owner_email)
            .order_by(*ordering)
        )
    ).scalars().all()
    return list(rows)


async def delete_owned(db: AsyncSession, model, owner_email: str, key_column, key) -> int:
    result = await db.execute(
        delete(model).where(
            model.owner_email == owner_email,
            key_column == key,
        )
    )
    return int(result.rowcount or 0)


def friend_pair(first_email: str, second_email: str) -> tuple[str, str]:
    return tuple(sorted((first_email, second_email)))


async def find_friendship(db: AsyncSession, first_email: str, second_email: str) -> Friendship | None:
    low, high = friend_pair(first_email, second_email)
    return (
        await db.execute(
            select(Friendship).where(
                Friendship.pair_low == low,
                Friendship.pair_high == high,
            )
        )
    ).scalar_one_or_none()


async def are_friends(db: AsyncSession, first_email: str, second_email: str) -> bool:
    friendship = await find_friendship(db, first_email, second_email)
    return friendship is not None and friendship.status == FRIEND_STATUS_ACCEPTED


async def accepted_friend_emails(db: AsyncSession, email: str) -> list[str]:
    rows = (
        await db.execute(
            select(Friendship.requester_email, Friendship.recipient_email).where(
                or_(
                    Friendship.requester_email == email,
                    Friendship.recipient_email == email,
                ),
                Friendship.status == FRIEND_STATUS_ACCEPTED,
            )
        )
    ).all()
    return [
        requester if recipient == email else recipient
        for requester, recipient in rows
    ]


async def friends_who_watched(db: AsyncSession, email: str, movie_id: int) -> list[WatchedMovie]:
    friend_emails = await accepted_friend_emails(db, email)
    if not friend_emails:
        return []
    rows = (
        await db.execute(
            select(WatchedMovie)
            .where(
                WatchedMovie.movie_id == movie_id,
                WatchedMovie.owner_email.in_(friend_emails),
            )
            .order_by(WatchedMovie.watched_at.desc())
        )
    ).scalars().all()
    return list(rows)


async def get_default_watchlist(db: AsyncSession, owner_email: str) -> Watchlist | None:
    return (
        await db.execute(
            select(Watchlist)
            .where(
                Watchlist.owner_email == owner_email,
                Watchlist.is_default.is_(True),
            )
            .limit(1)
        )
    ).scalar_one_or_none()


async def create_default_watchlist(db: AsyncSession, owner_email: str) -> Watchlist:
    now = datetime.now(timezone.utc)
    watchlist = Watchlist(
        owner_email=owner_email,
        name=DEFAULT_WATCHLIST_NAME,
        description=DEFAULT_WATCHLIST_DESCRIPTION,
        color=DEFAULT_WATCHLIST_COLOR,
        icon=DEFAULT_WATCHLIST_ICON,
        is_default=True,
        sort_order=0,
        created_at=now,
        updated_at=now,
    )
    db.add(watchlist)
    await db.flush()
    return watchlist


async def copy_movies_into(db: AsyncSession, target: Watchlist, movies: Sequence) -> tuple[int, int]:
    """Copy movie rows into ``target``, skipping movies it already holds.

    Returns ``(copied, skipped)``.
    """
    existing_ids = set(
        (
            await db.execute(
                select(WatchlistMovie.movie_id).where(WatchlistMovie.watchlist_id == target.id)
            )
        ).scalars().all()
    )
    copied = 0
    skipped = 0
    for movie in movies:
        if movie.movie_id in existing_ids:
            skipped += 1
            continue
        db.add(
            WatchlistMovie(
                watchlist_id=target.id,
                owner_email=target.owner_email,
                movie_id=movie.movie_id,
                notes=getattr(movie, "notes", None),
                priority=getattr(movie, "priority", 0) or 0,
                **{field: getattr(movie, field) for field in MOVIE_FIELDS},
            )
        )
        existing_ids.add(movie.movie_id)
        copied += 1
    await db.flush()
    return copied, skipped


async def migrate_legacy_watchlist(db: AsyncSession, owner_email: str) -> dict:
    """Move the legacy single watchlist into a fresh default list.

    A caller who already has a default list has been migrated before; the
    result then carries ``migrated=False`` and zero counts. Nothing is committed here;
    the caller commits once so creation and copy land together.
    """
    existing_default = await get_default_watchlist(db, owner_email)
    if existing_default is not None:
        return {
            "migrated": False,
            "watchlist_id": existing_default.id,
            "stats": {"total": 0, "migrated": 0, "skipped": 0},
        }

    legacy_rows = await list_owned(db, EmailWatchlistItem, owner_email)
    default_list = await create_default_watchlist(db, owner_email)
    copied, skipped = await copy_movies_into(db, default_list, legacy_rows)
    logger.info(
        "Migrated legacy watchlist (owner=%s, total=%d, migrated=%d, skipped=%d)",
        owner_email,
        len(legacy_rows),
        copied,
        skipped,
    )
    return {
        "migrated": True,
        "watchlist_id": default_list.id,
        "stats": {"total": len(legacy_rows), "migrated": copied, "skipped": skipped},
    }


async def count_movies_by_list(db: AsyncSession, list_ids: Sequence[int]) -> dict[int, int]:
    if not list_ids:
        return {}
    rows = (
        await db.execute(
            select(WatchlistMovie.watchlist_id, func.count(WatchlistMovie.id))
            .where(WatchlistMovie.watchlist_id.in_(list(list_ids)))
            .group_by(WatchlistMovie.watchlist_id)
        )
    ).all()
    return {int(list_id): int(count or 0) for list_id, count in rows}


async def find_watched(db: AsyncSession, owner_email: str, movie_id: int) -> WatchedMovie | None:
    return (
        await db.execute(
            select(WatchedMovie).where(
                WatchedMovie.owner_email == owner_email,
                WatchedMovie.movie_id == movie_id,
            )
        )
    ).scalar_one_or_none()
