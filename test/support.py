import asyncio
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from swipelist.auth import create_access_token
from swipelist.database import get_db
from swipelist.main import app
from swipelist.models import Base
from swipelist.ratelimit import limiter


class ApiTestCase(unittest.TestCase):
    """Drives the app against a throwaway SQLite database."""

    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tmpdir.name) / "swipelist.db"
        # NullPool: TestClient may run each request on its own event loop.
        self.engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
        asyncio.run(self._create_schema())
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async def _override_get_db():
            async with self.session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = _override_get_db
        limiter.reset()
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides = {}
        asyncio.run(self.engine.dispose())
        self._tmpdir.cleanup()

    async def _create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def auth(self, email: str, user_id: str | None = None) -> dict:
        token = create_access_token(user_id or f"id-{email}", email)
        return {"Authorization": f"Bearer {token}"}

    def count_rows(self, model) -> int:
        async def _count() -> int:
            async with self.session_factory() as session:
                return int(await session.scalar(select(func.count()).select_from(model)) or 0)

        return asyncio.run(_count())

    def befriend(self, first_email: str, second_email: str) -> None:
        resp = self.client.post("/api/friends", json={"friend_email": second_email}, headers=self.auth(first_email))
        assert resp.status_code == 200, resp.text
        resp = self.client.post("/api/friends", json={"friend_email": first_email}, headers=self.auth(second_email))
        assert resp.status_code == 200, resp.text
