import os
import sys
from pathlib import Path

os.environ.setdefault("OTEL_SDK_DISABLED", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from rebox_api import models  # noqa: E402,F401
from rebox_api.app import create_app  # noqa: E402
from rebox_api.db.base import Base  # noqa: E402
from rebox_api.db.session import get_session  # noqa: E402
from rebox_api.models.user import User  # noqa: E402
from rebox_api.observability.rewards import get_rewards_store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_rewards_store():
    store = get_rewards_store()
    store.reset()
    yield
    store.reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def make_user(session_factory):
    async def _make_user(email: str, **fields) -> User:
        async with session_factory() as session:
            user = User(email=email, **fields)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
