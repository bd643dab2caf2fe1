from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Iterator, cast

from loguru import logger

import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.types import ASGIApp

# Configure environment for tests before importing the app
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///./test_backend.db")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "https://short.test")
os.environ.setdefault("DELETION_WEBHOOK_URL", "")
os.environ.setdefault("DELETION_COMPLETED_WEBHOOK_URL", "")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", '["http://testserver"]')
os.environ.setdefault("LOGURU_LEVEL", "ERROR")
logger.remove()

from shortlink.core.database import get_session_factory  # noqa: E402
from shortlink.main import app  # noqa: E402
from shortlink.services.notifier import DeletionNotice, get_deletion_notifier  # noqa: E402
from shortlink.services.ratelimiter import token_attempt_limiter  # noqa: E402

logger.remove()


def _apply_migrations() -> None:
    root_path = Path(__file__).resolve().parents[2]
    alembic_cfg = Config(str(root_path / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_path / "shortlink" / "migrations"))
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> Iterator[None]:
    db_path = Path("test_backend.db")
    if db_path.exists():
        db_path.unlink()
    _apply_migrations()
    yield
    if db_path.exists():
        db_path.unlink()


class RecordingNotifier:
    """Stands in for the webhook notifier and keeps every notice it is given."""

    def __init__(self) -> None:
        self.notices: list[DeletionNotice] = []

    async def notify(self, notice: DeletionNotice) -> bool:
        self.notices.append(notice)
        return True


@pytest.fixture()
def notifier() -> Iterator[RecordingNotifier]:
    recorder = RecordingNotifier()
    app.dependency_overrides[get_deletion_notifier] = lambda: recorder
    yield recorder
    app.dependency_overrides.pop(get_deletion_notifier, None)


@pytest.fixture()
async def client(notifier: RecordingNotifier) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=cast(ASGIApp, app))  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
async def session() -> AsyncIterator[AsyncSession]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def reset_token_attempts() -> AsyncIterator[None]:
    await token_attempt_limiter.clear()
    yield


@pytest.fixture()
async def service_session() -> AsyncIterator[AsyncSession]:
    """Session handed to service calls, kept apart from the one used for setup.

    A failed transition rolls its session back, which expires every instance
    loaded through it.
    """

    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session
