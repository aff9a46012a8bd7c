# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Each test gets a fresh in-memory SQLite database."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from toof_server.auth import create_session_token, hash_password
from toof_server.database import get_db
from toof_server.main import app
from toof_server.models import Base, User, UserRole
from toof_server.rate_limit import reset_rate_limits
from toof_server.services import email as email_service


@pytest.fixture
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def client(db_session: AsyncSession):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    reset_rate_limits()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    reset_rate_limits()


@pytest.fixture
def sent_emails(monkeypatch) -> list[dict]:
    """Capture reset emails instead of delivering them."""
    outbox: list[dict] = []

    async def fake_send_reset_code(email: str, secret: str) -> bool:
        outbox.append({"email": email, "secret": secret})
        return True

    monkeypatch.setattr(email_service, "send_reset_code", fake_send_reset_code)
    return outbox


async def make_user(
    db: AsyncSession,
    email: str,
    password: str = "oldpass1",
    name: str = "Test User",
    role: UserRole = UserRole.USER,
) -> User:
    user = User(email=email, name=name, password_hash=hash_password(password), role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "admin@example.com", name="Site Admin", role=UserRole.ADMIN)


@pytest.fixture
async def regular_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "user@example.com")


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(admin_user)}"}


@pytest.fixture
def user_headers(regular_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(regular_user)}"}
