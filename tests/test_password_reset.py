# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset service: issuing, verifying and consuming codes and tokens."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import make_user
from toof_server.auth import verify_password
from toof_server.config import settings
from toof_server.errors import (
    CredentialAlreadyUsed,
    CredentialError,
    CredentialExpired,
    CredentialMismatch,
    InconsistentStateError,
    InputValidationError,
    InvalidCredential,
    TooManyAttempts,
)
from toof_server.models import Base, PasswordResetCredential, User
from toof_server.models.timestamp import as_utc, utcnow
from toof_server.services import password_reset
from toof_server.services.password_reset import (
    commit_password_reset,
    commit_password_reset_with_token,
    generate_code,
    generate_token,
    increment_attempts,
    issue_reset,
    verify_reset_code,
    verify_reset_token,
)


async def _credentials(db, email: str) -> list[PasswordResetCredential]:
    result = await db.execute(
        select(PasswordResetCredential)
        .where(PasswordResetCredential.email == email)
        .order_by(PasswordResetCredential.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def test_generate_code_is_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_generate_token_alphabet():
    token = generate_token()
    assert len(token) == 32
    assert token.isalnum() and token.isascii()
    assert generate_token() != token


async def test_issue_for_unknown_email_looks_like_success(db_session, regular_user):
    unknown = await issue_reset(db_session, "nobody@example.com")
    known = await issue_reset(db_session, "user@example.com")
    assert unknown.success is True
    assert unknown.secret is None
    assert unknown.message == known.message
    count = await db_session.scalar(
        select(func.count()).select_from(PasswordResetCredential).where(
            PasswordResetCredential.email == "nobody@example.com"
        )
    )
    assert count == 0


async def test_issue_normalizes_email(db_session, regular_user):
    result = await issue_reset(db_session, "  USER@Example.COM ")
    assert result.secret is not None
    rows = await _credentials(db_session, "user@example.com")
    assert len(rows) == 1
    row = rows[0]
    assert row.secret == result.secret
    assert row.used is False
    assert row.attempts == 0
    assert row.kind == "code"


async def test_issue_sets_ten_minute_expiry(db_session, regular_user):
    before = utcnow()
    await issue_reset(db_session, "user@example.com")
    (row,) = await _credentials(db_session, "user@example.com")
    assert timedelta(minutes=9, seconds=50) < as_utc(row.expires_at) - before <= timedelta(minutes=10, seconds=5)


async def test_second_issue_invalidates_first(db_session, regular_user, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(password_reset, "generate_code", lambda: next(codes))
    first = await issue_reset(db_session, "user@example.com")
    second = await issue_reset(db_session, "user@example.com")

    rows = await _credentials(db_session, "user@example.com")
    assert [r.used for r in rows] == [True, False]

    old = await verify_reset_code(db_session, "user@example.com", first.secret)
    assert old.valid is False
    assert old.reason == "already_used"
    new = await verify_reset_code(db_session, "user@example.com", second.secret)
    assert new.valid is True
    assert new.email == "user@example.com"


async def test_verify_without_credential(db_session, regular_user):
    result = await verify_reset_code(db_session, "user@example.com", "123456")
    assert result.valid is False
    assert result.reason == "invalid"


async def test_wrong_code_increments_attempts(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    for expected in (1, 2, 3):
        result = await verify_reset_code(db_session, "user@example.com", "000000")
        assert result.valid is False
        assert result.reason == "invalid_code"
        (row,) = await _credentials(db_session, "user@example.com")
        assert row.attempts == expected
    assert (await verify_reset_code(db_session, "user@example.com", issued.secret)).valid is True


async def test_lockout_after_five_misses_even_with_right_code(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    for _ in range(settings.reset_max_attempts):
        await verify_reset_code(db_session, "user@example.com", "000000")
    result = await verify_reset_code(db_session, "user@example.com", issued.secret)
    assert result.valid is False
    assert result.reason == "too_many_attempts"
    with pytest.raises(TooManyAttempts):
        await commit_password_reset(db_session, "user@example.com", issued.secret, "newpass1")


async def test_expired_code_fails_first(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    (row,) = await _credentials(db_session, "user@example.com")
    row.expires_at = utcnow() - timedelta(seconds=1)
    await db_session.commit()

    result = await verify_reset_code(db_session, "user@example.com", issued.secret)
    assert result.reason == "expired"
    with pytest.raises(CredentialExpired):
        await commit_password_reset(db_session, "user@example.com", issued.secret, "newpass1")
    # Expiry is checked before matching, so no attempt is recorded
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 0


async def test_increment_attempts(db_session, regular_user):
    await issue_reset(db_session, "user@example.com")
    await increment_attempts(db_session, " User@example.com")
    await increment_attempts(db_session, "user@example.com")
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 2


async def test_increment_attempts_skips_used_and_missing(db_session, regular_user):
    await increment_attempts(db_session, "user@example.com")
    await issue_reset(db_session, "user@example.com")
    (row,) = await _credentials(db_session, "user@example.com")
    row.used = True
    await db_session.commit()
    await increment_attempts(db_session, "user@example.com")
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 0


async def test_short_password_changes_nothing(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    old_hash = regular_user.password_hash
    with pytest.raises(InputValidationError):
        await commit_password_reset(db_session, "user@example.com", issued.secret, "abc")
    with pytest.raises(InputValidationError):
        await commit_password_reset(db_session, "user@example.com", "000000", "x" * 101)
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.used is False
    assert row.attempts == 0
    user = await db_session.get(User, regular_user.id, populate_existing=True)
    assert user.password_hash == old_hash


async def test_commit_with_wrong_code_counts_attempt(db_session, regular_user):
    await issue_reset(db_session, "user@example.com")
    with pytest.raises(CredentialMismatch):
        await commit_password_reset(db_session, "user@example.com", "000000", "newpass1")
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 1
    assert row.used is False


async def test_full_code_flow(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    secret = issued.secret
    old_hash = regular_user.password_hash

    for _ in range(3):
        assert (await verify_reset_code(db_session, "user@example.com", "000000")).valid is False
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 3

    assert (await verify_reset_code(db_session, "user@example.com", secret)).valid is True

    outcome = await commit_password_reset(db_session, "user@example.com", secret, "newpass1")
    assert outcome["success"] is True

    user = await db_session.get(User, regular_user.id, populate_existing=True)
    assert user.password_hash != old_hash
    assert user.password_hash.startswith("$argon2")
    assert verify_password("newpass1", user.password_hash)
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.used is True

    again = await verify_reset_code(db_session, "user@example.com", secret)
    assert again.valid is False
    assert again.reason == "already_used"
    with pytest.raises(CredentialAlreadyUsed):
        await commit_password_reset(db_session, "user@example.com", secret, "another1")


async def test_missing_user_is_inconsistent_state(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    await db_session.execute(delete(User).where(User.id == regular_user.id))
    await db_session.commit()
    with pytest.raises(InconsistentStateError):
        await commit_password_reset(db_session, "user@example.com", issued.secret, "newpass1")


async def test_token_flow(db_session, regular_user, monkeypatch):
    monkeypatch.setattr(settings, "reset_flow", "token")
    issued = await issue_reset(db_session, "user@example.com")
    assert len(issued.secret) == 32
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.kind == "token"
    assert row.attempts is None

    result = await verify_reset_token(db_session, issued.secret)
    assert result.valid is True
    assert result.email == "user@example.com"

    await commit_password_reset_with_token(db_session, issued.secret, "newpass1")
    user = await db_session.get(User, regular_user.id, populate_existing=True)
    assert verify_password("newpass1", user.password_hash)

    reused = await verify_reset_token(db_session, issued.secret)
    assert reused.reason == "already_used"


async def test_token_unknown_and_superseded(db_session, regular_user, monkeypatch):
    monkeypatch.setattr(settings, "reset_flow", "token")
    assert (await verify_reset_token(db_session, "x" * 32)).reason == "invalid"
    first = await issue_reset(db_session, "user@example.com")
    await issue_reset(db_session, "user@example.com")
    with pytest.raises(CredentialAlreadyUsed):
        await commit_password_reset_with_token(db_session, first.secret, "newpass1")


async def test_code_verification_ignores_tokens(db_session, regular_user, monkeypatch):
    monkeypatch.setattr(settings, "reset_flow", "token")
    issued = await issue_reset(db_session, "user@example.com")
    with pytest.raises(InvalidCredential):
        await commit_password_reset(db_session, "user@example.com", issued.secret, "newpass1")


async def test_service_compares_code_exactly(db_session, regular_user):
    issued = await issue_reset(db_session, "user@example.com")
    with pytest.raises(CredentialMismatch):
        await commit_password_reset(db_session, "user@example.com", f" {issued.secret} ", "newpass1")
    (row,) = await _credentials(db_session, "user@example.com")
    assert row.attempts == 1


# Concurrency: each caller gets its own connection to a file-backed database
@pytest.fixture
async def file_sessions(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reset.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


async def _seed_code(file_sessions) -> str:
    async with file_sessions() as db:
        await make_user(db, "user@example.com")
        issued = await issue_reset(db, "user@example.com")
    return issued.secret


async def _attempt(file_sessions, code: str):
    async with file_sessions() as db:
        try:
            return await commit_password_reset(db, "user@example.com", code, "newpass1")
        except CredentialError as exc:
            return exc.code


async def _stored_state(file_sessions) -> tuple[PasswordResetCredential, User]:
    async with file_sessions() as db:
        row = await db.scalar(select(PasswordResetCredential))
        user = await db.scalar(select(User))
    return row, user


async def test_concurrent_misses_stop_at_lockout(file_sessions):
    secret = await _seed_code(file_sessions)
    wrong = "000000" if secret != "000000" else "111111"

    results = await asyncio.gather(*(_attempt(file_sessions, wrong) for _ in range(8)))
    assert results.count("invalid_code") == settings.reset_max_attempts
    assert results.count("too_many_attempts") == 8 - settings.reset_max_attempts

    assert await _attempt(file_sessions, secret) == "too_many_attempts"
    row, user = await _stored_state(file_sessions)
    assert row.attempts == settings.reset_max_attempts
    assert row.used is False
    assert verify_password("oldpass1", user.password_hash)


async def test_correct_code_racing_misses_respects_lockout(file_sessions):
    secret = await _seed_code(file_sessions)
    wrong = "000000" if secret != "000000" else "111111"

    results = await asyncio.gather(
        *(_attempt(file_sessions, wrong) for _ in range(8)),
        _attempt(file_sessions, secret),
    )
    row, user = await _stored_state(file_sessions)
    assert row.attempts <= settings.reset_max_attempts
    assert results.count("invalid_code") <= settings.reset_max_attempts
    succeeded = isinstance(results[-1], dict)
    assert row.used is succeeded
    assert verify_password("newpass1", user.password_hash) is succeeded


async def test_lockout_reached_after_check_blocks_consume(file_sessions, monkeypatch):
    secret = await _seed_code(file_sessions)
    real_check = password_reset.check_reset_code

    async def check_then_lock(db, email, code):
        credential = await real_check(db, email, code)
        async with file_sessions() as other:
            await other.execute(
                update(PasswordResetCredential)
                .where(PasswordResetCredential.id == credential.id)
                .values(attempts=settings.reset_max_attempts)
            )
            await other.commit()
        return credential

    monkeypatch.setattr(password_reset, "check_reset_code", check_then_lock)
    assert await _attempt(file_sessions, secret) == "too_many_attempts"
    row, user = await _stored_state(file_sessions)
    assert row.used is False
    assert verify_password("oldpass1", user.password_hash)


async def test_expiry_reached_after_check_blocks_consume(file_sessions, monkeypatch):
    secret = await _seed_code(file_sessions)
    real_check = password_reset.check_reset_code

    async def check_then_expire(db, email, code):
        credential = await real_check(db, email, code)
        async with file_sessions() as other:
            await other.execute(
                update(PasswordResetCredential)
                .where(PasswordResetCredential.id == credential.id)
                .values(expires_at=utcnow() - timedelta(seconds=1))
            )
            await other.commit()
        return credential

    monkeypatch.setattr(password_reset, "check_reset_code", check_then_expire)
    assert await _attempt(file_sessions, secret) == "expired"
    _, user = await _stored_state(file_sessions)
    assert verify_password("oldpass1", user.password_hash)
