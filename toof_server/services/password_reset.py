# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset: issue, verify and consume one-time codes or tokens.

A deployment uses one flow (``settings.reset_flow``):

* ``code``: 6-digit numeric code, 10 minute expiry, locked after 5 misses.
  Scoped by email.
* ``token``: 32-character alphanumeric token for reset links, 60 minute
  expiry, no attempt counter. Self-identifying, no email needed.

The credential for an email is the one with the highest id. Issuing a new one
marks every earlier credential for that email as used.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from toof_server.auth import hash_password
from toof_server.config import settings
from toof_server.errors import (
    CredentialAlreadyUsed,
    CredentialError,
    CredentialExpired,
    CredentialMismatch,
    InconsistentStateError,
    InvalidCredential,
    TooManyAttempts,
)
from toof_server.models import PasswordResetCredential, normalize_email
from toof_server.models.password_reset import KIND_CODE, KIND_TOKEN
from toof_server.models.timestamp import as_utc, utcnow
from toof_server.services.accounts import validate_password
from toof_server.services.authorization import get_user_by_email

logger = logging.getLogger(__name__)

ISSUE_MESSAGE = "If an account exists, a reset code will be sent."
RESET_DONE_MESSAGE = "Password has been reset successfully"
TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 32

# Token flow wording; the error classes default to code wording.
_TOKEN_MESSAGES = {
    InvalidCredential: "Invalid or expired reset link",
    CredentialAlreadyUsed: "This reset link has already been used",
    CredentialExpired: "This reset link has expired",
}


@dataclass
class IssueResult:
    """Outcome of a reset request. ``secret`` is only for the mail dispatcher."""

    success: bool
    message: str
    secret: str | None = None


@dataclass
class VerifyResult:
    """Tagged verification outcome: valid with email, or invalid with a reason."""

    valid: bool
    email: str | None = None
    reason: str | None = None
    message: str | None = None


def generate_code() -> str:
    """Uniform 6-digit code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def generate_token() -> str:
    """32 characters drawn uniformly from [A-Za-z0-9]."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def _secrets_match(stored: str, presented: str) -> bool:
    return secrets.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


async def issue_reset(db: AsyncSession, email: str) -> IssueResult:
    """Create a fresh credential for a known email.

    Unknown emails get the same successful result without a secret, so callers
    cannot tell whether an account exists.
    """
    email = normalize_email(email)
    user = await get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return IssueResult(success=True, message=ISSUE_MESSAGE)

    now = utcnow()
    if settings.reset_flow == KIND_TOKEN:
        credential = PasswordResetCredential(
            email=email,
            kind=KIND_TOKEN,
            secret=generate_token(),
            expires_at=now + timedelta(minutes=settings.reset_token_expire_minutes),
            used=False,
            attempts=None,
            created_at=now,
        )
    else:
        credential = PasswordResetCredential(
            email=email,
            kind=KIND_CODE,
            secret=generate_code(),
            expires_at=now + timedelta(minutes=settings.reset_code_expire_minutes),
            used=False,
            attempts=0,
            created_at=now,
        )
    db.add(credential)
    await db.flush()
    # Only rows older than ours: a concurrent request that inserts after us keeps its row.
    await db.execute(
        update(PasswordResetCredential)
        .where(
            PasswordResetCredential.email == email,
            PasswordResetCredential.id < credential.id,
        )
        .values(used=True)
    )
    await db.commit()
    logger.info("Issued password reset %s for %s", credential.kind, email)
    return IssueResult(success=True, message=ISSUE_MESSAGE, secret=credential.secret)


async def _latest_code(db: AsyncSession, email: str) -> PasswordResetCredential | None:
    result = await db.execute(
        select(PasswordResetCredential)
        .where(
            PasswordResetCredential.email == email,
            PasswordResetCredential.kind == KIND_CODE,
        )
        .order_by(PasswordResetCredential.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _latest_token(db: AsyncSession, token: str) -> PasswordResetCredential | None:
    result = await db.execute(
        select(PasswordResetCredential)
        .where(
            PasswordResetCredential.secret == token,
            PasswordResetCredential.kind == KIND_TOKEN,
        )
        .order_by(PasswordResetCredential.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _is_superseded_code(db: AsyncSession, email: str, code: str, latest_id: int) -> bool:
    """True if ``code`` belongs to an earlier credential replaced by a newer request."""
    result = await db.execute(
        select(PasswordResetCredential.id)
        .where(
            PasswordResetCredential.email == email,
            PasswordResetCredential.kind == KIND_CODE,
            PasswordResetCredential.secret == code,
            PasswordResetCredential.id < latest_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


def _failure(credential: PasswordResetCredential | None, error: type[CredentialError]) -> CredentialError:
    if credential is not None and credential.kind == KIND_TOKEN and error in _TOKEN_MESSAGES:
        return error(_TOKEN_MESSAGES[error])
    return error()


def _check_state(credential: PasswordResetCredential | None) -> PasswordResetCredential:
    """Existence, used flag, expiry and lockout, in that order."""
    if credential is None:
        raise InvalidCredential()
    if credential.used:
        raise _failure(credential, CredentialAlreadyUsed)
    if as_utc(credential.expires_at) <= utcnow():
        raise _failure(credential, CredentialExpired)
    if credential.kind == KIND_CODE and (credential.attempts or 0) >= settings.reset_max_attempts:
        raise TooManyAttempts()
    return credential


async def _bump_attempts(db: AsyncSession, credential_id: int) -> bool:
    """Count one miss. False once the code is used or already locked out."""
    result = await db.execute(
        update(PasswordResetCredential)
        .where(
            PasswordResetCredential.id == credential_id,
            PasswordResetCredential.used.is_(False),
            PasswordResetCredential.attempts < settings.reset_max_attempts,
        )
        .values(attempts=PasswordResetCredential.attempts + 1)
    )
    return result.rowcount == 1


async def _refuse(db: AsyncSession, credential_id: int, fallback: type[CredentialError]) -> None:
    """Raise the reason a conditional write on ``credential_id`` matched no row."""
    current = await db.get(PasswordResetCredential, credential_id, populate_existing=True)
    _check_state(current)
    raise _failure(current, fallback)


async def check_reset_code(db: AsyncSession, email: str, code: str) -> PasswordResetCredential:
    """Return the live code credential for ``email`` or raise a CredentialError.

    A wrong code counts as a failed attempt; the increment is committed before
    CredentialMismatch is raised. A code from a replaced request reports
    CredentialAlreadyUsed instead.
    """
    email = normalize_email(email)
    credential = _check_state(await _latest_code(db, email))
    if not _secrets_match(credential.secret, code):
        if await _is_superseded_code(db, email, code, credential.id):
            raise CredentialAlreadyUsed()
        credential_id = credential.id
        bumped = await _bump_attempts(db, credential_id)
        await db.commit()
        if not bumped:
            # Locked out (or consumed) by a concurrent request since our read
            await _refuse(db, credential_id, TooManyAttempts)
        logger.info("Wrong reset code for %s", email)
        raise CredentialMismatch()
    return credential


async def check_reset_token(db: AsyncSession, token: str) -> PasswordResetCredential:
    """Return the live token credential or raise a CredentialError."""
    credential = await _latest_token(db, token)
    if credential is None:
        raise InvalidCredential(_TOKEN_MESSAGES[InvalidCredential])
    _check_state(credential)
    if not _secrets_match(credential.secret, token):
        raise InvalidCredential(_TOKEN_MESSAGES[InvalidCredential])
    return credential


async def increment_attempts(db: AsyncSession, email: str) -> None:
    """Count one failed attempt against the current unused code for ``email``."""
    credential = await _latest_code(db, normalize_email(email))
    if credential is not None and not credential.used:
        await _bump_attempts(db, credential.id)
        await db.commit()


def _as_result(exc: CredentialError) -> VerifyResult:
    return VerifyResult(valid=False, reason=exc.code, message=exc.message)


async def verify_reset_code(db: AsyncSession, email: str, code: str) -> VerifyResult:
    """Check a code without consuming it. Not a pure query: misses are counted."""
    try:
        credential = await check_reset_code(db, email, code)
    except CredentialError as exc:
        return _as_result(exc)
    return VerifyResult(valid=True, email=credential.email)


async def verify_reset_token(db: AsyncSession, token: str) -> VerifyResult:
    """Check a reset-link token without consuming it."""
    try:
        credential = await check_reset_token(db, token)
    except CredentialError as exc:
        return _as_result(exc)
    return VerifyResult(valid=True, email=credential.email)


async def _consume(
    db: AsyncSession, credential: PasswordResetCredential, new_password: str
) -> dict:
    credential_id, email = credential.id, credential.email
    user = await get_user_by_email(db, email)
    if user is None:
        raise InconsistentStateError(
            f"Reset credential {credential_id} refers to a missing user"
        )
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    await db.flush()
    # Password write first, then burn the credential; both land in one commit.
    # The state checks are repeated against the stored row, not our earlier read.
    result = await db.execute(
        update(PasswordResetCredential)
        .where(
            PasswordResetCredential.id == credential_id,
            PasswordResetCredential.used.is_(False),
            PasswordResetCredential.expires_at > utcnow(),
            or_(
                PasswordResetCredential.kind == KIND_TOKEN,
                PasswordResetCredential.attempts < settings.reset_max_attempts,
            ),
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.warning("Reset credential %s changed before it could be consumed", credential_id)
        await _refuse(db, credential_id, CredentialAlreadyUsed)
    set_committed_value(credential, "used", True)
    await db.commit()
    logger.info("Password reset completed for %s", email)
    return {"success": True, "message": RESET_DONE_MESSAGE}


async def commit_password_reset(
    db: AsyncSession, email: str, code: str, new_password: str
) -> dict:
    """Set a new password using an emailed code. Re-validates the code first."""
    validate_password(new_password)
    credential = await check_reset_code(db, email, code)
    return await _consume(db, credential, new_password)


async def commit_password_reset_with_token(
    db: AsyncSession, token: str, new_password: str
) -> dict:
    """Set a new password using a reset-link token. Re-validates the token first."""
    validate_password(new_password)
    credential = await check_reset_token(db, token)
    return await _consume(db, credential, new_password)
