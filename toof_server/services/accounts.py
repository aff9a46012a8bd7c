# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account signup, signin and password policy."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.auth import create_session_token, hash_password, verify_password
from toof_server.config import settings
from toof_server.errors import Conflict, InputValidationError, InvalidLogin
from toof_server.models import User, UserRole, normalize_email
from toof_server.services.authorization import get_user_by_email

logger = logging.getLogger(__name__)


@dataclass
class SigninResult:
    """Session token plus the signed-in user."""

    access_token: str
    user: User


def validate_password(password: str) -> None:
    """Raise InputValidationError unless the password fits the length policy."""
    if len(password) < settings.password_min_length:
        raise InputValidationError(
            f"Password must be at least {settings.password_min_length} characters"
        )
    if len(password) > settings.password_max_length:
        raise InputValidationError(
            f"Password must be less than {settings.password_max_length} characters"
        )


def validate_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise InputValidationError("Name is required")
    if len(name) > 100:
        raise InputValidationError("Name must be less than 100 characters")
    return name


async def signup(db: AsyncSession, email: str, password: str, name: str) -> User:
    """Create a regular user account."""
    email = normalize_email(email)
    validate_password(password)
    name = validate_name(name)
    if await get_user_by_email(db, email):
        raise Conflict("An account with this email already exists")
    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=UserRole.USER,
    )
    db.add(user)
    await db.commit()
    logger.info("New account created for %s", email)
    return user


async def signin(db: AsyncSession, email: str, password: str) -> SigninResult:
    """Check credentials and issue a session token."""
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise InvalidLogin()
    return SigninResult(access_token=create_session_token(user), user=user)
