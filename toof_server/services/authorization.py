# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin authorization gate and role management.

Every privileged operation looks the caller up again; admin status is never
cached between calls.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.errors import Conflict, NotFound, Unauthorized
from toof_server.models import User, UserRole, normalize_email

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def is_admin(db: AsyncSession, email: str) -> bool:
    """True if the email belongs to an admin account."""
    user = await get_user_by_email(db, email)
    return user is not None and user.role == UserRole.ADMIN


async def authorize(db: AsyncSession, claimed_email: str) -> User:
    """Return the admin user for ``claimed_email`` or raise Unauthorized.

    Unknown emails and non-admins get the same error.
    """
    user = await get_user_by_email(db, claimed_email)
    if user is None or user.role != UserRole.ADMIN:
        logger.info("Admin check refused for %s", normalize_email(claimed_email))
        raise Unauthorized()
    return user


async def list_users(db: AsyncSession, actor_email: str) -> list[User]:
    await authorize(db, actor_email)
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return list(result.scalars().all())


async def _get_target(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def promote_to_admin(db: AsyncSession, actor_email: str, user_id: int) -> User:
    """Give ``user_id`` the admin role. Idempotent for existing admins."""
    actor = await authorize(db, actor_email)
    user = await _get_target(db, user_id)
    if user.role != UserRole.ADMIN:
        user.role = UserRole.ADMIN
        await db.commit()
        logger.info("User %s promoted to admin by %s", user.email, actor.email)
    return user


async def demote_from_admin(db: AsyncSession, actor_email: str, user_id: int) -> User:
    """Drop ``user_id`` back to the user role.

    Refuses to remove the last remaining admin, including an admin demoting
    themselves.
    """
    actor = await authorize(db, actor_email)
    user = await _get_target(db, user_id)
    if user.role != UserRole.ADMIN:
        return user
    admin_count = await db.scalar(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN)
    ) or 0
    if admin_count <= 1:
        raise Conflict("Cannot demote the last remaining admin")
    user.role = UserRole.USER
    await db.commit()
    logger.info("User %s demoted from admin by %s", user.email, actor.email)
    return user
