# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset credential model."""

from datetime import datetime
from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from toof_server.models.base import Base
from toof_server.models.timestamp import utcnow

KIND_CODE = "code"
KIND_TOKEN = "token"


class PasswordResetCredential(Base):
    """One reset request: a 6-digit code or a 32-character token bound to an email.

    Rows are never deleted. Issuing a new credential flips ``used`` on every
    earlier row for the same email, so the row with the highest id is the only
    one that can still be usable.
    """

    __tablename__ = "password_reset_credentials"
    __table_args__ = (
        Index("ix_password_reset_credentials_email_kind_id", "email", "kind", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(8), nullable=False, default=KIND_CODE)
    secret: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # NULL for tokens: they are not attempt-limited
    attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
