# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from toof_server.models.base import Base
from toof_server.models.user import User, UserRole, normalize_email
from toof_server.models.blog import Blog
from toof_server.models.event import Event, EventRegistration
from toof_server.models.gallery import GalleryCollection
from toof_server.models.password_reset import PasswordResetCredential

__all__ = [
    "Base",
    "User",
    "UserRole",
    "normalize_email",
    "Blog",
    "Event",
    "EventRegistration",
    "GalleryCollection",
    "PasswordResetCredential",
]
