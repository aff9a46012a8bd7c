# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator

from toof_server.models.user import UserRole

# Stripped here; the reset service compares secrets exactly.
ResetSecret = Annotated[str, StringConstraints(strip_whitespace=True)]


# Auth
class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: str


class SigninRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class VerifyResetCodeRequest(BaseModel):
    email: str
    code: ResetSecret


class VerifyResetResponse(BaseModel):
    valid: bool
    email: str | None = None
    reason: str | None = None
    message: str | None = None


class ResetPasswordRequest(BaseModel):
    """Either ``token`` (reset link) or ``email`` + ``code``."""

    new_password: str
    email: str | None = None
    code: ResetSecret | None = None
    token: ResetSecret | None = None

    @model_validator(mode="after")
    def check_credential(self) -> "ResetPasswordRequest":
        if not self.token and not (self.email and self.code):
            raise ValueError("Provide a reset token, or email and code")
        return self


class MessageResponse(BaseModel):
    success: bool
    message: str


# Blogs
class BlogCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = None
    excerpt: str = ""
    content: str = ""
    featured_image: str | None = None
    tags: list[str] = []
    status: Literal["draft", "published"] = "draft"
    author_name: str | None = None
    publish_date: datetime | None = None


class BlogUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    excerpt: str | None = None
    content: str | None = None
    featured_image: str | None = None
    tags: list[str] | None = None
    status: Literal["draft", "published", "archived"] | None = None
    author_name: str | None = None


class BlogResponse(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: str
    content: str
    author_id: int
    author_name: str
    featured_image: str | None = None
    tags: list[str]
    status: str
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


# Events
EventStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = None
    description: str = ""
    start_date: datetime
    end_date: datetime | None = None
    location: str = Field(min_length=1, max_length=255)
    image: str | None = None
    capacity: int | None = Field(default=None, ge=1)
    status: EventStatus = "upcoming"


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    location: str | None = Field(default=None, min_length=1, max_length=255)
    image: str | None = None
    capacity: int | None = Field(default=None, ge=1)
    status: EventStatus | None = None


class EventResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str
    start_date: datetime
    end_date: datetime | None = None
    location: str
    image: str | None = None
    capacity: int | None = None
    registrations: int
    status: str
    organizer_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventRegistrationCreate(BaseModel):
    user_name: str = Field(min_length=1, max_length=100)
    user_email: EmailStr
    phone: str | None = Field(default=None, max_length=32)


class EventRegistrationResponse(BaseModel):
    id: int
    event_id: int
    user_email: str
    user_name: str
    phone: str | None = None
    registered_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Gallery
class GalleryImage(BaseModel):
    url: str
    alt_text: str = ""


class GalleryCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    images: list[GalleryImage] = []
    category: str = Field(min_length=1, max_length=64)
    featured: bool = False


class GalleryUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    images: list[GalleryImage] | None = None
    category: str | None = Field(default=None, min_length=1, max_length=64)
    featured: bool | None = None


class GalleryResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    images: list[GalleryImage]
    category: str
    featured: bool
    created_by: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
