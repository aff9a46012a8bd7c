# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin API - blogs, events, gallery and user roles. Requires an admin session."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import (
    BlogCreate,
    BlogResponse,
    BlogUpdate,
    EventCreate,
    EventRegistrationResponse,
    EventResponse,
    EventUpdate,
    GalleryCreate,
    GalleryResponse,
    GalleryUpdate,
    MessageResponse,
    UserResponse,
)
from toof_server.auth import get_claimed_email, require_admin
from toof_server.database import get_db
from toof_server.errors import NotFound
from toof_server.models import Blog, Event, EventRegistration, GalleryCollection, User
from toof_server.services import authorization, blogs, events, gallery, password_reset
from toof_server.services import email as email_service
from toof_server.services.blogs import blog_to_response

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats")
async def get_admin_stats(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Dashboard counters. Admin only."""
    async def count(model, *where) -> int:
        return await db.scalar(select(func.count()).select_from(model).where(*where)) or 0

    return {
        "users_total": await count(User),
        "blogs_total": await count(Blog),
        "blogs_published": await count(Blog, Blog.status == "published"),
        "events_total": await count(Event),
        "events_upcoming": await count(Event, Event.status == "upcoming"),
        "registrations_total": await count(EventRegistration),
        "gallery_total": await count(GalleryCollection),
    }


# Users
@router.get("/users", response_model=list[UserResponse])
async def list_users(
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> list[UserResponse]:
    """List all users. Admin only."""
    users = await authorization.list_users(db, email)
    return [UserResponse.model_validate(u) for u in users]


@router.post("/users/{user_id}/promote", response_model=UserResponse)
async def promote_user(
    user_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await authorization.promote_to_admin(db, email, user_id)
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/demote", response_model=UserResponse)
async def demote_user(
    user_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Demote an admin. The last remaining admin cannot be demoted."""
    user = await authorization.demote_from_admin(db, email, user_id)
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/send-password-reset", response_model=MessageResponse)
async def send_password_reset_to_user(
    user_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Issue a reset credential for the user and email it. Admin only."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    result = await password_reset.issue_reset(db, user.email)
    sent = False
    if result.secret:
        sent = await email_service.send_reset_code(user.email, result.secret)
    message = "Password reset email sent." if sent else "Reset issued; email delivery failed."
    return MessageResponse(success=True, message=message)


# Blogs
@router.get("/blogs", response_model=list[BlogResponse])
async def list_blogs(
    author_id: int | None = Query(None, description="Only posts by this author"),
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> list[BlogResponse]:
    """All blogs in any status, optionally filtered by author. Admin only."""
    if author_id is not None:
        rows = await blogs.list_blogs_by_author(db, email, author_id)
    else:
        rows = await blogs.list_all_blogs(db, email)
    return [blog_to_response(b) for b in rows]


@router.post("/blogs", response_model=BlogResponse)
async def create_blog(
    data: BlogCreate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> BlogResponse:
    blog = await blogs.create_blog(db, email, data)
    return blog_to_response(blog)


@router.patch("/blogs/{blog_id}", response_model=BlogResponse)
async def update_blog(
    blog_id: int,
    data: BlogUpdate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> BlogResponse:
    blog = await blogs.update_blog(db, email, blog_id, data)
    return blog_to_response(blog)


@router.delete("/blogs/{blog_id}")
async def delete_blog(
    blog_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await blogs.delete_blog(db, email, blog_id)


# Events
@router.get("/events", response_model=list[EventResponse])
async def list_events(
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> list[EventResponse]:
    rows = await events.list_all_events(db, email)
    return [EventResponse.model_validate(e) for e in rows]


@router.post("/events", response_model=EventResponse)
async def create_event(
    data: EventCreate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> EventResponse:
    event = await events.create_event(db, email, data)
    return EventResponse.model_validate(event)


@router.patch("/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    data: EventUpdate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> EventResponse:
    event = await events.update_event(db, email, event_id, data)
    return EventResponse.model_validate(event)


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await events.delete_event(db, email, event_id)


@router.get("/events/{event_id}/registrations", response_model=list[EventRegistrationResponse])
async def list_event_registrations(
    event_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> list[EventRegistrationResponse]:
    rows = await events.list_event_registrations(db, email, event_id)
    return [EventRegistrationResponse.model_validate(r) for r in rows]


# Gallery
@router.get("/gallery", response_model=list[GalleryResponse])
async def list_gallery(
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> list[GalleryResponse]:
    rows = await gallery.list_all_gallery_collections(db, email)
    return [GalleryResponse.model_validate(g) for g in rows]


@router.post("/gallery", response_model=GalleryResponse)
async def create_gallery(
    data: GalleryCreate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> GalleryResponse:
    collection = await gallery.create_gallery_collection(db, email, data)
    return GalleryResponse.model_validate(collection)


@router.patch("/gallery/{collection_id}", response_model=GalleryResponse)
async def update_gallery(
    collection_id: int,
    data: GalleryUpdate,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> GalleryResponse:
    collection = await gallery.update_gallery_collection(db, email, collection_id, data)
    return GalleryResponse.model_validate(collection)


@router.delete("/gallery/{collection_id}")
async def delete_gallery(
    collection_id: int,
    email: str = Depends(get_claimed_email),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await gallery.delete_gallery_collection(db, email, collection_id)
