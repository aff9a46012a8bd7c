# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Public events API and attendee registration."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import EventRegistrationCreate, EventRegistrationResponse, EventResponse
from toof_server.database import get_db
from toof_server.services import events

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=list[EventResponse])
async def list_events(db: AsyncSession = Depends(get_db)) -> list[EventResponse]:
    """Upcoming, ongoing and past events. Cancelled events are hidden."""
    return [EventResponse.model_validate(e) for e in await events.list_public_events(db)]


@router.get("/{slug}", response_model=EventResponse)
async def get_event(slug: str, db: AsyncSession = Depends(get_db)) -> EventResponse:
    event = await events.get_event_by_slug(db, slug)
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return EventResponse.model_validate(event)


@router.post("/{slug}/register", response_model=EventRegistrationResponse)
async def register(
    slug: str,
    data: EventRegistrationCreate,
    db: AsyncSession = Depends(get_db),
) -> EventRegistrationResponse:
    """Register to attend. Fails when the event is full, closed, or the email is already on the list."""
    registration = await events.register_for_event(db, slug, data)
    return EventRegistrationResponse.model_validate(registration)
