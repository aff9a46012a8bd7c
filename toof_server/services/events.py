# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Events: admin CRUD, public listing and attendee registration."""

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import EventCreate, EventRegistrationCreate, EventUpdate
from toof_server.errors import Conflict, InputValidationError, NotFound
from toof_server.models import Event, EventRegistration, normalize_email
from toof_server.models.timestamp import as_utc, utcnow
from toof_server.services.authorization import authorize
from toof_server.services.text import make_slug, sanitize_html

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ("completed", "cancelled")


def _check_dates(start, end) -> None:
    if end is not None and as_utc(end) < as_utc(start):
        raise InputValidationError("End date must be after start date")


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


async def create_event(db: AsyncSession, actor_email: str, data: EventCreate) -> Event:
    admin = await authorize(db, actor_email)
    slug = make_slug(data.slug or data.title)
    if not slug:
        raise InputValidationError("Slug is required")
    _check_dates(data.start_date, data.end_date)
    existing = await db.execute(select(Event.id).where(Event.slug == slug))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("An event with this slug already exists")
    now = utcnow()
    event = Event(
        title=data.title.strip(),
        slug=slug,
        description=sanitize_html(data.description),
        start_date=data.start_date,
        end_date=data.end_date,
        location=data.location.strip(),
        image=data.image,
        capacity=data.capacity,
        registrations=0,
        status=data.status,
        organizer_id=admin.id,
        created_at=now,
        updated_at=now,
    )
    db.add(event)
    await db.commit()
    logger.info("Event %r created by %s", slug, admin.email)
    return event


async def update_event(db: AsyncSession, actor_email: str, event_id: int, data: EventUpdate) -> Event:
    admin = await authorize(db, actor_email)
    event = await _get_event(db, event_id)
    updates = data.model_dump(exclude_unset=True)
    if updates.get("title") is not None:
        event.title = updates["title"].strip()
    if updates.get("description") is not None:
        event.description = sanitize_html(updates["description"])
    if updates.get("start_date") is not None:
        event.start_date = updates["start_date"]
    if "end_date" in updates:
        event.end_date = updates["end_date"]
    if updates.get("location") is not None:
        event.location = updates["location"].strip()
    if "image" in updates:
        event.image = updates["image"]
    if "capacity" in updates:
        if updates["capacity"] is not None and updates["capacity"] < event.registrations:
            raise Conflict("Capacity cannot be lower than current registrations")
        event.capacity = updates["capacity"]
    if updates.get("status") is not None:
        event.status = updates["status"]
    _check_dates(event.start_date, event.end_date)
    event.updated_at = utcnow()
    await db.commit()
    logger.info("Event %s updated by %s", event.id, admin.email)
    return event


async def delete_event(db: AsyncSession, actor_email: str, event_id: int) -> dict:
    admin = await authorize(db, actor_email)
    event = await _get_event(db, event_id)
    await db.delete(event)
    await db.commit()
    logger.info("Event %s deleted by %s", event_id, admin.email)
    return {"success": True, "deleted_id": event_id}


async def list_all_events(db: AsyncSession, actor_email: str) -> list[Event]:
    await authorize(db, actor_email)
    result = await db.execute(select(Event).order_by(Event.start_date.desc(), Event.id.desc()))
    return list(result.scalars().all())


async def list_event_registrations(
    db: AsyncSession, actor_email: str, event_id: int
) -> list[EventRegistration]:
    await authorize(db, actor_email)
    await _get_event(db, event_id)
    result = await db.execute(
        select(EventRegistration)
        .where(EventRegistration.event_id == event_id)
        .order_by(EventRegistration.registered_at, EventRegistration.id)
    )
    return list(result.scalars().all())


async def list_public_events(db: AsyncSession) -> list[Event]:
    """Events that are not cancelled, soonest first."""
    result = await db.execute(
        select(Event)
        .where(Event.status != "cancelled")
        .order_by(Event.start_date, Event.id)
    )
    return list(result.scalars().all())


async def get_event_by_slug(db: AsyncSession, slug: str) -> Event | None:
    result = await db.execute(select(Event).where(Event.slug == slug))
    return result.scalar_one_or_none()


async def register_for_event(
    db: AsyncSession, slug: str, data: EventRegistrationCreate
) -> EventRegistration:
    """Sign an attendee up. One registration per email; capacity is a hard cap."""
    event = await get_event_by_slug(db, slug)
    if event is None:
        raise NotFound("Event not found")
    if event.status in CLOSED_STATUSES:
        raise Conflict("Registration is closed for this event")
    email = normalize_email(data.user_email)
    existing = await db.execute(
        select(EventRegistration.id).where(
            EventRegistration.event_id == event.id,
            EventRegistration.user_email == email,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise Conflict("This email is already registered for the event")

    # Conditional increment so two registrations cannot both take the last seat.
    result = await db.execute(
        update(Event)
        .where(
            Event.id == event.id,
            or_(Event.capacity.is_(None), Event.registrations < Event.capacity),
        )
        .values(registrations=Event.registrations + 1)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise Conflict("This event is full")
    registration = EventRegistration(
        event_id=event.id,
        user_email=email,
        user_name=data.user_name.strip(),
        phone=data.phone.strip() if data.phone else None,
        registered_at=utcnow(),
    )
    db.add(registration)
    await db.commit()
    logger.info("Registration for event %s from %s", event.id, email)
    return registration
