# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Gallery collections."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import GalleryCreate, GalleryUpdate
from toof_server.errors import NotFound
from toof_server.models import GalleryCollection
from toof_server.models.timestamp import utcnow
from toof_server.services.authorization import authorize

logger = logging.getLogger(__name__)


async def _get_collection(db: AsyncSession, collection_id: int) -> GalleryCollection:
    collection = await db.get(GalleryCollection, collection_id)
    if collection is None:
        raise NotFound("Gallery collection not found")
    return collection


async def create_gallery_collection(
    db: AsyncSession, actor_email: str, data: GalleryCreate
) -> GalleryCollection:
    admin = await authorize(db, actor_email)
    now = utcnow()
    collection = GalleryCollection(
        title=data.title.strip(),
        description=data.description,
        images=[img.model_dump() for img in data.images],
        category=data.category.strip().lower(),
        featured=data.featured,
        created_by=admin.id,
        created_at=now,
        updated_at=now,
    )
    db.add(collection)
    await db.commit()
    logger.info("Gallery collection %r created by %s", collection.title, admin.email)
    return collection


async def update_gallery_collection(
    db: AsyncSession, actor_email: str, collection_id: int, data: GalleryUpdate
) -> GalleryCollection:
    await authorize(db, actor_email)
    collection = await _get_collection(db, collection_id)
    updates = data.model_dump(exclude_unset=True)
    if updates.get("title") is not None:
        collection.title = updates["title"].strip()
    if "description" in updates:
        collection.description = updates["description"]
    if data.images is not None:
        collection.images = [img.model_dump() for img in data.images]
    if updates.get("category") is not None:
        collection.category = updates["category"].strip().lower()
    if updates.get("featured") is not None:
        collection.featured = updates["featured"]
    collection.updated_at = utcnow()
    await db.commit()
    return collection


async def delete_gallery_collection(db: AsyncSession, actor_email: str, collection_id: int) -> dict:
    admin = await authorize(db, actor_email)
    collection = await _get_collection(db, collection_id)
    await db.delete(collection)
    await db.commit()
    logger.info("Gallery collection %s deleted by %s", collection_id, admin.email)
    return {"success": True, "deleted_id": collection_id}


async def list_all_gallery_collections(db: AsyncSession, actor_email: str) -> list[GalleryCollection]:
    await authorize(db, actor_email)
    result = await db.execute(select(GalleryCollection).order_by(GalleryCollection.id.desc()))
    return list(result.scalars().all())


async def list_public_gallery(db: AsyncSession, category: str | None = None) -> list[GalleryCollection]:
    """Featured collections first, then newest."""
    query = select(GalleryCollection)
    if category:
        query = query.where(GalleryCollection.category == category.strip().lower())
    query = query.order_by(GalleryCollection.featured.desc(), GalleryCollection.id.desc())
    result = await db.execute(query)
    return list(result.scalars().all())
