# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Blog posts: admin CRUD and public reads."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import BlogCreate, BlogResponse, BlogUpdate
from toof_server.errors import Conflict, InputValidationError, NotFound
from toof_server.models import Blog
from toof_server.models.timestamp import utcnow
from toof_server.services.authorization import authorize
from toof_server.services.text import make_slug, sanitize_html, strip_html

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown Author"
EXCERPT_LENGTH = 200


def blog_to_response(blog: Blog) -> BlogResponse:
    """Blog with the byline resolved: override, then account name."""
    author_name = blog.author_name or (blog.author.name if blog.author else None)
    return BlogResponse(
        id=blog.id,
        title=blog.title,
        slug=blog.slug,
        excerpt=blog.excerpt,
        content=blog.content,
        author_id=blog.author_id,
        author_name=author_name or UNKNOWN_AUTHOR,
        featured_image=blog.featured_image,
        tags=list(blog.tags or []),
        status=blog.status,
        published_at=blog.published_at,
        created_at=blog.created_at,
        updated_at=blog.updated_at,
    )


async def _get_blog(db: AsyncSession, blog_id: int) -> Blog:
    blog = await db.get(Blog, blog_id)
    if blog is None:
        raise NotFound("Blog not found")
    return blog


async def create_blog(db: AsyncSession, actor_email: str, data: BlogCreate) -> Blog:
    admin = await authorize(db, actor_email)
    slug = make_slug(data.slug or data.title)
    if not slug:
        raise InputValidationError("Slug is required")
    existing = await db.execute(select(Blog.id).where(Blog.slug == slug))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("A blog with this slug already exists")

    content = sanitize_html(data.content)
    excerpt = data.excerpt.strip() or strip_html(content)[:EXCERPT_LENGTH]
    now = utcnow()
    blog = Blog(
        title=data.title.strip(),
        slug=slug,
        excerpt=excerpt,
        content=content,
        author=admin,
        author_name=data.author_name.strip() if data.author_name else None,
        featured_image=data.featured_image,
        tags=[t.strip() for t in data.tags if t.strip()],
        status=data.status,
        published_at=(data.publish_date or now) if data.status == "published" else None,
        created_at=now,
        updated_at=now,
    )
    db.add(blog)
    await db.commit()
    logger.info("Blog %r created by %s", slug, admin.email)
    return blog


async def update_blog(db: AsyncSession, actor_email: str, blog_id: int, data: BlogUpdate) -> Blog:
    """Apply the fields present in ``data``. First publish stamps published_at."""
    admin = await authorize(db, actor_email)
    blog = await _get_blog(db, blog_id)
    updates = data.model_dump(exclude_unset=True)
    if "title" in updates and updates["title"] is not None:
        blog.title = updates["title"].strip()
    if "excerpt" in updates and updates["excerpt"] is not None:
        blog.excerpt = updates["excerpt"].strip()
    if "content" in updates and updates["content"] is not None:
        blog.content = sanitize_html(updates["content"])
    if "featured_image" in updates:
        blog.featured_image = updates["featured_image"]
    if "tags" in updates and updates["tags"] is not None:
        blog.tags = [t.strip() for t in updates["tags"] if t.strip()]
    if "author_name" in updates:
        blog.author_name = updates["author_name"].strip() if updates["author_name"] else None
    if updates.get("status") is not None:
        blog.status = updates["status"]
        if blog.status == "published" and blog.published_at is None:
            blog.published_at = utcnow()
    blog.updated_at = utcnow()
    await db.commit()
    logger.info("Blog %s updated by %s", blog.id, admin.email)
    return blog


async def delete_blog(db: AsyncSession, actor_email: str, blog_id: int) -> dict:
    admin = await authorize(db, actor_email)
    blog = await _get_blog(db, blog_id)
    await db.delete(blog)
    await db.commit()
    logger.info("Blog %s deleted by %s", blog_id, admin.email)
    return {"success": True, "deleted_id": blog_id}


async def list_all_blogs(db: AsyncSession, actor_email: str) -> list[Blog]:
    """Every blog regardless of status, newest first. Admin only."""
    await authorize(db, actor_email)
    result = await db.execute(select(Blog).order_by(Blog.id.desc()))
    return list(result.scalars().all())


async def list_blogs_by_author(db: AsyncSession, actor_email: str, author_id: int) -> list[Blog]:
    await authorize(db, actor_email)
    result = await db.execute(
        select(Blog).where(Blog.author_id == author_id).order_by(Blog.id.desc())
    )
    return list(result.scalars().all())


async def list_published_blogs(db: AsyncSession) -> list[Blog]:
    result = await db.execute(
        select(Blog)
        .where(Blog.status == "published")
        .order_by(Blog.published_at.desc(), Blog.id.desc())
    )
    return list(result.scalars().all())


async def get_blog_by_slug(db: AsyncSession, slug: str) -> Blog | None:
    """Published blog by slug; drafts and archived posts are not public."""
    result = await db.execute(
        select(Blog).where(Blog.slug == slug, Blog.status == "published")
    )
    return result.scalar_one_or_none()
