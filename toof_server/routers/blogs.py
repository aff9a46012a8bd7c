# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Public blog API."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import BlogResponse
from toof_server.database import get_db
from toof_server.services import blogs
from toof_server.services.blogs import blog_to_response

router = APIRouter(prefix="/blogs", tags=["blogs"])


@router.get("", response_model=list[BlogResponse])
async def list_published_blogs(db: AsyncSession = Depends(get_db)) -> list[BlogResponse]:
    """Published posts, newest first."""
    return [blog_to_response(b) for b in await blogs.list_published_blogs(db)]


@router.get("/{slug}", response_model=BlogResponse)
async def get_blog(slug: str, db: AsyncSession = Depends(get_db)) -> BlogResponse:
    blog = await blogs.get_blog_by_slug(db, slug)
    if not blog:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog not found")
    return blog_to_response(blog)
