# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Public gallery API."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.api.schemas import GalleryResponse
from toof_server.database import get_db
from toof_server.services import gallery

router = APIRouter(prefix="/gallery", tags=["gallery"])


@router.get("", response_model=list[GalleryResponse])
async def list_gallery(
    category: str | None = Query(None, description="e.g. impact, events, team"),
    db: AsyncSession = Depends(get_db),
) -> list[GalleryResponse]:
    rows = await gallery.list_public_gallery(db, category)
    return [GalleryResponse.model_validate(g) for g in rows]
