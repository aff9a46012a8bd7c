# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""TOOF Foundation Server - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from toof_server.config import settings
from toof_server.database import init_db
from toof_server.errors import register_exception_handlers
from toof_server.routers import admin, auth, blogs, events, gallery

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    if settings.jwt_secret == "change-me-in-production":
        logger.warning("JWT_SECRET is the default value - set it before deploying")
    if not settings.brevo_api_key and not settings.smtp_host:
        logger.info("No email transport configured - reset emails will not be delivered")
    logger.info("Password reset flow: %s", settings.reset_flow)
    yield
    # shutdown


app = FastAPI(
    title="TOOF Foundation Server",
    description="Website and content management API for the TOOF Foundation",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body or auth headers)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response

# API v1
app.include_router(auth.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(blogs.router, prefix="/api/v1")
app.include_router(events.router, prefix="/api/v1")
app.include_router(gallery.router, prefix="/api/v1")


@app.get("/")
async def root():
    """API info."""
    return {
        "name": "TOOF Foundation Server",
        "version": VERSION,
        "api": "/api/v1",
        "docs": "/api/docs",
    }


@app.get("/api/v1/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}
