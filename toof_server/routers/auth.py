# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes: accounts and password reset."""

from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from toof_server.auth import get_current_user_id
from toof_server.database import get_db
from toof_server.models import User, normalize_email
from toof_server.api.schemas import (
    ForgotPasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    Token,
    UserResponse,
    VerifyResetCodeRequest,
    VerifyResetResponse,
)
from toof_server.rate_limit import rate_limit_auth_dep
from toof_server.services import accounts, password_reset
from toof_server.services import email as email_service

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(rate_limit_auth_dep)])


@router.post("/signup", response_model=Token)
async def signup(
    data: SignupRequest,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Create a regular account and sign it in."""
    await accounts.signup(db, data.email, data.password, data.name)
    session = await accounts.signin(db, data.email, data.password)
    return Token(access_token=session.access_token, user=UserResponse.model_validate(session.user))


@router.post("/signin", response_model=Token)
async def signin(
    data: SigninRequest,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate and return a session JWT."""
    session = await accounts.signin(db, data.email, data.password)
    return Token(access_token=session.access_token, user=UserResponse.model_validate(session.user))


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get current user profile."""
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.model_validate(user)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Request a reset code (or link). Same answer whether or not the account exists; mail goes out after the response."""
    result = await password_reset.issue_reset(db, data.email)
    if result.secret:
        # Sent after the response; a failed delivery is only logged.
        background_tasks.add_task(
            email_service.send_reset_code, normalize_email(data.email), result.secret
        )
    return MessageResponse(success=result.success, message=result.message)


@router.post("/verify-reset-code", response_model=VerifyResetResponse)
async def verify_reset_code(
    data: VerifyResetCodeRequest,
    db: AsyncSession = Depends(get_db),
) -> VerifyResetResponse:
    """Check a code before showing the new-password form. Wrong codes count as attempts."""
    result = await password_reset.verify_reset_code(db, data.email, data.code)
    return VerifyResetResponse(**asdict(result))


@router.get("/verify-reset-token", response_model=VerifyResetResponse)
async def verify_reset_token(
    token: str = Query(..., description="Token from the reset link"),
    db: AsyncSession = Depends(get_db),
) -> VerifyResetResponse:
    """Check a reset-link token."""
    result = await password_reset.verify_reset_token(db, token.strip())
    return VerifyResetResponse(**asdict(result))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Set a new password with a code (email + code) or a reset-link token."""
    if data.token:
        outcome = await password_reset.commit_password_reset_with_token(
            db, data.token, data.new_password
        )
    else:
        outcome = await password_reset.commit_password_reset(
            db, data.email, data.code, data.new_password
        )
    return MessageResponse(**outcome)
