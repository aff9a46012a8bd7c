# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Domain errors raised by services and rendered by the API."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ToofError(Exception):
    """Base class for user-facing failures. Carries HTTP status and message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ToofError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class Unauthorized(ToofError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"
    default_message = "Unauthorized"


class InvalidLogin(ToofError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_login"
    default_message = "Invalid email or password"


class CredentialError(ToofError):
    """A presented reset code or token cannot be used."""


class InvalidCredential(CredentialError):
    code = "invalid"
    default_message = "Invalid reset code"


class CredentialAlreadyUsed(CredentialError):
    code = "already_used"
    default_message = "This code has already been used"


class CredentialExpired(CredentialError):
    code = "expired"
    default_message = "This code has expired"


class TooManyAttempts(CredentialError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "too_many_attempts"
    default_message = "Too many failed attempts. Please request a new code."


class CredentialMismatch(CredentialError):
    code = "invalid_code"
    default_message = "Invalid code"


class InputValidationError(ToofError):
    status_code = 422
    code = "validation_error"
    default_message = "Invalid input"


class Conflict(ToofError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Conflict"


class InconsistentStateError(Exception):
    """Stored data contradicts itself (e.g. a valid reset code for a missing user).

    Not part of the user-facing taxonomy: rendered as a generic 500.
    """


async def toof_error_handler(request: Request, exc: ToofError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def inconsistent_state_handler(request: Request, exc: InconsistentStateError) -> JSONResponse:
    logger.error("Inconsistent state on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to JSON responses."""
    app.add_exception_handler(ToofError, toof_error_handler)
    app.add_exception_handler(InconsistentStateError, inconsistent_state_handler)
