"""Domain errors raised by the scheduling engine and their HTTP rendering."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("scheduling.errors")


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, reason: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.reason = reason


class ValidationError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT


class IntegrityViolation(SchedulingError):
    """Stored data breaks an invariant the conflict checks should have kept."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if isinstance(exc, IntegrityViolation):
        logger.error("Integrity violation on %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    content = {"detail": exc.detail}
    if exc.reason is not None:
        content["reason"] = exc.reason
    return JSONResponse(status_code=exc.status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
