"""Domain errors and their HTTP rendering.

Every error is rendered in the same body shape the routers use for
``HTTPException`` details::

    {"detail": {"error": "...", "message": "...", "details": [{"field": "...", "message": "..."}]}}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class QuizCraftError(Exception):
    """Base class for errors raised by the quiz engine and services."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "QuizCraftError"

    def __init__(self, message: str, field: str = "", details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details if details is not None else [{"field": field, "message": message}]

    def to_detail(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(QuizCraftError):
    """Quiz (or another record) is absent, unpublished, or not visible to the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "NotFound"


class AuthorizationError(QuizCraftError):
    """Password mismatch at the quiz gate, or a non-owner touching a quiz."""

    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"


class ValidationError(QuizCraftError):
    """Recoverable input problem: incomplete answer, missing field, bad index, bad payload."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "ValidationError"


class AnswerValidationError(ValidationError):
    """A respondent's value does not satisfy its question type's shape."""


class PersistenceError(QuizCraftError):
    """A write to the database failed. In-memory state is left as it was."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "PersistenceError"


async def quizcraft_error_handler(request: Request, exc: QuizCraftError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.debug(f"{exc.error} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuizCraftError, quizcraft_error_handler)
