"""Logging configuration helpers for the QuizCraft service."""

from __future__ import annotations

import logging
from logging import Logger

from quizcraft.core.config import settings


def configure_logging(level: str | int | None = None) -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("quizcraft")
