"""
Domain errors raised by the service layer and mapped to HTTP responses.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DokasahError(Exception):
    """Base error carrying the HTTP status it should surface as."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(DokasahError):
    status_code = 401
    default_message = "Access denied. Token missing or invalid."


class Forbidden(DokasahError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(DokasahError):
    status_code = 404
    default_message = "Not found"


class BadRequest(DokasahError):
    status_code = 400
    default_message = "Bad request"


class InvalidTemplate(BadRequest):
    default_message = "Unknown form type"


class StoreFailure(DokasahError):
    status_code = 500
    default_message = "Storage backend failure"


class SlugConflict(Exception):
    """Raised by a DB client when a generated slug is already taken."""


@contextmanager
def store_errors(operation: str):
    """Log backend failures and re-raise them as StoreFailure."""
    try:
        yield
    except (SQLAlchemyError, BotoCoreError, ClientError) as exc:
        logger.exception("%s failed: %s", operation, exc)
        raise StoreFailure(f"Failed to {operation}") from exc
