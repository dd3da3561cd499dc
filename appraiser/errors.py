"""
TCG Appraiser — Error taxonomy

Transient adapter failures are retried and eventually absorbed by a fallback
or routed to the workflow error handler. Validation, ownership, conflict and
not-found errors are never retried.
"""

from __future__ import annotations

from typing import Any


class AppraiserError(Exception):
    """Base class for all TCG Appraiser errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def error_type(self) -> str:
        return type(self).__name__


# ---------------------------------------------------------------------------
# Transient (retryable) adapter failures
# ---------------------------------------------------------------------------


class TransientAdapterError(AppraiserError):
    """An external call timed out or the remote service is temporarily unavailable."""


class ExtractionError(TransientAdapterError):
    """The feature extraction service failed transiently."""


class PriceSourceError(TransientAdapterError):
    """A price source request failed."""


class PriceSourceRejectedError(PriceSourceError):
    """The source refused the request itself (4xx other than 429). Not retried."""


class ReasoningError(TransientAdapterError):
    """The reasoning service failed or returned an unusable response."""


class ObjectStoreError(TransientAdapterError):
    """An image or reference object could not be read."""


# ---------------------------------------------------------------------------
# Non-retryable failures
# ---------------------------------------------------------------------------


class ValidationError(AppraiserError):
    """Malformed input or missing required fields."""


class InvalidImageError(ValidationError):
    """The referenced image is unreadable or corrupt."""


class ForbiddenError(AppraiserError):
    """The caller does not own the addressed card."""


OwnershipError = ForbiddenError


class ConflictError(AppraiserError):
    """A record with the same identifier already exists."""


class NotFoundError(AppraiserError):
    """The record is missing or soft-deleted."""
