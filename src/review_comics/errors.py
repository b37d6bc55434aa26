"""Failure taxonomy shared by collaborators, the retry policy, and the pipeline."""

from __future__ import annotations

import asyncio
from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    EXTERNAL_TRANSIENT = "external_transient"
    EXTERNAL_PERMANENT = "external_permanent"
    CONTENT_POLICY = "content_policy"
    STORAGE = "storage"


class ServiceError(Exception):
    """Base class for failures that carry an ``ErrorKind``."""

    kind: ErrorKind = ErrorKind.EXTERNAL_PERMANENT


class VenueNotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND


class InvalidInputError(ServiceError):
    kind = ErrorKind.VALIDATION


class TransientServiceError(ServiceError):
    """Timeouts, rate limits, and 5xx-style failures worth retrying."""

    kind = ErrorKind.EXTERNAL_TRANSIENT


class PermanentServiceError(ServiceError):
    kind = ErrorKind.EXTERNAL_PERMANENT


class ContentPolicyError(ServiceError):
    """The upstream service refused the request on policy grounds."""

    kind = ErrorKind.CONTENT_POLICY


class StorageError(ServiceError):
    kind = ErrorKind.STORAGE


TRANSIENT_STATUS_CODES = frozenset({408, 429})


def is_transient_status(status: int | None) -> bool:
    """Return ``True`` for HTTP statuses that represent retryable failures."""
    if status is None:
        return False
    return status in TRANSIENT_STATUS_CODES or status >= 500


def classify_exception(exc: BaseException) -> ErrorKind | None:
    """Map an exception to its ``ErrorKind``, or ``None`` when unclassified."""
    if isinstance(exc, ServiceError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.EXTERNAL_TRANSIENT
    return None
