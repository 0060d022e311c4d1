"""
Error taxonomy for store operations.

Every failure resolves to either "already satisfied" (NotFound, AlreadyExists),
"retry shortly" (Conflict), "do not retry" (UnsupportedKind) or "retry with
backoff" (StoreError).
"""

import json
from typing import Optional, Type

from kubernetes.client.rest import ApiException


class TTLOperatorError(Exception):
    """Base class for operator errors."""


class NotFoundError(TTLOperatorError):
    """The object does not exist (anymore)."""


class ConflictError(TTLOperatorError):
    """A write was rejected because the expected version or UID is stale."""


class AlreadyExistsError(TTLOperatorError):
    """A create raced with another create of the same name."""


class UnsupportedKindError(TTLOperatorError):
    """No capability is registered for a (group, version, kind) triple."""


class StoreError(TTLOperatorError):
    """Any other API failure. Retryable."""

    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.reason = reason


def _api_message(exc: ApiException) -> str:
    try:
        body = json.loads(exc.body)
        return body.get('message', str(exc.reason))
    except (TypeError, ValueError, AttributeError):
        return str(exc.reason) if exc.reason else str(exc)


def translate_api_exception(
    exc: ApiException,
    on_conflict: Type[TTLOperatorError] = ConflictError,
) -> TTLOperatorError:
    """Map an ApiException to the operator's error taxonomy.

    The API server answers 409 both for stale updates and for duplicate
    creates, so the caller picks which class a 409 becomes.
    """
    message = _api_message(exc)
    if exc.status == 404:
        return NotFoundError(message)
    if exc.status == 409:
        return on_conflict(message)
    return StoreError(message, status=exc.status, reason=exc.reason)
