"""
Request-layer helpers that turn core outcomes into HTTP responses.

The core never raises HTTPException itself; endpoints call ``enforce`` on a
Decision and route CoreError through ``raise_http``.
"""

from typing import NoReturn, Type

from fastapi import HTTPException, status

from app.core.errors import (
    AuthorizationDenied,
    CoreError,
    EntityNotFound,
    InconsistentRecurrence,
    InvalidAssignee,
    InvalidTimeRange,
    InvalidTransition,
    MalformedRecurrenceRule,
    StoreConflict,
    StoreUnavailable,
)
from app.core.permissions import Decision

_STATUS_BY_ERROR = (
    (AuthorizationDenied, status.HTTP_403_FORBIDDEN),
    (EntityNotFound, status.HTTP_404_NOT_FOUND),
    (StoreConflict, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvalidTransition, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTimeRange, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InconsistentRecurrence, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidAssignee, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MalformedRecurrenceRule, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(error_cls: Type[CoreError]) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if issubclass(error_cls, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def enforce(decision: Decision) -> None:
    if not decision.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)


def raise_http(error: CoreError) -> NoReturn:
    code = status_for(type(error))
    headers = {"Retry-After": "1"} if error.retryable else None
    detail = error.reason if isinstance(error, AuthorizationDenied) else str(error)
    raise HTTPException(status_code=code, detail=detail, headers=headers) from error