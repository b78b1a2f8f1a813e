"""Translate ``ActionResult`` failures into HTTP errors."""
from __future__ import annotations

import json
import logging
from typing import Optional, TypeVar

from fastapi import HTTPException, Request, status

from payables.core.errors import ErrorKind
from payables.core.rbac import Actor
from payables.core.results import ActionResult

logger = logging.getLogger("security")

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _log_security_event(
    event: str,
    *,
    request: Optional[Request],
    actor: Optional[Actor],
    extra: Optional[dict] = None,
) -> None:
    payload = {
        "event": event,
        "user_id": actor.id if actor else None,
        "role": actor.role.value if actor else None,
        "path": request.url.path if request else None,
        "request_id": request.headers.get("x-request-id") if request else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def unwrap(result: ActionResult[T], *, request: Optional[Request] = None, actor: Optional[Actor] = None) -> T:
    if result.success:
        return result.data
    kind = result.error_kind or ErrorKind.INTERNAL
    if kind == ErrorKind.AUTHORIZATION:
        _log_security_event("action_forbidden", request=request, actor=actor, extra={"error": result.error})
    detail: dict = {"message": result.error, "kind": kind.value}
    if result.code:
        detail["code"] = result.code
    raise HTTPException(status_code=STATUS_BY_KIND[kind], detail=detail)
