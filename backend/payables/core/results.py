from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from payables.core.errors import DomainError, ErrorKind


logger = logging.getLogger(__name__)

T = TypeVar("T")

_AFTER_COMMIT_KEY = "payables.after_commit"


@dataclass
class ActionResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    code: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "ActionResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, *, kind: ErrorKind, code: Optional[str] = None) -> "ActionResult[T]":
        return cls(success=False, error=error, error_kind=kind, code=code)


def after_commit(db: Session, callback: Callable[[Session], None]) -> None:
    """Queue ``callback`` to run once the current operation has committed."""
    db.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


def discard_after_commit(db: Session) -> None:
    db.info.pop(_AFTER_COMMIT_KEY, None)


def run_after_commit(db: Session) -> int:
    """Run queued side effects; failures are logged and never raised.

    Returns the number of callbacks that failed.
    """
    callbacks = db.info.pop(_AFTER_COMMIT_KEY, [])
    failures = 0
    for callback in callbacks:
        try:
            callback(db)
        except Exception:
            failures += 1
            db.rollback()
            logger.exception(
                "post_commit_side_effect_failed",
                extra={"operation": getattr(callback, "__name__", repr(callback))},
            )
    return failures


def _failed(db: Session, operation: str, message: str, kind: ErrorKind, code: Optional[str] = None) -> ActionResult:
    db.rollback()
    discard_after_commit(db)
    logger.info(message, extra={"operation": operation, "error_kind": kind.value})
    return ActionResult.fail(message, kind=kind, code=code)


def core_action(func: Callable[..., Any]) -> Callable[..., ActionResult]:
    """Run ``func(db, ...)`` as one transaction and wrap the outcome.

    The wrapped function raises ``DomainError`` subclasses; they never leave
    this boundary. Side effects queued with ``after_commit`` only run after a
    successful commit.
    """

    @wraps(func)
    def wrapper(db: Session, *args: Any, **kwargs: Any) -> ActionResult:
        operation = func.__name__
        try:
            data = func(db, *args, **kwargs)
            db.commit()
        except DomainError as exc:
            return _failed(db, operation, exc.message, exc.kind, exc.code)
        except IntegrityError:
            return _failed(db, operation, "Record conflicts with an existing entry", ErrorKind.VALIDATION, "INTEGRITY")
        except OperationalError:
            logger.warning("operational_error", extra={"operation": operation}, exc_info=True)
            return _failed(
                db,
                operation,
                "The record was modified concurrently, please retry",
                ErrorKind.STATE_CONFLICT,
                "CONCURRENT_UPDATE",
            )
        except SQLAlchemyError:
            logger.exception("database_error", extra={"operation": operation})
            return _failed(db, operation, "Unexpected database error", ErrorKind.INTERNAL)

        run_after_commit(db)
        return ActionResult.ok(data)

    return wrapper
