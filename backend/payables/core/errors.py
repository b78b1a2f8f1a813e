"""Domain exceptions raised inside core operations.

Operations never let these escape: ``core_action`` turns them into a failed
``ActionResult`` after rolling the transaction back.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class DomainError(Exception):
    """Base exception for payables operations."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AuthorizationError(DomainError):
    """Raised when the actor lacks the role an operation requires."""

    kind = ErrorKind.AUTHORIZATION


class ValidationError(DomainError):
    """Raised when input is malformed or references unusable master data."""

    kind = ErrorKind.VALIDATION


class StateConflictError(DomainError):
    """Raised when an entity is not in the state a transition requires."""

    kind = ErrorKind.STATE_CONFLICT


class NotFoundError(DomainError):
    """Raised when a referenced row does not exist."""

    kind = ErrorKind.NOT_FOUND
