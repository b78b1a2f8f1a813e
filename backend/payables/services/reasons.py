from __future__ import annotations

from typing import Optional

from payables.core.errors import ValidationError
from payables.core.settings import settings


def require_reason(reason: Optional[str], *, label: str = "Reason") -> str:
    """Strip and length-check a free-text reason."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required")
    if len(cleaned) < settings.reason_min_length:
        raise ValidationError(f"{label} must be at least {settings.reason_min_length} characters")
    if len(cleaned) > settings.reason_max_length:
        raise ValidationError(f"{label} cannot exceed {settings.reason_max_length} characters")
    return cleaned
