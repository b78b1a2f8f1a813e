from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from payables.schemas.base import ORMModel


class CurrencyRead(ORMModel):
    id: int
    code: str
    name: str
    symbol: Optional[str] = None
    decimal_places: int
    is_active: bool


class CurrencyToggle(BaseModel):
    is_active: bool
