"""Tax withheld at source.

The rounding policy always comes from the invoice (or from the snapshot kept on a
payment), never from a global default, so settled payments keep the amounts they
were recorded with.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional

from payables.models.enums import TdsRounding


ZERO = Decimal("0")
HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class TdsResult:
    withheld: Decimal
    payable: Decimal
    exact_withheld: Decimal
    is_rounded: bool


def minor_unit(decimal_places: int) -> Decimal:
    return Decimal(1).scaleb(-decimal_places)


def _coerce_rounding(rounding: TdsRounding | bool | str | None) -> TdsRounding:
    if isinstance(rounding, TdsRounding):
        return rounding
    if isinstance(rounding, bool):
        return TdsRounding.ROUND_UP if rounding else TdsRounding.EXACT
    if rounding is None:
        return TdsRounding.EXACT
    return TdsRounding(rounding)


def calculate_tds(
    amount: Decimal | int | str,
    rate_percent: Optional[Decimal | int | str],
    rounding: TdsRounding | bool | str | None = TdsRounding.EXACT,
    *,
    decimal_places: int = 2,
) -> TdsResult:
    amount = Decimal(str(amount))
    if rate_percent is None:
        return TdsResult(withheld=ZERO, payable=amount, exact_withheld=ZERO, is_rounded=False)
    rate = Decimal(str(rate_percent))
    if rate > HUNDRED:
        raise ValueError("TDS percentage must be between 0 and 100")
    if rate <= ZERO or amount <= ZERO:
        return TdsResult(withheld=ZERO, payable=amount, exact_withheld=ZERO, is_rounded=False)

    exact = amount * rate / HUNDRED
    unit = minor_unit(decimal_places)
    if _coerce_rounding(rounding) == TdsRounding.ROUND_UP:
        # Round up goes to the next whole currency unit: 23.31 withholds 24.00.
        withheld = exact.quantize(WHOLE_UNIT, rounding=ROUND_CEILING).quantize(unit)
        is_rounded = withheld != exact
    else:
        withheld = exact.quantize(unit, rounding=ROUND_HALF_UP)
        is_rounded = False
    return TdsResult(withheld=withheld, payable=amount - withheld, exact_withheld=exact, is_rounded=is_rounded)


def tds_for_invoice(invoice, amount: Optional[Decimal] = None) -> TdsResult:
    """Withholding on ``amount`` (default: the full invoice amount) using the invoice's own settings."""
    base = invoice.amount if amount is None else amount
    rate = invoice.tds_percentage if invoice.tds_applicable else None
    places = invoice.currency.decimal_places if invoice.currency is not None else 2
    return calculate_tds(base, rate, invoice.tds_rounding, decimal_places=places)
