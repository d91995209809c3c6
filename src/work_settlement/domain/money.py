"""Money Breakdown Calculator.

All amounts are integer minor units (centavos). The platform fee is the only
value that is rounded; the worker payout is always the exact remainder, so
``worker_payout + platform_fee == total`` holds for every input.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from work_settlement.domain.exceptions import InvalidAmountError


@dataclass(frozen=True)
class MoneyBreakdown:
    """Split of a total price between the worker and the platform.

    Attributes:
        total: Total price in minor units.
        worker_payout: Amount owed to the worker (total - platform_fee).
        platform_fee: Amount kept by the platform.
        advance_paid: Amount already paid up front, if any.
        remaining_to_pay: What is still owed after the advance (never negative).
    """

    total: int
    worker_payout: int
    platform_fee: int
    advance_paid: int = 0
    remaining_to_pay: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "worker_payout": self.worker_payout,
            "platform_fee": self.platform_fee,
            "advance_paid": self.advance_paid,
            "remaining_to_pay": self.remaining_to_pay,
        }


# Largest amount a BIGINT column holds.
MAX_MINOR_UNITS = 2**63 - 1


def require_minor_units(value: object, field: str = "amount") -> int:
    """Return ``value`` if it is a non-negative integer amount that fits storage, else raise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{field} must be an integer amount of minor units, got {value!r}")
    if value < 0:
        raise InvalidAmountError(f"{field} must not be negative, got {value}")
    if value > MAX_MINOR_UNITS:
        raise InvalidAmountError(f"{field} must not exceed {MAX_MINOR_UNITS}, got {value}")
    return value


def _div_half_up(numerator: int, denominator: int) -> int:
    quotient, remainder = divmod(abs(numerator), denominator)
    if 2 * remainder >= denominator:
        quotient += 1
    return quotient if numerator >= 0 else -quotient


def scale_minor_units(amount: int, factor: Decimal, divisor: int = 1) -> int:
    """Return ``amount * factor / divisor`` rounded half up, ties away from zero.

    Works on the exact integer ratio of ``factor``, so the result does not
    depend on the Decimal context precision.
    """
    numerator, denominator = factor.as_integer_ratio()
    return _div_half_up(amount * numerator, denominator * divisor)


def _as_rate(rate: Decimal | str | float) -> Decimal:
    try:
        # str() keeps float inputs like 0.1 from dragging binary noise along
        dec = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    except InvalidOperation as err:
        raise InvalidAmountError(f"Invalid fee rate: {rate!r}") from err
    if not dec.is_finite() or dec < 0 or dec > 1:
        raise InvalidAmountError(f"Fee rate must be between 0 and 1, got {rate}")
    return dec


def compute_breakdown(
    total_minor_units: int,
    platform_fee_rate: Decimal | str | float,
    advance_paid: int = 0,
) -> MoneyBreakdown:
    """Split ``total_minor_units`` into worker payout and platform fee.

    Args:
        total_minor_units: Total price in minor units.
        platform_fee_rate: Platform share, e.g. Decimal("0.10").
        advance_paid: Minor units already paid before completion.

    Returns:
        A MoneyBreakdown whose payout and fee sum to the total exactly.

    Raises:
        InvalidAmountError: On negative, non-integer or oversized amounts, or a rate
            outside [0, 1].
    """
    total = require_minor_units(total_minor_units, "total")
    advance = require_minor_units(advance_paid, "advance_paid")
    rate = _as_rate(platform_fee_rate)

    platform_fee = scale_minor_units(total, rate)
    return MoneyBreakdown(
        total=total,
        worker_payout=total - platform_fee,
        platform_fee=platform_fee,
        advance_paid=advance,
        remaining_to_pay=max(total - advance, 0),
    )


def format_brl(minor_units: int) -> str:
    """Render minor units as Brazilian reais, e.g. 123456 -> 'R$ 1.234,56'."""
    sign = "-" if minor_units < 0 else ""
    reais, centavos = divmod(abs(minor_units), 100)
    grouped = f"{reais:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{centavos:02d}"
