"""Payment terms - a closed tagged union with one resolver per variant.

Seven kinds of terms can be negotiated. Each is its own pydantic model
discriminated on ``kind``; ``resolve_terms`` matches exhaustively over them,
so adding an eighth kind without a resolver is caught by the type checker
(``assert_never``) instead of silently falling through a string comparison.

Usage:
    terms = parse_terms({"kind": "advance_custom", "advance_percent": 30})
    resolution = resolve_terms(terms, 20000)
    resolution.advance, resolution.remainder  # (6000, 14000)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, Literal, assert_never

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from work_settlement.domain.exceptions import InvalidAmountError
from work_settlement.domain.money import (
    MAX_MINOR_UNITS,
    format_brl,
    require_minor_units,
    scale_minor_units,
)

# Units, hours or days on a single engagement.
_MAX_ESTIMATE = Decimal(10**9)


class _TermsBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    notes: str | None = Field(default=None, max_length=1000)


class FullAfter(_TermsBase):
    """100% paid after the work is done."""

    kind: Literal["full_after"] = "full_after"


class Split5050(_TermsBase):
    """Half up front, half on completion."""

    kind: Literal["split_50_50"] = "split_50_50"


class Split3070(_TermsBase):
    """30% up front, 70% on completion."""

    kind: Literal["split_30_70"] = "split_30_70"


class PerUnit(_TermsBase):
    """Priced per plant, sack or hectare; the total is derived."""

    kind: Literal["per_unit"] = "per_unit"
    unit_price_minor_units: int = Field(ge=0, le=MAX_MINOR_UNITS)
    estimated_units: Decimal = Field(ge=0, le=_MAX_ESTIMATE, decimal_places=4)


class PerHour(_TermsBase):
    kind: Literal["per_hour"] = "per_hour"
    rate_minor_units: int = Field(ge=0, le=MAX_MINOR_UNITS)
    estimated_hours: Decimal = Field(default=Decimal(1), ge=0, le=_MAX_ESTIMATE, decimal_places=4)


class PerDay(_TermsBase):
    kind: Literal["per_day"] = "per_day"
    rate_minor_units: int = Field(ge=0, le=MAX_MINOR_UNITS)
    estimated_days: Decimal = Field(default=Decimal(1), ge=0, le=_MAX_ESTIMATE, decimal_places=4)


class AdvanceCustom(_TermsBase):
    """A negotiated percentage up front, the rest on completion."""

    kind: Literal["advance_custom"] = "advance_custom"
    advance_percent: Decimal = Field(ge=0, le=100, decimal_places=4)


PaymentTerms = Annotated[
    FullAfter | Split5050 | Split3070 | PerUnit | PerHour | PerDay | AdvanceCustom,
    Field(discriminator="kind"),
]

_terms_adapter: TypeAdapter[PaymentTerms] = TypeAdapter(PaymentTerms)

DEFAULT_TERMS = FullAfter()

TERMS_LABELS: dict[str, str] = {
    "full_after": "100% após conclusão",
    "split_50_50": "50% antes, 50% depois",
    "split_30_70": "30% antes, 70% depois",
    "per_unit": "Por unidade",
    "per_hour": "Por hora",
    "per_day": "Por diária",
    "advance_custom": "Adiantamento personalizado",
}


@dataclass(frozen=True)
class TermsResolution:
    """How a total is due under a set of terms. advance + remainder == total."""

    advance: int
    remainder: int
    total: int

    def to_dict(self) -> dict:
        return {"advance": self.advance, "remainder": self.remainder, "total": self.total}


def parse_terms(data: dict | PaymentTerms) -> PaymentTerms:
    """Validate a raw dict (e.g. a JSON column) into a terms variant."""
    if isinstance(data, BaseModel):
        return data
    return _terms_adapter.validate_python(data)


def dump_terms(terms: PaymentTerms) -> dict:
    """Serialize terms for storage in a JSON column."""
    return terms.model_dump(mode="json")


def derive_total(terms: PaymentTerms, stated_total: int | None) -> int:
    """Return the total price implied by ``terms``.

    Rate-based kinds always recompute from their rate and estimate; the stated
    total is ignored for them. Fixed kinds require a stated total.
    """
    match terms:
        case PerUnit():
            derived = scale_minor_units(terms.unit_price_minor_units, terms.estimated_units)
        case PerHour():
            derived = scale_minor_units(terms.rate_minor_units, terms.estimated_hours)
        case PerDay():
            derived = scale_minor_units(terms.rate_minor_units, terms.estimated_days)
        case FullAfter() | Split5050() | Split3070() | AdvanceCustom():
            if stated_total is None:
                raise InvalidAmountError(f"Terms '{terms.kind}' need a stated total price")
            return require_minor_units(stated_total, "total_price")
        case _:
            assert_never(terms)
    return require_minor_units(derived, f"{terms.kind} total")


def _advance_for(terms: PaymentTerms, total: int) -> int:
    match terms:
        case FullAfter() | PerUnit() | PerHour() | PerDay():
            return 0
        case Split5050():
            return scale_minor_units(total, Decimal("0.5"))
        case Split3070():
            return scale_minor_units(total, Decimal("0.3"))
        case AdvanceCustom():
            return scale_minor_units(total, terms.advance_percent, divisor=100)
        case _:
            assert_never(terms)


def resolve_terms(terms: PaymentTerms, total_price: int | None) -> TermsResolution:
    """Split the total implied by ``terms`` into advance and remainder."""
    total = derive_total(terms, total_price)
    advance = _advance_for(terms, total)
    return TermsResolution(advance=advance, remainder=total - advance, total=total)


def describe_terms(terms: PaymentTerms) -> str:
    """Human-readable (pt-BR) one-line description used in contract text."""
    label = TERMS_LABELS[terms.kind]
    match terms:
        case PerUnit():
            return f"{label}: {terms.estimated_units} unidade(s) x {format_brl(terms.unit_price_minor_units)}"
        case PerHour():
            return f"{label}: {terms.estimated_hours} hora(s) x {format_brl(terms.rate_minor_units)}"
        case PerDay():
            return f"{label}: {terms.estimated_days} diária(s) x {format_brl(terms.rate_minor_units)}"
        case AdvanceCustom():
            return f"{label}: {terms.advance_percent}% antes da conclusão"
        case _:
            return label
