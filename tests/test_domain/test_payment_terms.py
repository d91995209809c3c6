"""Tests for payment terms parsing and resolution.

Covers every terms kind, the derived totals of the rate-based kinds, and
the rule that advance + remainder always equals the total.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from work_settlement.domain.exceptions import InvalidAmountError
from work_settlement.domain.money import MAX_MINOR_UNITS
from work_settlement.domain.payment_terms import (
    DEFAULT_TERMS,
    AdvanceCustom,
    FullAfter,
    PerDay,
    PerHour,
    PerUnit,
    Split3070,
    Split5050,
    derive_total,
    describe_terms,
    dump_terms,
    parse_terms,
    resolve_terms,
)


class TestParseTerms:
    def test_discriminates_on_kind(self) -> None:
        terms = parse_terms({"kind": "advance_custom", "advance_percent": 30})
        assert isinstance(terms, AdvanceCustom)
        assert terms.advance_percent == Decimal(30)

    def test_model_passes_through(self) -> None:
        terms = Split5050()
        assert parse_terms(terms) is terms

    def test_dump_then_parse_keeps_variant(self) -> None:
        terms = PerDay(rate_minor_units=15000, estimated_days=Decimal(3))
        assert parse_terms(dump_terms(terms)) == terms

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_terms({"kind": "barter"})

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_terms({"kind": "full_after", "advance_percent": 10})

    def test_advance_percent_bounded(self) -> None:
        with pytest.raises(ValidationError):
            parse_terms({"kind": "advance_custom", "advance_percent": 120})

    def test_default_terms_is_full_after(self) -> None:
        assert DEFAULT_TERMS.kind == "full_after"


class TestResolveTerms:
    def test_full_after(self) -> None:
        resolution = resolve_terms(FullAfter(), 10000)
        assert (resolution.advance, resolution.remainder, resolution.total) == (0, 10000, 10000)

    def test_split_50_50(self) -> None:
        resolution = resolve_terms(Split5050(), 10001)
        assert resolution.advance == 5001
        assert resolution.remainder == 5000

    def test_split_30_70(self) -> None:
        resolution = resolve_terms(Split3070(), 10000)
        assert (resolution.advance, resolution.remainder) == (3000, 7000)

    def test_advance_custom(self) -> None:
        resolution = resolve_terms(AdvanceCustom(advance_percent=Decimal(30)), 20000)
        assert (resolution.advance, resolution.remainder) == (6000, 14000)

    @pytest.mark.parametrize(
        ("terms", "expected_total"),
        [
            (PerUnit(unit_price_minor_units=50, estimated_units=Decimal(400)), 20000),
            (PerHour(rate_minor_units=2500, estimated_hours=Decimal("8.5")), 21250),
            (PerDay(rate_minor_units=15000, estimated_days=Decimal(3)), 45000),
        ],
    )
    def test_rate_based_kinds_derive_total(self, terms, expected_total: int) -> None:  # noqa: ANN001
        resolution = resolve_terms(terms, 1)
        assert resolution.total == expected_total
        assert resolution.advance == 0
        assert resolution.remainder == expected_total

    def test_fixed_kind_needs_stated_total(self) -> None:
        with pytest.raises(InvalidAmountError):
            derive_total(Split5050(), None)

    def test_negative_stated_total_rejected(self) -> None:
        with pytest.raises(InvalidAmountError):
            resolve_terms(FullAfter(), -100)

    @pytest.mark.parametrize("percent", ["0", "12.5", "33.333", "99.99", "100"])
    @pytest.mark.parametrize("total", [0, 1, 333, 10001, 987654])
    def test_advance_plus_remainder_is_total(self, percent: str, total: int) -> None:
        resolution = resolve_terms(AdvanceCustom(advance_percent=Decimal(percent)), total)
        assert resolution.advance + resolution.remainder == total
        assert 0 <= resolution.advance <= total


class TestAmountLimits:
    def test_split_at_the_storage_limit_is_exact(self) -> None:
        resolution = resolve_terms(Split3070(), MAX_MINOR_UNITS)
        assert resolution.advance == (MAX_MINOR_UNITS * 3 * 2 + 10) // 20
        assert resolution.advance + resolution.remainder == MAX_MINOR_UNITS

    def test_stated_total_beyond_the_storage_limit(self) -> None:
        with pytest.raises(InvalidAmountError):
            resolve_terms(Split3070(), 10**29)

    def test_derived_total_beyond_the_storage_limit(self) -> None:
        terms = PerUnit(unit_price_minor_units=MAX_MINOR_UNITS, estimated_units=Decimal(2))
        with pytest.raises(InvalidAmountError, match="per_unit total"):
            derive_total(terms, None)

    @pytest.mark.parametrize(
        "data",
        [
            {"kind": "per_unit", "unit_price_minor_units": 10**20, "estimated_units": 1},
            {"kind": "per_unit", "unit_price_minor_units": 50, "estimated_units": 10**12},
            {"kind": "per_hour", "rate_minor_units": 2500, "estimated_hours": "8.123456"},
        ],
    )
    def test_oversized_terms_rejected(self, data: dict) -> None:
        with pytest.raises(ValidationError):
            parse_terms(data)


class TestDescribeTerms:
    def test_fixed_label(self) -> None:
        assert describe_terms(Split5050()) == "50% antes, 50% depois"

    def test_per_day_mentions_rate(self) -> None:
        text = describe_terms(PerDay(rate_minor_units=15000, estimated_days=Decimal(2)))
        assert "R$ 150,00" in text
        assert "diária" in text
