"""Tests for domain enumerations."""

from __future__ import annotations

from work_settlement.domain.enums import (
    ChargeStatus,
    ChargeType,
    ContractStatus,
    EngagementStatus,
    EventType,
    PartyRole,
)


class TestEngagementStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"assigned", "checked_in", "checked_out", "completed"}
        actual = {s.value for s in EngagementStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(EngagementStatus.ASSIGNED, str)
        assert EngagementStatus.ASSIGNED == "assigned"


class TestContractStatus:
    def test_all_statuses_exist(self) -> None:
        assert {s.value for s in ContractStatus} == {
            "drafted",
            "partially_signed",
            "fully_executed",
        }


class TestChargeStatus:
    def test_all_statuses_exist(self) -> None:
        assert {s.value for s in ChargeStatus} == {"pending", "paid", "expired", "cancelled"}

    def test_active_statuses(self) -> None:
        assert ChargeStatus.active() == (ChargeStatus.PENDING, ChargeStatus.PAID)


class TestChargeType:
    def test_charge_types(self) -> None:
        assert ChargeType.WORKER_PAYOUT == "worker_payout"
        assert ChargeType.PLATFORM_FEE == "platform_fee"


class TestPartyRole:
    def test_roles(self) -> None:
        assert {r.value for r in PartyRole} == {"producer", "worker"}


class TestEventType:
    def test_all_event_types_exist(self) -> None:
        # 4 lifecycle + 2 negotiation + 4 contract + 4 settlement
        assert len(EventType) == 14

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.CHARGE_ISSUED, str)
