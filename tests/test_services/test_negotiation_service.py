"""Tests for the negotiation ledger.

These tests verify that:
    1. Proposals are appended, never edited, and checked against the proposer's role.
    2. Only the counterpart accepts; accepting twice is harmless.
    3. Accepted terms drive the engagement's final price.
    4. Renegotiation supersedes a contract still collecting signatures.
    5. Negotiation closes once the contract is fully executed.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from work_settlement.domain.enums import ContractStatus, EventType, ProposalStatus
from work_settlement.domain.exceptions import (
    EngagementNotFoundError,
    InvalidAmountError,
    NegotiationClosedError,
    PartyMismatchError,
    ProposalNotFoundError,
)
from work_settlement.domain.payment_terms import AdvanceCustom, PerDay


class TestPropose:
    @pytest.mark.asyncio
    async def test_proposal_is_appended(self, negotiation_service, engagement_service, engagement) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms={"kind": "split_50_50"},
            total_price=12000,
            message="Metade antes para o transporte",
        )

        assert proposal.status == ProposalStatus.PROPOSED
        assert proposal.terms["kind"] == "split_50_50"
        assert proposal.total_price_minor_units == 12000

        history = await negotiation_service.get_history(engagement.id)
        assert [p.id for p in history] == [proposal.id]

        events = await engagement_service.get_events(engagement.id)
        assert EventType.TERMS_PROPOSED in {e.event_type for e in events}

    @pytest.mark.asyncio
    async def test_proposer_must_hold_role(self, negotiation_service, engagement) -> None:
        with pytest.raises(PartyMismatchError):
            await negotiation_service.propose(
                engagement.id,
                proposer_id=engagement.worker_id,
                role="producer",
                terms={"kind": "full_after"},
                total_price=10000,
            )

    @pytest.mark.asyncio
    async def test_fixed_kind_needs_total(self, negotiation_service, engagement) -> None:
        with pytest.raises(InvalidAmountError):
            await negotiation_service.propose(
                engagement.id,
                proposer_id=engagement.producer_id,
                role="producer",
                terms={"kind": "split_30_70"},
            )

    @pytest.mark.asyncio
    async def test_unknown_engagement(self, negotiation_service) -> None:
        with pytest.raises(EngagementNotFoundError):
            await negotiation_service.propose(
                uuid.uuid4(),
                proposer_id="anyone",
                role="producer",
                terms={"kind": "full_after"},
                total_price=100,
            )


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_sets_current_terms_and_price(
        self, negotiation_service, engagement
    ) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.producer_id,
            role="producer",
            terms=PerDay(rate_minor_units=15000, estimated_days=Decimal(3)),
        )

        accepted = await negotiation_service.accept(proposal.id, accepted_by=engagement.worker_id)

        assert accepted.status == ProposalStatus.ACCEPTED
        assert accepted.accepted_at is not None
        assert engagement.accepted_proposal_id == proposal.id
        assert engagement.payment_terms["kind"] == "per_day"
        assert engagement.final_price_minor_units == 45000

    @pytest.mark.asyncio
    async def test_proposer_cannot_accept_own_proposal(
        self, negotiation_service, engagement
    ) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.producer_id,
            role="producer",
            terms={"kind": "full_after"},
            total_price=11000,
        )
        with pytest.raises(PartyMismatchError):
            await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)

    @pytest.mark.asyncio
    async def test_accept_twice_is_noop(
        self, negotiation_service, engagement_service, engagement
    ) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms={"kind": "full_after"},
            total_price=11000,
        )
        first = await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)
        second = await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)

        assert first.id == second.id
        assert second.accepted_at == first.accepted_at
        events = await engagement_service.get_events(engagement.id)
        assert [e.event_type for e in events].count(EventType.TERMS_ACCEPTED) == 1

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, negotiation_service) -> None:
        with pytest.raises(ProposalNotFoundError):
            await negotiation_service.accept(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_latest_acceptance_wins(self, negotiation_service, engagement) -> None:
        first = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms={"kind": "full_after"},
            total_price=11000,
        )
        await negotiation_service.accept(first.id, accepted_by=engagement.producer_id)
        second = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.producer_id,
            role="producer",
            terms={"kind": "split_30_70"},
            total_price=10500,
        )
        await negotiation_service.accept(second.id, accepted_by=engagement.worker_id)

        current = await negotiation_service.get_current_terms(engagement.id)
        assert current["proposal_id"] == str(second.id)
        assert current["resolution"] == {"advance": 3150, "remainder": 7350, "total": 10500}
        assert engagement.final_price_minor_units == 10500


class TestCurrentTerms:
    @pytest.mark.asyncio
    async def test_default_is_full_payment_after_over_bid(
        self, negotiation_service, engagement
    ) -> None:
        current = await negotiation_service.get_current_terms(engagement.id)

        assert current["proposal_id"] is None
        assert current["terms"]["kind"] == "full_after"
        assert current["resolution"] == {"advance": 0, "remainder": 10000, "total": 10000}

    @pytest.mark.asyncio
    async def test_advance_custom_resolution(self, negotiation_service, engagement) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms=AdvanceCustom(advance_percent=Decimal(30)),
            total_price=20000,
        )
        await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)

        current = await negotiation_service.get_current_terms(engagement.id)
        assert current["resolution"] == {"advance": 6000, "remainder": 14000, "total": 20000}


class TestRenegotiation:
    @pytest.mark.asyncio
    async def test_accept_supersedes_partially_signed_contract(
        self, negotiation_service, contract_service, engagement
    ) -> None:
        old = await contract_service.sign(engagement.id, "producer", signer_id=engagement.producer_id)
        assert old.status == ContractStatus.PARTIALLY_SIGNED

        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms={"kind": "split_50_50"},
            total_price=14000,
        )
        await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)

        assert old.superseded_at is not None
        assert engagement.current_contract_id is None

        fresh = await contract_service.generate(engagement.id)
        assert fresh.id != old.id
        assert fresh.status == ContractStatus.DRAFTED
        assert fresh.total_value_minor_units == 14000
        assert fresh.producer_signed_at is None

        contracts = await contract_service.list_contracts(engagement.id)
        assert {c.id for c in contracts} == {old.id, fresh.id}

    @pytest.mark.asyncio
    async def test_negotiation_closed_after_execution(
        self, negotiation_service, executed_engagement
    ) -> None:
        with pytest.raises(NegotiationClosedError):
            await negotiation_service.propose(
                executed_engagement.id,
                proposer_id=executed_engagement.worker_id,
                role="worker",
                terms={"kind": "full_after"},
                total_price=99999,
            )

    @pytest.mark.asyncio
    async def test_pending_proposal_cannot_be_accepted_after_execution(
        self, negotiation_service, contract_service, engagement
    ) -> None:
        proposal = await negotiation_service.propose(
            engagement.id,
            proposer_id=engagement.worker_id,
            role="worker",
            terms={"kind": "full_after"},
            total_price=12000,
        )
        await contract_service.sign(engagement.id, "producer")
        await contract_service.sign(engagement.id, "worker")

        with pytest.raises(NegotiationClosedError):
            await negotiation_service.accept(proposal.id, accepted_by=engagement.producer_id)
        assert engagement.final_price_minor_units == 10000
