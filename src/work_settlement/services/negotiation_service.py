"""Negotiation Service - the append-only payment terms ledger.

Either party proposes terms; the other accepts one. Proposals are never
edited or deleted, so the ledger doubles as the negotiation audit trail. The
engagement's current terms are those of the most recently accepted proposal.

Negotiation stays open until the contract is fully executed. Accepting new
terms while a contract is still collecting signatures supersedes that
contract: its text and any signature on it stay as they are, and the next
generate/sign starts a fresh contract from the new terms.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from work_settlement.domain.enums import ContractStatus, EventType, PartyRole, ProposalStatus
from work_settlement.domain.exceptions import (
    ConcurrentModificationError,
    EngagementNotFoundError,
    NegotiationClosedError,
    ProposalNotFoundError,
)
from work_settlement.domain.payment_terms import (
    DEFAULT_TERMS,
    derive_total,
    dump_terms,
    parse_terms,
    resolve_terms,
)
from work_settlement.infrastructure.database.orm_models import NegotiationProposal
from work_settlement.infrastructure.database.repositories import (
    ContractRepository,
    EngagementRepository,
    EventRepository,
    ProposalRepository,
)
from work_settlement.logging_config import get_logger
from work_settlement.services.transitions import ensure_party, flush_or_raise, utcnow

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.domain.payment_terms import PaymentTerms
    from work_settlement.infrastructure.database.orm_models import Contract, Engagement

logger = get_logger(__name__)

_COUNTERPART = {PartyRole.PRODUCER: PartyRole.WORKER, PartyRole.WORKER: PartyRole.PRODUCER}


class NegotiationService:
    """Manages payment terms proposals for an engagement."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._engagement_repo = EngagementRepository(session)
        self._proposal_repo = ProposalRepository(session)
        self._contract_repo = ContractRepository(session)
        self._event_repo = EventRepository(session)

    async def propose(
        self,
        engagement_id: uuid.UUID,
        proposer_id: str,
        role: PartyRole | str,
        terms: PaymentTerms | dict,
        total_price: int | None = None,
        message: str | None = None,
    ) -> NegotiationProposal:
        """Append a new proposal to the ledger.

        Args:
            engagement_id: Engagement being negotiated.
            proposer_id: User making the proposal; must hold ``role``.
            role: "producer" or "worker".
            terms: A terms variant or its dict form.
            total_price: Stated total in minor units. Required for fixed-price
                kinds; rate-based kinds derive their own total and ignore it.
            message: Optional free text shown to the other party.

        Raises:
            NegotiationClosedError: The contract is already fully executed.
            InvalidAmountError: The terms do not yield a valid total.
        """
        role = PartyRole(role)
        engagement = await self._get_engagement_or_raise(engagement_id)
        ensure_party(engagement, role, proposer_id)
        await self._ensure_open(engagement)

        parsed = parse_terms(terms)
        derived_total = derive_total(parsed, total_price)

        proposal = NegotiationProposal(
            engagement_id=engagement.id,
            proposer_id=proposer_id,
            proposer_role=role.value,
            terms=dump_terms(parsed),
            total_price_minor_units=total_price,
            message=message,
            status=ProposalStatus.PROPOSED.value,
        )
        proposal = await self._proposal_repo.create(proposal)

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.TERMS_PROPOSED,
            old_status=None,
            new_status=ProposalStatus.PROPOSED,
            actor=proposer_id,
            metadata={"kind": parsed.kind, "total": derived_total},
            subject="proposal",
            subject_id=proposal.id,
        )

        logger.info(
            "negotiation.proposed",
            engagement_id=str(engagement_id),
            proposal_id=str(proposal.id),
            kind=parsed.kind,
        )
        return proposal

    async def accept(
        self,
        proposal_id: uuid.UUID,
        accepted_by: str | None = None,
    ) -> NegotiationProposal:
        """Accept a proposal and make its terms the engagement's current terms.

        Accepting an already accepted proposal is a no-op. When ``accepted_by``
        is given it must be the counterpart of the proposer.
        """
        proposal = await self._get_proposal_or_raise(proposal_id)
        if proposal.status == ProposalStatus.ACCEPTED:
            logger.info("negotiation.accept_retry", proposal_id=str(proposal_id))
            return proposal

        engagement = await self._get_engagement_or_raise(proposal.engagement_id, for_update=True)
        # re-read under the engagement lock; a concurrent accept may have won
        proposal = await self._get_proposal_or_raise(proposal_id, for_update=True)
        if proposal.status == ProposalStatus.ACCEPTED:
            return proposal

        ensure_party(engagement, _COUNTERPART[PartyRole(proposal.proposer_role)], accepted_by)
        await self._ensure_open(engagement)

        terms = parse_terms(proposal.terms)
        total = derive_total(terms, proposal.total_price_minor_units)
        now = utcnow()

        proposal.status = ProposalStatus.ACCEPTED.value
        proposal.accepted_at = now
        engagement.payment_terms = proposal.terms
        engagement.accepted_proposal_id = proposal.id
        engagement.final_price_minor_units = total

        superseded = await self._supersede_pending_contract(engagement, now)
        await flush_or_raise(
            self._session,
            lambda: ConcurrentModificationError("Engagement", str(proposal.engagement_id)),
        )

        actor = accepted_by or "SYSTEM"
        if superseded is not None:
            await self._event_repo.record(
                engagement_id=engagement.id,
                event_type=EventType.CONTRACT_SUPERSEDED,
                old_status=superseded.status,
                new_status=superseded.status,
                actor=actor,
                metadata={"proposal_id": str(proposal.id)},
                subject="contract",
                subject_id=superseded.id,
            )
        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.TERMS_ACCEPTED,
            old_status=ProposalStatus.PROPOSED,
            new_status=ProposalStatus.ACCEPTED,
            actor=actor,
            metadata={"kind": terms.kind, "total": total},
            subject="proposal",
            subject_id=proposal.id,
        )

        logger.info(
            "negotiation.accepted",
            engagement_id=str(engagement.id),
            proposal_id=str(proposal.id),
            total=total,
            superseded_contract=str(superseded.id) if superseded else None,
        )
        return proposal

    # ------------------------------------------------------------------
    # Read helpers (pure, lock-free)
    # ------------------------------------------------------------------

    async def get_history(self, engagement_id: uuid.UUID) -> list[NegotiationProposal]:
        """Return every proposal for the engagement, oldest first."""
        await self._get_engagement_or_raise(engagement_id)
        return await self._proposal_repo.get_by_engagement(engagement_id)

    async def get_proposal(self, proposal_id: uuid.UUID) -> NegotiationProposal:
        return await self._get_proposal_or_raise(proposal_id)

    async def get_current_terms(self, engagement_id: uuid.UUID) -> dict:
        """Return the accepted terms with a freshly derived resolution.

        Before any acceptance the engagement runs on full payment after
        completion over the bid price.
        """
        engagement = await self._get_engagement_or_raise(engagement_id)
        accepted = await self._proposal_repo.get_latest_accepted(engagement_id)
        if accepted is None:
            terms = DEFAULT_TERMS
            stated_total = engagement.final_price_minor_units
        else:
            terms = parse_terms(accepted.terms)
            stated_total = accepted.total_price_minor_units
        resolution = resolve_terms(terms, stated_total)
        return {
            "engagement_id": str(engagement.id),
            "proposal_id": str(accepted.id) if accepted else None,
            "terms": dump_terms(terms),
            "resolution": resolution.to_dict(),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _ensure_open(self, engagement: Engagement) -> None:
        if engagement.current_contract_id is None:
            return
        contract = await self._contract_repo.get_by_id(engagement.current_contract_id)
        if contract is not None and contract.status == ContractStatus.FULLY_EXECUTED:
            raise NegotiationClosedError(str(engagement.id))

    async def _supersede_pending_contract(
        self, engagement: Engagement, now: datetime
    ) -> Contract | None:
        if engagement.current_contract_id is None:
            return None
        contract = await self._contract_repo.get_by_id(
            engagement.current_contract_id, for_update=True
        )
        if contract is None:
            return None
        contract.superseded_at = now
        engagement.current_contract_id = None
        return contract

    async def _get_engagement_or_raise(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> Engagement:
        engagement = await self._engagement_repo.get_by_id(engagement_id, for_update=for_update)
        if engagement is None:
            raise EngagementNotFoundError(str(engagement_id))
        return engagement

    async def _get_proposal_or_raise(
        self, proposal_id: uuid.UUID, *, for_update: bool = False
    ) -> NegotiationProposal:
        proposal = await self._proposal_repo.get_by_id(proposal_id, for_update=for_update)
        if proposal is None:
            raise ProposalNotFoundError(str(proposal_id))
        return proposal
