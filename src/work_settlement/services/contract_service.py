"""Contract Service - contract generation and dual signatures.

A contract is drafted once from a snapshot of the engagement, its current
terms and the two parties' names. Its text is never regenerated. Each party
signs independently; the second signature moves it to fully executed, which
unlocks check-in and, after check-out, settlement.

    drafted --first_signature--> partially_signed --second_signature--> fully_executed

Re-signing the same role is a no-op success so client retries are harmless.
There is no cancel or revoke.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from work_settlement.domain.contract_text import ContractSnapshot, render_contract_text
from work_settlement.domain.enums import ContractStatus, EventType, PartyRole
from work_settlement.domain.exceptions import (
    ConcurrentModificationError,
    ContractNotFoundError,
    EngagementNotFoundError,
)
from work_settlement.domain.payment_terms import (
    DEFAULT_TERMS,
    dump_terms,
    parse_terms,
    resolve_terms,
)
from work_settlement.domain.state_machine import ContractStateMachine
from work_settlement.infrastructure.database.orm_models import Contract
from work_settlement.infrastructure.database.repositories import (
    ContractRepository,
    EngagementRepository,
    EventRepository,
)
from work_settlement.logging_config import get_logger
from work_settlement.services.transitions import (
    ensure_party,
    fire_transition,
    flush_or_raise,
    party_id,
    utcnow,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.domain.collaborators import UserDirectory
    from work_settlement.infrastructure.database.orm_models import Engagement

logger = get_logger(__name__)


class ContractService:
    """Generates contracts and collects both parties' signatures."""

    def __init__(self, session: AsyncSession, user_directory: UserDirectory) -> None:
        self._session = session
        self._directory = user_directory
        self._engagement_repo = EngagementRepository(session)
        self._contract_repo = ContractRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self, engagement_id: uuid.UUID) -> Contract:
        """Return the current contract, drafting one if none exists."""
        engagement = await self._get_engagement_or_raise(engagement_id)
        if engagement.current_contract_id is None:
            names = await self._party_names(engagement)
        else:
            names = None

        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        contract = await self._current_contract(engagement, for_update=True)
        if contract is not None:
            return contract
        if names is None:
            names = await self._party_names(engagement)
        return await self._draft(engagement, *names)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    async def sign(
        self,
        engagement_id: uuid.UUID,
        role: PartyRole | str,
        signer_id: str | None = None,
    ) -> Contract:
        """Record ``role``'s signature on the current contract.

        Drafts the contract first if needed. The second distinct signature
        moves the contract to FULLY_EXECUTED in the same transaction.
        """
        role = PartyRole(role)
        engagement = await self._get_engagement_or_raise(engagement_id)
        ensure_party(engagement, role, signer_id)
        # directory lookups happen before any row lock is taken
        names = None
        if engagement.current_contract_id is None:
            names = await self._party_names(engagement)

        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        contract = await self._current_contract(engagement, for_update=True)
        if contract is None:
            if names is None:
                names = await self._party_names(engagement)
            contract = await self._draft(engagement, *names)

        if contract.signed_at(role.value) is not None:
            logger.info(
                "contract.sign_retry",
                contract_id=str(contract.id),
                role=role.value,
            )
            return contract

        old_status = ContractStatus(contract.status)
        event_name = (
            "first_signature" if old_status == ContractStatus.DRAFTED else "second_signature"
        )
        new_status = ContractStatus(
            fire_transition(ContractStateMachine, contract.status, event_name)
        )

        now = utcnow()
        if role is PartyRole.PRODUCER:
            contract.producer_signed_at = now
        else:
            contract.worker_signed_at = now
        contract.status = new_status.value

        contract_id = str(contract.id)
        await flush_or_raise(
            self._session, lambda: ConcurrentModificationError("Contract", contract_id)
        )

        signer = signer_id or party_id(engagement, role)
        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.CONTRACT_SIGNED,
            old_status=old_status,
            new_status=new_status,
            actor=signer,
            metadata={"role": role.value},
            subject="contract",
            subject_id=contract.id,
        )
        if new_status == ContractStatus.FULLY_EXECUTED:
            await self._event_repo.record(
                engagement_id=engagement.id,
                event_type=EventType.CONTRACT_EXECUTED,
                old_status=old_status,
                new_status=new_status,
                actor="SYSTEM",
                subject="contract",
                subject_id=contract.id,
            )
            logger.info("contract.executed", contract_id=contract_id)

        logger.info(
            "contract.signed",
            contract_id=contract_id,
            role=role.value,
            status=new_status.value,
        )
        return contract

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_contract(self, engagement_id: uuid.UUID) -> Contract:
        """Return the engagement's current contract or raise ContractNotFoundError."""
        engagement = await self._get_engagement_or_raise(engagement_id)
        contract = await self._current_contract(engagement)
        if contract is None:
            raise ContractNotFoundError(str(engagement_id))
        return contract

    async def list_contracts(self, engagement_id: uuid.UUID) -> list[Contract]:
        """Every contract drafted for the engagement, superseded ones included."""
        await self._get_engagement_or_raise(engagement_id)
        return await self._contract_repo.get_by_engagement(engagement_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _draft(self, engagement: Engagement, producer_name: str, worker_name: str) -> Contract:
        if engagement.payment_terms is None:
            terms = DEFAULT_TERMS
        else:
            terms = parse_terms(engagement.payment_terms)
        total = resolve_terms(terms, engagement.final_price_minor_units).total
        now = utcnow()

        text = render_contract_text(
            ContractSnapshot(
                engagement_id=str(engagement.id),
                job_id=engagement.job_id,
                producer_name=producer_name,
                worker_name=worker_name,
                total_minor_units=total,
                terms=terms,
                generated_at=now,
            )
        )
        contract = Contract(
            engagement_id=engagement.id,
            text=text,
            total_value_minor_units=total,
            payment_terms=dump_terms(terms),
            producer_name=producer_name,
            worker_name=worker_name,
            status=ContractStatus.DRAFTED.value,
        )
        contract = await self._contract_repo.create(contract)
        engagement.current_contract_id = contract.id
        engagement_id = str(engagement.id)
        await flush_or_raise(
            self._session, lambda: ConcurrentModificationError("Engagement", engagement_id)
        )

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.CONTRACT_DRAFTED,
            old_status=None,
            new_status=ContractStatus.DRAFTED,
            actor="SYSTEM",
            metadata={"kind": terms.kind, "total": total},
            subject="contract",
            subject_id=contract.id,
        )

        logger.info(
            "contract.drafted",
            engagement_id=engagement_id,
            contract_id=str(contract.id),
            total=total,
        )
        return contract

    async def _party_names(self, engagement: Engagement) -> tuple[str, str]:
        producer = await self._directory.get_user(engagement.producer_id)
        worker = await self._directory.get_user(engagement.worker_id)
        return (
            producer.name if producer else engagement.producer_id,
            worker.name if worker else engagement.worker_id,
        )

    async def _current_contract(
        self, engagement: Engagement, *, for_update: bool = False
    ) -> Contract | None:
        if engagement.current_contract_id is None:
            return None
        return await self._contract_repo.get_by_id(
            engagement.current_contract_id, for_update=for_update
        )

    async def _get_engagement_or_raise(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> Engagement:
        engagement = await self._engagement_repo.get_by_id(engagement_id, for_update=for_update)
        if engagement is None:
            raise EngagementNotFoundError(str(engagement_id))
        return engagement
