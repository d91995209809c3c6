"""Application services - use case orchestration."""

from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.negotiation_service import NegotiationService
from work_settlement.services.payment_rail import PixRail
from work_settlement.services.settlement_service import SettlementService
from work_settlement.services.user_directory import HttpUserDirectory, InMemoryUserDirectory

__all__ = [
    "ContractService",
    "EngagementService",
    "HttpUserDirectory",
    "InMemoryUserDirectory",
    "NegotiationService",
    "PixRail",
    "SettlementService",
]
