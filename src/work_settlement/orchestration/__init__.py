"""Orchestration layer - background jobs that run outside a request."""

from work_settlement.orchestration.expiry_sweeper import ExpirySweeper, run_expiry_sweep

__all__ = ["ExpirySweeper", "run_expiry_sweep"]
