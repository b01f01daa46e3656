"""
Timeout-driven resolution rules.

Both automated transitions follow the same shape: once a time window has closed
and nobody acted inside it, the market takes its default resolution. A rule
describes one instance of that shape:

- which status the market must be in (index and chain)
- when the window closes (index column for discovery, chain field for the guard)
- what "nobody acted" means on chain
- which program instruction applies the default
- which index patch records it afterwards

The scanner, guard and writer are generic over rules.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

from core.interfaces import FilterOp, IndexFilter
from models import (
    ChainMarketAccount,
    EligibilityDecision,
    JobType,
    Market,
    ResolutionStatus,
    SkipReason,
)


class SilenceRule(ABC):
    job_type: JobType
    instruction: str
    source_status: ResolutionStatus
    target_status: ResolutionStatus
    status_mismatch_reason: SkipReason
    window_open_reason: SkipReason
    index_window_column: str

    @property
    def job_name(self) -> str:
        return f"resolution:{self.job_type.value}"

    @abstractmethod
    def index_window_cutoff(self, now: datetime) -> datetime:
        """Latest value of ``index_window_column`` that counts as closed."""

    @abstractmethod
    def window_end(self, account: ChainMarketAccount) -> Optional[int]:
        """Unix second at which the on-chain window closes, None if unknown."""

    @abstractmethod
    def absence_violation(self, account: ChainMarketAccount) -> Optional[SkipReason]:
        """Reason the silence condition does not hold on chain, None when it does."""

    @abstractmethod
    def reconciliation_patch(
        self, market: Market, account: ChainMarketAccount, signature: str, now: datetime
    ) -> dict:
        pass

    def candidate_filters(self, now: datetime) -> list[IndexFilter]:
        return [
            IndexFilter(column="resolution_status", op=FilterOp.EQ, value=self.source_status.value),
            IndexFilter(column="resolved", op=FilterOp.EQ, value=False),
            IndexFilter(column="cancelled", op=FilterOp.EQ, value=False),
            IndexFilter(column=self.index_window_column, op=FilterOp.LTE, value=self.index_window_cutoff(now)),
        ]

    def evaluate(self, account: ChainMarketAccount, now: datetime) -> EligibilityDecision:
        now_ts = int(now.timestamp())
        window_end = self.window_end(account)
        diagnostics = {
            "status": account.status.value,
            "dispute_count": account.dispute_count,
            "window_end": window_end,
            "now": now_ts,
        }

        if account.status != self.source_status:
            return EligibilityDecision.skipped(self.status_mismatch_reason, account, **diagnostics)
        if account.resolved:
            return EligibilityDecision.skipped(SkipReason.ALREADY_RESOLVED, account, **diagnostics)
        if account.cancelled:
            return EligibilityDecision.skipped(SkipReason.ALREADY_CANCELLED, account, **diagnostics)

        violation = self.absence_violation(account)
        if violation is not None:
            return EligibilityDecision.skipped(violation, account, **diagnostics)

        if not window_end or now_ts < window_end:
            return EligibilityDecision.skipped(self.window_open_reason, account, **diagnostics)

        return EligibilityDecision.go(account)


class FinalizeNoDisputesRule(SilenceRule):
    """proposed -> finalized once the contest window closes with zero disputes."""

    job_type = JobType.FINALIZE
    instruction = "finalize_if_no_disputes"
    source_status = ResolutionStatus.PROPOSED
    target_status = ResolutionStatus.FINALIZED
    status_mismatch_reason = SkipReason.NOT_PROPOSED
    window_open_reason = SkipReason.CONTEST_WINDOW_OPEN
    index_window_column = "contest_deadline"

    def index_window_cutoff(self, now: datetime) -> datetime:
        return now

    def window_end(self, account: ChainMarketAccount) -> Optional[int]:
        return account.contest_deadline

    def absence_violation(self, account: ChainMarketAccount) -> Optional[SkipReason]:
        if account.dispute_count != 0:
            return SkipReason.HAS_DISPUTES
        return None

    def reconciliation_patch(
        self, market: Market, account: ChainMarketAccount, signature: str, now: datetime
    ) -> dict:
        winning = market.proposed_winning_outcome
        if winning is None:
            winning = account.proposed_outcome
        return {
            "resolved": True,
            "cancelled": False,
            "resolution_status": self.target_status.value,
            "winning_outcome": winning,
            "resolved_at": now,
            "resolve_tx": signature,
        }


class CancelNoProposalRule(SilenceRule):
    """open -> cancelled when nobody proposed an outcome after the market ended."""

    job_type = JobType.CANCEL
    instruction = "cancel_if_no_proposal"
    source_status = ResolutionStatus.OPEN
    target_status = ResolutionStatus.CANCELLED
    status_mismatch_reason = SkipReason.NOT_OPEN
    window_open_reason = SkipReason.NOT_ENDED_ONCHAIN
    index_window_column = "end_date"

    def __init__(self, grace_hours: int = 48):
        self.grace_hours = grace_hours

    @property
    def cancel_reason(self) -> str:
        return f"no_proposal_{self.grace_hours}h"

    def index_window_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(hours=self.grace_hours)

    def window_end(self, account: ChainMarketAccount) -> Optional[int]:
        return account.resolution_time

    def absence_violation(self, account: ChainMarketAccount) -> Optional[SkipReason]:
        # A proposal moves the market out of open, so the status check covers it.
        return None

    def reconciliation_patch(
        self, market: Market, account: ChainMarketAccount, signature: str, now: datetime
    ) -> dict:
        return {
            "cancelled": True,
            "resolution_status": self.target_status.value,
            "cancel_reason": self.cancel_reason,
            "cancelled_at": now,
            "cancel_tx": signature,
        }


def rule_for(job_type: JobType, cancel_grace_hours: int = 48) -> SilenceRule:
    if job_type == JobType.FINALIZE:
        return FinalizeNoDisputesRule()
    if job_type == JobType.CANCEL:
        return CancelNoProposalRule(grace_hours=cancel_grace_hours)
    raise ValueError(f"Unknown job type: {job_type}")
