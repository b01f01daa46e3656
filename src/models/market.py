from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ResolutionStatus(str, Enum):
    OPEN = "open"
    PROPOSED = "proposed"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ResolutionStatus.FINALIZED, ResolutionStatus.CANCELLED)

    def can_transition_to(self, target: "ResolutionStatus") -> bool:
        return target in _TRANSITIONS[self]


# open -> proposed happens outside this service; listed so the table is complete.
_TRANSITIONS: dict[ResolutionStatus, frozenset[ResolutionStatus]] = {
    ResolutionStatus.OPEN: frozenset({ResolutionStatus.PROPOSED, ResolutionStatus.CANCELLED}),
    ResolutionStatus.PROPOSED: frozenset({ResolutionStatus.FINALIZED, ResolutionStatus.CANCELLED}),
    ResolutionStatus.FINALIZED: frozenset(),
    ResolutionStatus.CANCELLED: frozenset(),
}


class Market(BaseModel):
    """Off-chain index row. Lags the chain and is only used to find candidates."""

    address: str = ""
    resolution_status: ResolutionStatus = ResolutionStatus.OPEN
    resolved: bool = False
    cancelled: bool = False
    proposed_winning_outcome: Optional[int] = None
    contest_deadline: Optional[datetime] = None
    end_date: Optional[datetime] = None
    winning_outcome: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolve_tx: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_tx: Optional[str] = None
