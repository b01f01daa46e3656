from enum import Enum
from typing import Optional
from pydantic import BaseModel

from models.market import ResolutionStatus


class AccountInfo(BaseModel):
    owner: str
    data: bytes
    lamports: int = 0


class ChainMarketAccount(BaseModel):
    """Canonical decoded form of the on-chain Market account."""

    creator: Optional[str] = None
    status: ResolutionStatus
    dispute_count: int = 0
    contest_deadline: Optional[int] = None  # unix seconds
    resolution_time: int = 0  # unix seconds
    resolved: bool = False
    cancelled: bool = False
    winning_outcome: Optional[int] = None
    proposed_outcome: Optional[int] = None
    proposed_at: Optional[int] = None
    outcome_count: int = 0


class InstructionAccount(BaseModel):
    pubkey: str
    is_signer: bool = False
    is_writable: bool = False


class SignatureState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"


class SignatureStatus(BaseModel):
    state: SignatureState
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state != SignatureState.PENDING
