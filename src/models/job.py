from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from models.chain import ChainMarketAccount


class JobType(str, Enum):
    FINALIZE = "finalize"
    CANCEL = "cancel"


class SkipReason(str, Enum):
    MISSING_ACCOUNT = "missing_account"
    WRONG_PROGRAM_OWNER = "wrong_program_owner"
    NOT_A_MARKET_ACCOUNT = "not_a_market_account"
    NOT_PROPOSED = "not_proposed"
    NOT_OPEN = "not_open"
    HAS_DISPUTES = "has_disputes"
    CONTEST_WINDOW_OPEN = "contest_window_open"
    NOT_ENDED_ONCHAIN = "not_ended_onchain"
    ALREADY_RESOLVED = "already_resolved"
    ALREADY_CANCELLED = "already_cancelled"


class EligibilitySkip(BaseModel):
    reason: SkipReason
    diagnostics: dict[str, Any] = Field(default_factory=dict)


class EligibilityDecision(BaseModel):
    skip: Optional[EligibilitySkip] = None
    account: Optional[ChainMarketAccount] = None

    @property
    def proceed(self) -> bool:
        return self.skip is None

    @classmethod
    def go(cls, account: ChainMarketAccount) -> "EligibilityDecision":
        return cls(account=account)

    @classmethod
    def skipped(
        cls,
        reason: SkipReason,
        account: Optional[ChainMarketAccount] = None,
        **diagnostics,
    ) -> "EligibilityDecision":
        return cls(skip=EligibilitySkip(reason=reason, diagnostics=diagnostics), account=account)


class CandidateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    market: str
    ok: bool
    skip: Optional[bool] = None
    reason: Optional[str] = None
    tx_sig: Optional[str] = Field(default=None, alias="txSig")
    error: Optional[str] = None
    diagnostics: Optional[dict[str, Any]] = None


class JobSummary(BaseModel):
    ok: bool
    step: str
    job: Optional[JobType] = None
    count: Optional[int] = None
    results: Optional[list[CandidateResult]] = None
    error: Optional[str] = None

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
