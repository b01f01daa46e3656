from .market import Market, ResolutionStatus
from .chain import (
    AccountInfo,
    ChainMarketAccount,
    InstructionAccount,
    SignatureState,
    SignatureStatus,
)
from .job import (
    CandidateResult,
    EligibilityDecision,
    EligibilitySkip,
    JobSummary,
    JobType,
    SkipReason,
)

__all__ = [
    "Market",
    "ResolutionStatus",
    "AccountInfo",
    "ChainMarketAccount",
    "InstructionAccount",
    "SignatureState",
    "SignatureStatus",
    "CandidateResult",
    "EligibilityDecision",
    "EligibilitySkip",
    "JobSummary",
    "JobType",
    "SkipReason",
]
