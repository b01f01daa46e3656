from .interfaces import IChainClient, IIndexRepository, IJobLease, IndexFilter, FilterOp
from .errors import (
    ResolutionError, AuthError, UpstreamQueryError, LeaseUnavailableError,
    AccountDecodeError, TransactionSubmitError, TransactionRevertError,
    ConfirmationTimeoutError, ReconciliationWriteError,
)
from .resolution_rules import SilenceRule, FinalizeNoDisputesRule, CancelNoProposalRule, rule_for
from .scanner import CandidateScanner
from .guard import EligibilityGuard
from .orchestrator import TransactionOrchestrator
from .reconciler import ReconciliationWriter
from .context import JobContext
from .job_runner import JobRunner

__all__ = [
    "IChainClient",
    "IIndexRepository",
    "IJobLease",
    "IndexFilter",
    "FilterOp",
    "ResolutionError",
    "AuthError",
    "UpstreamQueryError",
    "LeaseUnavailableError",
    "AccountDecodeError",
    "TransactionSubmitError",
    "TransactionRevertError",
    "ConfirmationTimeoutError",
    "ReconciliationWriteError",
    "SilenceRule",
    "FinalizeNoDisputesRule",
    "CancelNoProposalRule",
    "rule_for",
    "CandidateScanner",
    "EligibilityGuard",
    "TransactionOrchestrator",
    "ReconciliationWriter",
    "JobContext",
    "JobRunner",
]
