from typing import Optional


class ResolutionError(Exception):
    """Base class for failures raised by the resolution jobs."""

    reason = "resolution_error"

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class AuthError(ResolutionError):
    reason = "unauthorized"


class UpstreamQueryError(ResolutionError):
    """Index or chain-client initialization failed; aborts the whole job."""

    reason = "upstream_query_failed"

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step


class LeaseUnavailableError(ResolutionError):
    reason = "job_already_running"

    def __init__(self, job_name: str):
        super().__init__(f"lease for {job_name} is held by another run")
        self.job_name = job_name


class AccountDecodeError(ResolutionError):
    reason = "not_a_market_account"


class TransactionSubmitError(ResolutionError):
    """RPC or preflight rejected the transaction before it landed."""

    reason = "submit_error"


class TransactionRevertError(ResolutionError):
    """The transaction landed but the program returned an error."""

    reason = "onchain_revert"

    def __init__(self, signature: str, program_error: str):
        super().__init__(program_error, signature=signature)
        self.program_error = program_error


class ConfirmationTimeoutError(ResolutionError):
    reason = "confirmation_timeout"

    def __init__(self, signature: str, timeout: float):
        super().__init__(f"no terminal status for {signature} after {timeout:.1f}s", signature=signature)
        self.timeout = timeout


class ReconciliationWriteError(ResolutionError):
    """The chain transition is confirmed but the index row could not be updated."""

    reason = "reconciliation_write_failed"
