from dataclasses import dataclass

from core.guard import EligibilityGuard
from core.interfaces import IChainClient, IIndexRepository, IJobLease
from core.orchestrator import TransactionOrchestrator
from core.reconciler import ReconciliationWriter
from core.scanner import CandidateScanner


@dataclass
class JobContext:
    """Everything one job invocation touches. Built fresh per run, closed after."""

    chain: IChainClient
    repository: IIndexRepository
    lease: IJobLease
    scanner: CandidateScanner
    guard: EligibilityGuard
    orchestrator: TransactionOrchestrator
    writer: ReconciliationWriter
    logger: object

    async def close(self) -> None:
        try:
            await self.chain.close()
        finally:
            await self.repository.stop()

    async def __aenter__(self) -> "JobContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
