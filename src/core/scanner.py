from datetime import datetime

from core.errors import UpstreamQueryError
from core.interfaces import IIndexRepository
from core.resolution_rules import SilenceRule
from models import Market


class CandidateScanner:
    def __init__(self, repository: IIndexRepository, logger, batch_limit: int = 50):
        self._repository = repository
        self._logger = logger
        self._batch_limit = batch_limit

    async def scan(self, rule: SilenceRule, now: datetime) -> list[Market]:
        try:
            rows = await self._repository.query(rule.candidate_filters(now), self._batch_limit)
        except Exception as e:
            self._logger.error("candidate_scan_failed", job=rule.job_type.value, error=str(e))
            raise UpstreamQueryError("scan", str(e)) from e
        candidates = [m for m in rows if m.address]
        self._logger.info(
            "candidates_scanned",
            job=rule.job_type.value,
            rows=len(rows),
            candidates=len(candidates),
        )
        return candidates
