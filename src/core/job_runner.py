import hmac
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from core.context import JobContext
from core.errors import AuthError, LeaseUnavailableError, ResolutionError, UpstreamQueryError
from core.resolution_rules import SilenceRule, rule_for
from models import CandidateResult, JobSummary, JobType, Market
from utils.logger import job_log_context


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobRunner:
    """
    Drives one resolution job: auth, lease, scan, then guard -> orchestrate ->
    reconcile for each candidate in turn.

    Candidates run sequentially because they share the fee payer and the
    blockhash window. Each candidate is its own failure boundary; only
    auth, init, lease and scan failures abort the run.
    """

    def __init__(
        self,
        context_factory,
        cron_secret: Optional[str],
        logger,
        lease_ttl_seconds: int,
        cancel_grace_hours: int = 48,
        now: Callable[[], datetime] = utc_now,
    ):
        self._context_factory = context_factory
        self._cron_secret = cron_secret
        self._logger = logger
        self._lease_ttl_seconds = lease_ttl_seconds
        self._cancel_grace_hours = cancel_grace_hours
        self._now = now

    def authenticate(self, authorization: Optional[str]) -> None:
        if not self._cron_secret:
            raise AuthError("Unauthorized: cron secret is not configured")
        expected = f"Bearer {self._cron_secret}".encode("utf-8")
        provided = (authorization or "").encode("utf-8")
        if not hmac.compare_digest(provided, expected):
            raise AuthError("Unauthorized")

    async def run(self, job_type: JobType, authorization: Optional[str]) -> JobSummary:
        self.authenticate(authorization)
        run_id = uuid4().hex
        with job_log_context(job_type.value, run_id):
            return await self._run(job_type, run_id)

    async def _run(self, job_type: JobType, run_id: str) -> JobSummary:
        rule = rule_for(job_type, self._cancel_grace_hours)
        self._logger.info("job_started", job=job_type.value, run_id=run_id)

        try:
            context = await self._context_factory.create(job_type)
        except Exception as e:
            self._logger.error("job_init_failed", job=job_type.value, error=str(e))
            raise UpstreamQueryError("init", str(e)) from e

        async with context:
            await self._acquire_lease(context, rule, run_id)
            try:
                candidates = await context.scanner.scan(rule, self._now())
                results = []
                for market in candidates:
                    results.append(await self._process(context, rule, market))
            finally:
                await self._release_lease(context, rule, run_id)

        self._logger.info(
            "job_finished",
            job=job_type.value,
            run_id=run_id,
            count=len(results),
            succeeded=sum(1 for r in results if r.ok),
            skipped=sum(1 for r in results if r.skip),
        )
        return JobSummary(ok=True, step="complete", job=job_type, count=len(results), results=results)

    async def _process(self, context: JobContext, rule: SilenceRule, market: Market) -> CandidateResult:
        try:
            decision = await context.guard.check(rule, market, self._now())
            if not decision.proceed:
                return CandidateResult(
                    market=market.address,
                    ok=False,
                    skip=True,
                    reason=decision.skip.reason.value,
                    diagnostics=decision.skip.diagnostics or None,
                )

            signature = await context.orchestrator.execute(rule, market.address)
            await context.writer.reconcile(rule, market, decision.account, signature, self._now())
            return CandidateResult(market=market.address, ok=True, tx_sig=signature)
        except ResolutionError as e:
            return CandidateResult(
                market=market.address,
                ok=False,
                reason=e.reason,
                error=str(e),
                tx_sig=e.signature,
            )
        except Exception as e:
            self._logger.exception("candidate_failed", job=rule.job_type.value, market=market.address)
            return CandidateResult(
                market=market.address,
                ok=False,
                reason="unexpected_error",
                error=str(e),
            )

    async def _acquire_lease(self, context: JobContext, rule: SilenceRule, run_id: str) -> None:
        try:
            acquired = await context.lease.acquire(rule.job_name, run_id, self._lease_ttl_seconds)
        except Exception as e:
            self._logger.error("job_lease_failed", job=rule.job_type.value, error=str(e))
            raise UpstreamQueryError("lease", str(e)) from e
        if not acquired:
            self._logger.warning("job_lease_busy", job=rule.job_type.value, run_id=run_id)
            raise LeaseUnavailableError(rule.job_name)

    async def _release_lease(self, context: JobContext, rule: SilenceRule, run_id: str) -> None:
        try:
            await context.lease.release(rule.job_name, run_id)
        except Exception as e:
            # The lease still expires on its TTL.
            self._logger.warning("job_lease_release_failed", job=rule.job_type.value, error=str(e))
