from datetime import datetime

from core.errors import AccountDecodeError
from core.interfaces import IChainClient
from core.resolution_rules import SilenceRule
from models import EligibilityDecision, Market, SkipReason


class EligibilityGuard:
    """
    Re-checks a candidate against live chain state before anything is submitted.

    The index row only nominated the candidate; every field that decides whether
    to act comes from the freshly fetched account.
    """

    def __init__(self, chain: IChainClient, program_id: str, logger):
        self._chain = chain
        self._program_id = program_id
        self._logger = logger

    async def check(self, rule: SilenceRule, market: Market, now: datetime) -> EligibilityDecision:
        info = await self._chain.get_account_info(market.address)
        if info is None:
            return self._skip(rule, market, EligibilityDecision.skipped(SkipReason.MISSING_ACCOUNT))

        # Addresses from a retired deployment share the index schema.
        if info.owner != self._program_id:
            return self._skip(
                rule,
                market,
                EligibilityDecision.skipped(
                    SkipReason.WRONG_PROGRAM_OWNER,
                    owner=info.owner,
                    expected_owner=self._program_id,
                ),
            )

        try:
            account = self._chain.decode_market_account(info.data)
        except AccountDecodeError as e:
            return self._skip(
                rule,
                market,
                EligibilityDecision.skipped(SkipReason.NOT_A_MARKET_ACCOUNT, error=str(e)),
            )

        decision = rule.evaluate(account, now)
        if not decision.proceed:
            return self._skip(rule, market, decision)

        self._logger.info(
            "candidate_eligible",
            job=rule.job_type.value,
            market=market.address,
            dispute_count=account.dispute_count,
        )
        return decision

    def _skip(self, rule: SilenceRule, market: Market, decision: EligibilityDecision) -> EligibilityDecision:
        self._logger.info(
            "candidate_skipped",
            job=rule.job_type.value,
            market=market.address,
            reason=decision.skip.reason.value,
            **decision.skip.diagnostics,
        )
        return decision
