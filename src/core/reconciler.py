from datetime import datetime

from core.errors import ReconciliationWriteError
from core.interfaces import IIndexRepository
from core.resolution_rules import SilenceRule
from models import ChainMarketAccount, Market


class ReconciliationWriter:
    def __init__(self, repository: IIndexRepository, logger):
        self._repository = repository
        self._logger = logger

    async def reconcile(
        self,
        rule: SilenceRule,
        market: Market,
        account: ChainMarketAccount,
        signature: str,
        now: datetime,
    ) -> dict:
        """Write the terminal state of a confirmed transition back to the index."""
        # The index may only move to a state reachable from what the chain showed.
        if not account.status.can_transition_to(rule.target_status):
            raise ReconciliationWriteError(
                f"{account.status.value} -> {rule.target_status.value} is not a valid transition",
                signature=signature,
            )

        patch = rule.reconciliation_patch(market, account, signature, now)
        try:
            await self._repository.update_by_key(market.address, patch)
        except Exception as e:
            # Chain already moved; the next run's guard will skip this row.
            self._logger.error(
                "reconciliation_write_failed",
                market=market.address,
                signature=signature,
                error=str(e),
            )
            raise ReconciliationWriteError(str(e), signature=signature) from e

        self._logger.info(
            "market_reconciled",
            market=market.address,
            status=rule.target_status.value,
            signature=signature,
        )
        await self._repository.write_state_transition(
            address=market.address,
            old_state=market.resolution_status.value,
            new_state=rule.target_status.value,
            metadata={"job": rule.job_type.value, "tx": signature, "instruction": rule.instruction},
        )
        return patch
