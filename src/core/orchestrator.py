import asyncio
import time
from typing import Awaitable, Callable

from core.errors import ConfirmationTimeoutError, TransactionRevertError, TransactionSubmitError
from core.interfaces import IChainClient
from core.resolution_rules import SilenceRule
from models import InstructionAccount, SignatureState, SignatureStatus
from utils.polling import PollTimeoutError, poll_until


class TransactionOrchestrator:
    """
    Builds, signs, submits and confirms one resolution instruction.

    Confirmation polls signature status directly instead of holding a socket
    subscription. A timeout is reported, never resubmitted: whether the
    transaction landed is settled by the guard on the next scheduled run.
    """

    def __init__(
        self,
        chain: IChainClient,
        logger,
        confirmation_timeout: float = 90.0,
        poll_interval: float = 1.2,
        max_retries: int = 3,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._chain = chain
        self._logger = logger
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._max_retries = max_retries
        self._clock = clock
        self._sleep = sleep

    async def execute(self, rule: SilenceRule, market_address: str) -> str:
        """Return the confirmed signature or raise a TransactionSubmit/Revert/ConfirmationTimeout error."""
        try:
            instruction = self._chain.build_instruction(
                rule.instruction,
                [
                    InstructionAccount(pubkey=market_address, is_writable=True),
                    InstructionAccount(pubkey=self._chain.service_pubkey, is_signer=True, is_writable=True),
                ],
            )
            blockhash = await self._chain.get_latest_blockhash()
            tx = self._chain.sign_transaction([instruction], blockhash)
            signature = await self._chain.submit_signed_tx(tx, self._max_retries)
        except TransactionSubmitError as e:
            self._logger.error(
                "transaction_submit_failed",
                instruction=rule.instruction,
                market=market_address,
                error=str(e),
            )
            raise
        except Exception as e:
            self._logger.error(
                "transaction_submit_failed",
                instruction=rule.instruction,
                market=market_address,
                error=str(e),
            )
            raise TransactionSubmitError(str(e)) from e

        self._logger.info(
            "transaction_submitted",
            instruction=rule.instruction,
            market=market_address,
            signature=signature,
        )

        status = await self._await_confirmation(signature, market_address)
        if status.state == SignatureState.FAILED:
            self._logger.error(
                "transaction_reverted",
                instruction=rule.instruction,
                market=market_address,
                signature=signature,
                error=status.error,
            )
            raise TransactionRevertError(signature, status.error or "transaction failed")

        self._logger.info(
            "transaction_confirmed",
            instruction=rule.instruction,
            market=market_address,
            signature=signature,
            commitment=status.state.value,
        )
        return signature

    async def _fetch_status(self, signature: str, market_address: str) -> SignatureStatus:
        # The transaction is already out; a failed lookup says nothing about it.
        try:
            return await self._chain.get_signature_status(signature)
        except Exception as e:
            self._logger.warning(
                "signature_status_failed",
                market=market_address,
                signature=signature,
                error=str(e),
            )
            return SignatureStatus(state=SignatureState.PENDING, error=str(e))

    def _log_pending(self, signature: str, market_address: str, status: SignatureStatus) -> None:
        if not status.is_terminal:
            self._logger.debug("confirmation_pending", market=market_address, signature=signature)

    async def _await_confirmation(self, signature: str, market_address: str) -> SignatureStatus:
        try:
            return await poll_until(
                lambda: self._fetch_status(signature, market_address),
                lambda status: status.is_terminal,
                interval=self._poll_interval,
                timeout=self._confirmation_timeout,
                clock=self._clock,
                sleep=self._sleep,
                on_poll=lambda status: self._log_pending(signature, market_address, status),
            )
        except PollTimeoutError as e:
            last = e.last_value
            self._logger.warning(
                "confirmation_timeout",
                market=market_address,
                signature=signature,
                elapsed=round(e.elapsed, 3),
                last_error=last.error if last is not None else None,
            )
            raise ConfirmationTimeoutError(signature, self._confirmation_timeout) from e
