import json
from typing import Optional

import base58
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from core.errors import TransactionSubmitError
from core.interfaces import IChainClient
from models import AccountInfo, ChainMarketAccount, InstructionAccount, SignatureState, SignatureStatus
from services.market_account_codec import decode_market, describe_program_error, instruction_discriminator

KEYPAIR_LENGTH = 64


def load_keypair(secret: str) -> Keypair:
    """
    Load the service signer from either a base58 string or the JSON byte array
    written by ``solana-keygen``. Both must hold exactly 64 bytes.
    """
    secret = secret.strip()
    if secret.startswith("["):
        key_bytes = bytes(json.loads(secret))
    else:
        try:
            key_bytes = base58.b58decode(secret)
        except ValueError as e:
            raise ValueError("service signer secret is not valid base58") from e
    if len(key_bytes) != KEYPAIR_LENGTH:
        raise ValueError(f"service signer secret must be {KEYPAIR_LENGTH} bytes, got {len(key_bytes)}")
    return Keypair.from_bytes(key_bytes)


class SolanaChainClient(IChainClient):
    ALREADY_PROCESSED = "already been processed"

    def __init__(self, rpc_endpoint: str, program_id: str, signer: Keypair, logger):
        self._client = AsyncClient(rpc_endpoint, commitment=Confirmed)
        self._program_id = Pubkey.from_string(program_id)
        self._signer = signer
        self._logger = logger

    @property
    def service_pubkey(self) -> str:
        return str(self._signer.pubkey())

    async def get_account_info(self, address: str) -> Optional[AccountInfo]:
        resp = await self._client.get_account_info(Pubkey.from_string(address), commitment=Confirmed)
        account = resp.value
        if account is None:
            return None
        return AccountInfo(owner=str(account.owner), data=bytes(account.data), lamports=account.lamports)

    def decode_market_account(self, data: bytes) -> ChainMarketAccount:
        return decode_market(data)

    def build_instruction(
        self, name: str, accounts: list[InstructionAccount], args: bytes = b""
    ) -> Instruction:
        metas = [
            AccountMeta(Pubkey.from_string(a.pubkey), is_signer=a.is_signer, is_writable=a.is_writable)
            for a in accounts
        ]
        return Instruction(self._program_id, instruction_discriminator(name) + args, metas)

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._client.get_latest_blockhash(commitment=Confirmed)
        return resp.value.blockhash

    def sign_transaction(self, instructions: list[Instruction], blockhash: Hash) -> Transaction:
        message = Message.new_with_blockhash(instructions, self._signer.pubkey(), blockhash)
        return Transaction([self._signer], message, blockhash)

    async def submit_signed_tx(self, tx: Transaction, max_retries: int) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=max_retries)
        try:
            resp = await self._client.send_raw_transaction(bytes(tx), opts=opts)
        except Exception as e:
            message = str(e)
            if self.ALREADY_PROCESSED in message.lower():
                # A retried send already landed; confirm with the signature we signed.
                signature = str(tx.signatures[0])
                self._logger.info("transaction_already_processed", signature=signature)
                return signature
            raise TransactionSubmitError(message) from e
        return str(resp.value)

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        resp = await self._client.get_signature_statuses([Signature.from_string(signature)])
        status = resp.value[0] if resp.value else None
        if status is None:
            return SignatureStatus(state=SignatureState.PENDING)
        if status.err is not None:
            return SignatureStatus(state=SignatureState.FAILED, error=describe_program_error(str(status.err)))
        if status.confirmation_status == TransactionConfirmationStatus.Finalized:
            return SignatureStatus(state=SignatureState.FINALIZED)
        if status.confirmation_status == TransactionConfirmationStatus.Confirmed:
            return SignatureStatus(state=SignatureState.CONFIRMED)
        return SignatureStatus(state=SignatureState.PENDING)

    async def close(self) -> None:
        await self._client.close()
