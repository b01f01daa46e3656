from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from models import AccountInfo, ChainMarketAccount, InstructionAccount, Market, SignatureStatus


class FilterOp(str, Enum):
    EQ = "eq"
    LT = "lt"
    LTE = "lte"
    GTE = "gte"


class IndexFilter(BaseModel):
    column: str
    op: FilterOp
    value: Any


class IChainClient(ABC):
    @property
    @abstractmethod
    def service_pubkey(self) -> str:
        pass

    @abstractmethod
    async def get_account_info(self, address: str) -> Optional[AccountInfo]:
        pass

    @abstractmethod
    def decode_market_account(self, data: bytes) -> ChainMarketAccount:
        pass

    @abstractmethod
    def build_instruction(
        self, name: str, accounts: list[InstructionAccount], args: bytes = b""
    ) -> Any:
        pass

    @abstractmethod
    async def get_latest_blockhash(self) -> Any:
        pass

    @abstractmethod
    def sign_transaction(self, instructions: list[Any], blockhash: Any) -> Any:
        pass

    @abstractmethod
    async def submit_signed_tx(self, tx: Any, max_retries: int) -> str:
        pass

    @abstractmethod
    async def get_signature_status(self, signature: str) -> SignatureStatus:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class IIndexRepository(ABC):
    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def query(self, filters: list[IndexFilter], limit: int) -> list[Market]:
        pass

    @abstractmethod
    async def update_by_key(self, address: str, patch: dict) -> None:
        pass

    @abstractmethod
    async def write_state_transition(
        self, address: str, old_state: Optional[str], new_state: str, metadata: dict
    ) -> None:
        pass


class IJobLease(ABC):
    @abstractmethod
    async def acquire(self, job_name: str, owner: str, ttl_seconds: int) -> bool:
        pass

    @abstractmethod
    async def release(self, job_name: str, owner: str) -> None:
        pass
