"""
Borsh layout of the prediction-market program's accounts and instructions.

The program is an Anchor program, so:
- account data starts with sha256("account:<Name>")[:8]
- instruction data starts with sha256("global:<snake_case_name>")[:8]
- custom program errors are numbered from 6000 in declaration order
"""
import hashlib
import re
import struct
from typing import Optional

import base58

from core.errors import AccountDecodeError
from models import ChainMarketAccount, ResolutionStatus

MAX_OUTCOMES = 10
ANCHOR_ERROR_OFFSET = 6000

_STATUS_BY_INDEX = (
    ResolutionStatus.OPEN,
    ResolutionStatus.PROPOSED,
    ResolutionStatus.FINALIZED,
    ResolutionStatus.CANCELLED,
)

PROGRAM_ERRORS = (
    "InvalidOutcomes",
    "InvalidResolutionTime",
    "InvalidB",
    "InvalidAntiManip",
    "MarketClosed",
    "MarketResolved",
    "MarketNotEnded",
    "MarketNotResolved",
    "InvalidState",
    "TooEarly",
    "TooLateToPropose",
    "InvalidShares",
    "InvalidOutcomeIndex",
    "TradeTooLarge",
    "CooldownActive",
    "PositionCapExceeded",
    "NotEnoughShares",
    "InvalidCost",
    "InsufficientShares",
    "InvalidPayout",
    "NoWinningShares",
    "InvalidSupply",
    "AlreadyClaimed",
    "NothingToRefund",
    "NothingToClaim",
    "DisputeWindowClosed",
    "HasDisputes",
    "NoDispute",
    "Unauthorized",
    "NotCancelled",
    "InsufficientMarketBalance",
    "InvalidUserPosition",
    "Overflow",
)

_CUSTOM_CODE_RE = re.compile(r"Custom\((\d+)\)|custom program error: (0x[0-9a-fA-F]+)")


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


MARKET_DISCRIMINATOR = account_discriminator("Market")


class _BorshReader:
    def __init__(self, data: bytes, offset: int = 0):
        self._data = data
        self._offset = offset

    def _unpack(self, fmt: str):
        size = struct.calcsize(fmt)
        if self._offset + size > len(self._data):
            raise AccountDecodeError(
                f"account data truncated at byte {self._offset} (need {size}, have {len(self._data) - self._offset})"
            )
        value = struct.unpack_from(fmt, self._data, self._offset)[0]
        self._offset += size
        return value

    def u8(self) -> int:
        return self._unpack("<B")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def i64(self) -> int:
        return self._unpack("<q")

    def boolean(self) -> bool:
        value = self.u8()
        if value > 1:
            raise AccountDecodeError(f"invalid bool byte {value}")
        return value == 1

    def pubkey(self) -> str:
        end = self._offset + 32
        if end > len(self._data):
            raise AccountDecodeError("account data truncated in pubkey")
        raw = self._data[self._offset:end]
        self._offset = end
        return base58.b58encode(raw).decode()

    def option(self, read) -> Optional[int]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag != 1:
            raise AccountDecodeError(f"invalid option tag {tag}")
        return read()


def decode_market(data: bytes) -> ChainMarketAccount:
    if len(data) < 8 or data[:8] != MARKET_DISCRIMINATOR:
        raise AccountDecodeError("account discriminator does not match Market")

    reader = _BorshReader(data, offset=8)
    creator = reader.pubkey()
    resolution_time = reader.i64()
    reader.u8()  # market_type
    outcome_count = reader.u8()
    reader.u64()  # b_lamports
    for _ in range(MAX_OUTCOMES):
        reader.u64()  # q

    status_index = reader.u8()
    if status_index >= len(_STATUS_BY_INDEX):
        raise AccountDecodeError(f"unknown market status variant {status_index}")

    resolved = reader.boolean()
    cancelled = reader.boolean()
    winning_outcome = reader.option(reader.u8)
    proposed_outcome = reader.option(reader.u8)
    proposed_at = reader.option(reader.i64)
    contest_deadline = reader.option(reader.i64)
    dispute_count = reader.u32()

    return ChainMarketAccount(
        creator=creator,
        status=_STATUS_BY_INDEX[status_index],
        dispute_count=dispute_count,
        contest_deadline=contest_deadline,
        resolution_time=resolution_time,
        resolved=resolved,
        cancelled=cancelled,
        winning_outcome=winning_outcome,
        proposed_outcome=proposed_outcome,
        proposed_at=proposed_at,
        outcome_count=outcome_count,
    )


def describe_program_error(error: str) -> str:
    """Append the Anchor error name to a transaction error when the code is known."""
    match = _CUSTOM_CODE_RE.search(error)
    if not match:
        return error
    code = int(match.group(1)) if match.group(1) else int(match.group(2), 16)
    index = code - ANCHOR_ERROR_OFFSET
    if 0 <= index < len(PROGRAM_ERRORS):
        return f"{error} ({PROGRAM_ERRORS[index]})"
    return error
