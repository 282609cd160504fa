"""Decoders for the built-in programs the analyzer understands."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from .errors import DecodeError
from .keys import AccountKey
from .model import Instruction

SYSTEM_PROGRAM_ID = AccountKey.from_base58("11111111111111111111111111111111")
COMPUTE_BUDGET_PROGRAM_ID = AccountKey.from_base58("ComputeBudget111111111111111111111111111111")
TOKEN_PROGRAM_ID = AccountKey.from_base58("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = AccountKey.from_base58("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")

TOKEN_PROGRAMS = frozenset({TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID})
BUILTIN_PROGRAMS = frozenset({SYSTEM_PROGRAM_ID, COMPUTE_BUDGET_PROGRAM_ID}) | TOKEN_PROGRAMS

SYSTEM_TRANSFER_TAG = 2
SYSTEM_TRANSFER_DATA_LEN = 12

SET_COMPUTE_UNIT_LIMIT_TAG = 2
SET_COMPUTE_UNIT_PRICE_TAG = 3


class MalformedBuiltinInstruction(DecodeError):
    """Raised when a recognized built-in instruction has too little data."""


@dataclass(frozen=True)
class SystemTransfer:
    from_index: int
    to_index: int
    lamports: int


@dataclass(frozen=True)
class ComputeBudgetUpdate:
    unit_limit: Optional[int] = None
    unit_price_micro_lamports: Optional[int] = None


def decode_system_transfer(instruction: Instruction) -> SystemTransfer | None:
    """Return the transfer carried by a System Program instruction, if any.

    Other System Program instructions (create account, assign, ...) return
    ``None``. A transfer tag with short data or fewer than two accounts raises
    :class:`MalformedBuiltinInstruction`.
    """

    data = instruction.data
    if len(data) < 4:
        raise MalformedBuiltinInstruction("system instruction shorter than its tag")
    (tag,) = struct.unpack_from("<I", data, 0)
    if tag != SYSTEM_TRANSFER_TAG:
        return None
    if len(data) < SYSTEM_TRANSFER_DATA_LEN or len(instruction.accounts) < 2:
        raise MalformedBuiltinInstruction("system transfer is missing its amount or accounts")
    (lamports,) = struct.unpack_from("<Q", data, 4)
    return SystemTransfer(
        from_index=instruction.accounts[0],
        to_index=instruction.accounts[1],
        lamports=lamports,
    )


def decode_compute_budget(instruction: Instruction) -> ComputeBudgetUpdate | None:
    data = instruction.data
    if not data:
        raise MalformedBuiltinInstruction("compute budget instruction has no data")
    tag = data[0]
    if tag == SET_COMPUTE_UNIT_LIMIT_TAG:
        if len(data) < 5:
            raise MalformedBuiltinInstruction("SetComputeUnitLimit is missing its u32 value")
        (limit,) = struct.unpack_from("<I", data, 1)
        return ComputeBudgetUpdate(unit_limit=limit)
    if tag == SET_COMPUTE_UNIT_PRICE_TAG:
        if len(data) < 9:
            raise MalformedBuiltinInstruction("SetComputeUnitPrice is missing its u64 value")
        (price,) = struct.unpack_from("<Q", data, 1)
        return ComputeBudgetUpdate(unit_price_micro_lamports=price)
    return None


def system_transfer_data(lamports: int) -> bytes:
    """Instruction data for a System Program transfer of ``lamports``."""

    return struct.pack("<IQ", SYSTEM_TRANSFER_TAG, lamports)


def compute_unit_limit_data(units: int) -> bytes:
    return struct.pack("<BI", SET_COMPUTE_UNIT_LIMIT_TAG, units)


def compute_unit_price_data(micro_lamports: int) -> bytes:
    return struct.pack("<BQ", SET_COMPUTE_UNIT_PRICE_TAG, micro_lamports)
