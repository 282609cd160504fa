"""Offline fee estimation and the max-fee policy check."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .errors import FeeExceedsLimit
from .instructions import (
    COMPUTE_BUDGET_PROGRAM_ID,
    MalformedBuiltinInstruction,
    decode_compute_budget,
)
from .keys import AccountKey
from .model import Transaction

logger = logging.getLogger(__name__)

LAMPORTS_PER_SIGNATURE = 5000
DEFAULT_COMPUTE_UNIT_LIMIT = 200_000
MICRO_LAMPORTS_PER_LAMPORT = 1_000_000
LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class FeeEstimate:
    """Base and priority fee components in lamports."""

    base_fee: int
    priority_fee: int = 0
    priority_estimated: bool = False
    compute_unit_limit: int | None = None
    compute_unit_price: int | None = None

    @property
    def total(self) -> int:
        return self.base_fee + self.priority_fee


def calculate_base_fee(num_required_signatures: int) -> int:
    return LAMPORTS_PER_SIGNATURE * num_required_signatures


def calculate_priority_fee(unit_price_micro_lamports: int, unit_limit: int) -> int:
    """Priority fee in lamports, rounded down as the runtime does."""

    return unit_price_micro_lamports * unit_limit // MICRO_LAMPORTS_PER_LAMPORT


def estimate_fee(transaction: Transaction, account_keys: Sequence[AccountKey] | None = None) -> FeeEstimate:
    """Estimate the fee a transaction will pay.

    The base component is a fixed cost per required signature. Compute budget
    instructions add a priority component; when only a price is set the
    runtime default unit limit is assumed and the result is flagged as
    estimated. Malformed compute budget instructions are ignored here and
    reported by the analyzer.
    """

    message = transaction.message
    keys = account_keys if account_keys is not None else message.account_keys
    limit: int | None = None
    price: int | None = None
    for instruction in message.instructions:
        index = instruction.program_id_index
        program = keys[index] if 0 <= index < len(keys) else None
        if program != COMPUTE_BUDGET_PROGRAM_ID:
            continue
        try:
            update = decode_compute_budget(instruction)
        except MalformedBuiltinInstruction:
            continue
        if update is None:
            continue
        if update.unit_limit is not None:
            limit = update.unit_limit
        if update.unit_price_micro_lamports is not None:
            price = update.unit_price_micro_lamports

    base_fee = calculate_base_fee(message.header.num_required_signatures)
    if not price:
        return FeeEstimate(base_fee=base_fee, compute_unit_limit=limit, compute_unit_price=price)

    estimated = limit is None
    priority = calculate_priority_fee(price, limit if limit is not None else DEFAULT_COMPUTE_UNIT_LIMIT)
    logger.debug("priority fee %d lamports (price=%d, limit=%s)", priority, price, limit)
    return FeeEstimate(
        base_fee=base_fee,
        priority_fee=priority,
        priority_estimated=estimated,
        compute_unit_limit=limit,
        compute_unit_price=price,
    )


def check_fee_limit(estimate: FeeEstimate | int, max_fee: int | None) -> None:
    """Raise :class:`FeeExceedsLimit` when ``estimate`` is above ``max_fee``."""

    if max_fee is None:
        return
    total = estimate.total if isinstance(estimate, FeeEstimate) else int(estimate)
    if total > max_fee:
        raise FeeExceedsLimit(total, max_fee)


def format_sol(lamports: int) -> str:
    """Render lamports as a SOL amount with trailing zeroes trimmed."""

    whole, fraction = divmod(lamports, LAMPORTS_PER_SOL)
    text = f"{whole}.{fraction:09d}".rstrip("0").rstrip(".")
    return f"{text} SOL"
