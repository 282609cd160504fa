"""Classifier for Light Protocol (ZK compression) instructions.

Light programs use two instruction layouts. The compressed-token program
accepts SPL-style single-byte tags for its token operations, while the
system, registry and compression programs (and the token program's
interface entry points) use 8-byte Anchor discriminators. The classifier
matches 8-byte discriminators first because some of them start with a byte
that is also a valid single-byte tag.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..findings import AnalysisFinding, MalformedInstructionData, PrivacyClassification
from ..keys import PUBKEY_SIZE, AccountKey
from ..lookup_tables import ResolvedContext
from ..model import Instruction

logger = logging.getLogger(__name__)

LIGHT_SYSTEM_PROGRAM_ID = AccountKey.from_base58("SySTEM1eSU2p4BGQfQpimFEWWSC1XDFeun3Nqzz3rT7")
LIGHT_REGISTRY_PROGRAM_ID = AccountKey.from_base58("Lighton6oQpVkeewmo2mcPTQQp7kYHr4fWpAgJyEmDX")
ACCOUNT_COMPRESSION_PROGRAM_ID = AccountKey.from_base58("compr6CUsB5m2jS4Y3831ztGSTnDpnKJTKS95d64XVq")
COMPRESSED_TOKEN_PROGRAM_ID = AccountKey.from_base58("cTokenmWW8bLPjZEBAUgYy3zKxQZW6VKi7bqNFEVv3m")
# log wrapper invoked by the Light programs; carries no value of its own
SPL_NOOP_PROGRAM_ID = AccountKey.from_base58("noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV")

LIGHT_PROGRAMS = frozenset(
    {
        LIGHT_SYSTEM_PROGRAM_ID,
        LIGHT_REGISTRY_PROGRAM_ID,
        ACCOUNT_COMPRESSION_PROGRAM_ID,
        COMPRESSED_TOKEN_PROGRAM_ID,
        SPL_NOOP_PROGRAM_ID,
    }
)

DISCRIMINATOR_SIZE = 8

CONFIDENTIAL = PrivacyClassification.CONFIDENTIAL
HYBRID = PrivacyClassification.HYBRID
COMPRESSED = PrivacyClassification.COMPRESSED

AmountReader = Callable[[bytes], Optional[int]]


def _u64_at(offset: int) -> AmountReader:
    def read(data: bytes) -> Optional[int]:
        if len(data) < offset + 8:
            return None
        return struct.unpack_from("<Q", data, offset)[0]

    return read


def _trailing_lamports(data: bytes) -> Optional[int]:
    # invoke payloads end with `Option<u64> compress_or_decompress_lamports, bool is_compress`
    if len(data) < DISCRIMINATOR_SIZE + 10:
        return None
    tail = data[-10:]
    if tail[0] != 1:
        return None
    return struct.unpack_from("<Q", tail, 1)[0]


DetailsReader = Callable[[bytes], Dict[str, int]]


class _ShortPayload(Exception):
    """Raised internally when a Borsh payload ends early or has a bad tag."""


class _BorshCursor:
    def __init__(self, data: bytes, offset: int) -> None:
        self.data = data
        self.offset = offset

    def take(self, size: int) -> bytes:
        if len(self.data) < self.offset + size:
            raise _ShortPayload(f"need {size} bytes at offset {self.offset}")
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def option(self) -> bool:
        tag = self.u8()
        if tag not in (0, 1):
            raise _ShortPayload(f"invalid option tag {tag}")
        return tag == 1

    def skip_vec(self, item_size: int) -> None:
        self.take(self.u32() * item_size)

    def vec_u64(self) -> List[int]:
        return [self.u64() for _ in range(self.u32())]

    def sum_struct_amounts(self, struct_size: int, amount_offset: int) -> int:
        count = self.u32()
        block = self.take(count * struct_size)
        return sum(
            struct.unpack_from("<Q", block, item * struct_size + amount_offset)[0]
            for item in range(count)
        )


def _transfer2_details(data: bytes) -> Dict[str, int]:
    cursor = _BorshCursor(data, 1)
    try:
        # with_transaction_hash, lamports change tree/owner indices, output queue, max_top_up
        cursor.take(7)
        if cursor.u8() == 1:  # cpi_context
            cursor.take(4)
            if cursor.u8() == 1:
                cursor.take(8)
        total = 0
        if cursor.u8() == 1:  # compressions
            total += cursor.sum_struct_amounts(31, 1)
        if cursor.u8() == 1:  # proof
            cursor.skip_vec(1)
            for _ in range(cursor.u32()):
                cursor.skip_vec(1)
            cursor.skip_vec(1)
        for _ in range(cursor.u32()):  # in_token_data
            total += cursor.u64()
            cursor.take(1)
            if cursor.u8() == 1:
                cursor.take(4)
            cursor.take(9)
        total += cursor.sum_struct_amounts(21, 0)
    except _ShortPayload as exc:
        logger.debug("transfer2 payload not decoded: %s", exc)
        return {}

    details = {"amount": total}
    for name in ("in_lamports", "out_lamports"):
        try:
            if cursor.option():
                details[name] = sum(cursor.vec_u64())
        except _ShortPayload:
            break
    return details


def _batch_compress_details(data: bytes) -> Dict[str, int]:
    cursor = _BorshCursor(data, DISCRIMINATOR_SIZE)
    summed: Optional[int] = None
    explicit: Optional[int] = None
    try:
        cursor.skip_vec(PUBKEY_SIZE)
        if cursor.u8() == 1:
            summed = sum(cursor.vec_u64())
        if cursor.u8() == 1:  # lamports
            cursor.take(8)
        if cursor.u8() == 1:
            explicit = cursor.u64()
    except _ShortPayload as exc:
        logger.debug("batch_compress payload partly decoded: %s", exc)
    amount = explicit if explicit is not None else summed
    return {} if amount is None else {"amount": amount}


def _interface_mint_to_details(data: bytes) -> Dict[str, int]:
    for proof_item_size in (PUBKEY_SIZE, 1):
        cursor = _BorshCursor(data, DISCRIMINATOR_SIZE)
        try:
            cursor.skip_vec(proof_item_size)
        except _ShortPayload:
            continue
        try:
            return {"amount": sum(cursor.vec_u64())}
        except _ShortPayload:
            return {}
    return {}


@dataclass(frozen=True)
class LightAction:
    name: str
    classification: PrivacyClassification
    description: str
    amount: AmountReader | None = None
    details: DetailsReader | None = None


_CTOKEN_ONE_BYTE: Dict[int, LightAction] = {
    3: LightAction("ctoken_transfer", CONFIDENTIAL, "Compressed token transfer", _u64_at(1)),
    4: LightAction("ctoken_approve", COMPRESSED, "Compressed token delegate approval", _u64_at(1)),
    5: LightAction("ctoken_revoke", COMPRESSED, "Compressed token delegate revocation"),
    7: LightAction("ctoken_mint_to", CONFIDENTIAL, "Compressed token mint", _u64_at(1)),
    8: LightAction("ctoken_burn", CONFIDENTIAL, "Compressed token burn", _u64_at(1)),
    9: LightAction("close_token_account", COMPRESSED, "Close compressed token account"),
    10: LightAction("ctoken_freeze", COMPRESSED, "Freeze compressed token account"),
    11: LightAction("ctoken_thaw", COMPRESSED, "Thaw compressed token account"),
    12: LightAction("ctoken_transfer_checked", CONFIDENTIAL, "Compressed token transfer (checked)", _u64_at(1)),
    14: LightAction("ctoken_mint_to_checked", CONFIDENTIAL, "Compressed token mint (checked)", _u64_at(1)),
    15: LightAction("ctoken_burn_checked", CONFIDENTIAL, "Compressed token burn (checked)", _u64_at(1)),
    18: LightAction("create_token_account", COMPRESSED, "Create compressed token account"),
    100: LightAction("create_associated_token_account", COMPRESSED, "Create associated compressed token account"),
    101: LightAction(
        "transfer2", CONFIDENTIAL, "Compressed token batch transfer", details=_transfer2_details
    ),
    102: LightAction(
        "create_associated_token_account_idempotent",
        COMPRESSED,
        "Create associated compressed token account (idempotent)",
    ),
    103: LightAction("mint_action", COMPRESSED, "Compressed mint configuration"),
    104: LightAction("claim", COMPRESSED, "Claim rent from compressible accounts"),
    105: LightAction("withdraw_funding_pool", COMPRESSED, "Withdraw from funding pool", _u64_at(1)),
}

_EIGHT_BYTE: Dict[bytes, LightAction] = {
    # light system program
    bytes([26, 16, 169, 7, 21, 202, 242, 25]): LightAction(
        "invoke", COMPRESSED, "Light system invoke", _trailing_lamports
    ),
    bytes([49, 212, 191, 129, 39, 194, 43, 196]): LightAction(
        "invoke_cpi", COMPRESSED, "Light system invoke via CPI", _trailing_lamports
    ),
    bytes([86, 47, 163, 166, 21, 223, 92, 8]): LightAction(
        "invoke_cpi_with_read_only", COMPRESSED, "Light system invoke via CPI (read-only)", _trailing_lamports
    ),
    bytes([228, 34, 128, 84, 47, 139, 86, 240]): LightAction(
        "invoke_cpi_with_account_info",
        COMPRESSED,
        "Light system invoke via CPI (account info)",
        _trailing_lamports,
    ),
    # account compression program
    bytes([180, 143, 159, 153, 35, 46, 248, 163]): LightAction(
        "insert_into_queues", COMPRESSED, "Insert into compression queues"
    ),
    # registry
    bytes([221, 9, 219, 187, 215, 138, 209, 87]): LightAction(
        "create_config_counter", COMPRESSED, "Create registry config counter"
    ),
    bytes([13, 182, 188, 82, 224, 82, 11, 174]): LightAction(
        "create_compressible_config", COMPRESSED, "Create compressible config"
    ),
    # token interface
    bytes([241, 34, 48, 186, 37, 179, 123, 192]): LightAction(
        "mint_to", CONFIDENTIAL, "Mint compressed tokens", details=_interface_mint_to_details
    ),
    bytes([163, 52, 200, 231, 140, 3, 69, 186]): LightAction(
        "transfer", CONFIDENTIAL, "Transfer compressed tokens"
    ),
    bytes([65, 206, 101, 37, 147, 42, 221, 144]): LightAction(
        "batch_compress", CONFIDENTIAL, "Batch compress tokens", details=_batch_compress_details
    ),
    bytes([69, 74, 217, 36, 115, 117, 97, 76]): LightAction(
        "approve", COMPRESSED, "Approve compressed token delegate"
    ),
    bytes([170, 23, 31, 34, 133, 173, 93, 242]): LightAction(
        "revoke", COMPRESSED, "Revoke compressed token delegate"
    ),
    bytes([255, 91, 207, 84, 251, 194, 254, 63]): LightAction(
        "freeze", COMPRESSED, "Freeze compressed token account"
    ),
    bytes([226, 249, 34, 57, 189, 21, 177, 101]): LightAction(
        "thaw", COMPRESSED, "Thaw compressed token account"
    ),
    bytes([23, 169, 27, 122, 147, 169, 209, 152]): LightAction(
        "create_token_pool", COMPRESSED, "Create token pool"
    ),
    bytes([114, 143, 210, 73, 96, 115, 1, 228]): LightAction(
        "add_token_pool", COMPRESSED, "Add token pool"
    ),
    # earlier program releases
    bytes([69, 44, 215, 132, 253, 214, 41, 45]): LightAction(
        "create_mint", COMPRESSED, "Create compressed mint"
    ),
    bytes([101, 145, 17, 14, 113, 248, 178, 230]): LightAction(
        "compress_sol", HYBRID, "Compress SOL into compressed state", _u64_at(DISCRIMINATOR_SIZE)
    ),
    bytes([145, 26, 238, 131, 177, 60, 60, 35]): LightAction(
        "compress_token", HYBRID, "Compress tokens into compressed state", _u64_at(DISCRIMINATOR_SIZE)
    ),
    bytes([74, 60, 49, 197, 18, 110, 93, 154]): LightAction(
        "decompress", HYBRID, "Decompress into public state"
    ),
    bytes([81, 156, 178, 100, 94, 144, 128, 20]): LightAction(
        "state_update", COMPRESSED, "Compressed state update"
    ),
    bytes([125, 255, 149, 14, 110, 34, 72, 24]): LightAction(
        "close_account", COMPRESSED, "Close compressed account"
    ),
}

_INVOKE_ACTIONS = frozenset(
    {"invoke", "invoke_cpi", "invoke_cpi_with_read_only", "invoke_cpi_with_account_info"}
)


def match_action(program_id: AccountKey, data: bytes) -> LightAction | None:
    """Return the Light action encoded in ``data`` or ``None`` if unknown."""

    if len(data) >= DISCRIMINATOR_SIZE:
        action = _EIGHT_BYTE.get(bytes(data[:DISCRIMINATOR_SIZE]))
        if action is not None:
            return action
    if program_id == COMPRESSED_TOKEN_PROGRAM_ID and data:
        return _CTOKEN_ONE_BYTE.get(data[0])
    return None


class LightProtocolClassifier:
    """Labels Light Protocol instructions by their privacy impact."""

    name = "light-protocol"

    def classify(
        self, instruction: Instruction, index: int, context: ResolvedContext
    ) -> Optional[List[AnalysisFinding]]:
        program_id = context.get(instruction.program_id_index)
        if program_id not in LIGHT_PROGRAMS:
            return None

        if program_id == SPL_NOOP_PROGRAM_ID:
            return []

        data = instruction.data
        minimum = 1 if program_id == COMPRESSED_TOKEN_PROGRAM_ID else DISCRIMINATOR_SIZE
        if len(data) < minimum:
            raise MalformedInstructionData(
                f"instruction {index} has {len(data)} data bytes, Light Protocol needs {minimum}"
            )

        action = match_action(program_id, data)
        if action is None:
            logger.debug("instruction %d: unknown Light Protocol discriminator %s", index, data[:8].hex())
            return []

        classification = action.classification
        details: dict[str, int] = {}
        amount = action.amount(data) if action.amount else None
        if amount is not None:
            details["amount"] = amount
            if action.name in _INVOKE_ACTIONS:
                # a lamports payload means value crosses between public and compressed state
                classification = HYBRID
                details["is_compress"] = int(data[-1] == 1)
        if action.details:
            details.update(action.details(data))

        if classification is PrivacyClassification.PUBLIC:
            return []
        return [
            AnalysisFinding(
                program_id=program_id,
                instruction_index=index,
                classification=classification,
                description=f"Light Protocol: {action.description}",
                action=action.name,
                details=details,
            )
        ]
