"""Ed25519 signing and verification over canonical message bytes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .codec import encode_message
from .errors import InvalidKeyMaterial, InvalidSignatureEncoding, SignError, SignerNotRequired
from .keys import PUBKEY_SIZE, AccountKey, Signature, b58decode
from .lookup_tables import ResolvedContext
from .model import Transaction

logger = logging.getLogger(__name__)

SEED_SIZE = 32
KEYPAIR_SIZE = 64


@dataclass(frozen=True)
class Keypair:
    """An Ed25519 private key together with its account key."""

    private_key: Ed25519PrivateKey
    pubkey: AccountKey

    @property
    def seed(self) -> bytes:
        return self.private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())

    def to_bytes(self) -> bytes:
        """Seed followed by public key, the usual 64-byte keypair layout."""

        return self.seed + self.pubkey.raw

    def sign(self, data: bytes) -> Signature:
        return Signature(self.private_key.sign(data))


SigningKeyInput = Union[Keypair, Ed25519PrivateKey, bytes, bytearray, str]


def _public_key_bytes(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def keypair_from_private_key(private_key: Ed25519PrivateKey) -> Keypair:
    return Keypair(private_key=private_key, pubkey=AccountKey(_public_key_bytes(private_key)))


def keypair_from_bytes(raw: bytes) -> Keypair:
    """Accept a 32-byte seed or a 64-byte seed+pubkey keypair."""

    raw = bytes(raw)
    if len(raw) not in (SEED_SIZE, KEYPAIR_SIZE):
        raise InvalidKeyMaterial(
            f"private key must be {SEED_SIZE} or {KEYPAIR_SIZE} bytes, got {len(raw)}"
        )
    keypair = keypair_from_private_key(Ed25519PrivateKey.from_private_bytes(raw[:SEED_SIZE]))
    if len(raw) == KEYPAIR_SIZE and raw[SEED_SIZE:] != keypair.pubkey.raw:
        raise InvalidKeyMaterial("keypair public half does not match its seed")
    return keypair


def generate_keypair() -> Keypair:
    return keypair_from_private_key(Ed25519PrivateKey.generate())


def _bytes_from_int_list(values: Any) -> bytes:
    try:
        return bytes(int(value) for value in values)
    except (TypeError, ValueError) as exc:
        raise InvalidKeyMaterial("key array must contain integers in 0..255") from exc


def parse_signing_key(text: str) -> Keypair:
    """Parse key material from text.

    Supported forms are a JSON array of 32 or 64 integers, a JSON object with
    a base58 ``secretKey`` (and optional ``publicKey`` that must match), or a
    bare base58 seed or keypair.
    """

    stripped = text.strip()
    if not stripped:
        raise InvalidKeyMaterial("key material is empty")

    if stripped[0] in "[{":
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise InvalidKeyMaterial(f"invalid JSON key material: {exc.msg}") from exc
        if isinstance(payload, list):
            return keypair_from_bytes(_bytes_from_int_list(payload))
        if isinstance(payload, dict):
            secret = payload.get("secretKey") or payload.get("secret_key")
            if not isinstance(secret, str):
                raise InvalidKeyMaterial("keypair JSON must contain a base58 'secretKey'")
            keypair = keypair_from_bytes(_b58_key(secret))
            public = payload.get("publicKey") or payload.get("public_key")
            if public and AccountKey.from_base58(public) != keypair.pubkey:
                raise InvalidKeyMaterial("keypair JSON publicKey does not match secretKey")
            return keypair
        raise InvalidKeyMaterial("JSON key material must be an array or object")

    return keypair_from_bytes(_b58_key(stripped))


def _b58_key(text: str) -> bytes:
    try:
        return b58decode(text)
    except InvalidSignatureEncoding as exc:
        raise InvalidKeyMaterial(str(exc)) from exc


def load_signing_key(path: str | Path) -> Keypair:
    path = Path(path).expanduser()
    if not path.exists():
        raise InvalidKeyMaterial(f"keypair file not found: {path}")
    return parse_signing_key(path.read_text())


def coerce_keypair(key: SigningKeyInput) -> Keypair:
    if isinstance(key, Keypair):
        return key
    if isinstance(key, Ed25519PrivateKey):
        return keypair_from_private_key(key)
    if isinstance(key, (bytes, bytearray)):
        return keypair_from_bytes(bytes(key))
    if isinstance(key, str):
        return parse_signing_key(key)
    raise InvalidKeyMaterial(f"unsupported key material type {type(key).__name__}")


def keypair_to_json(keypair: Keypair) -> str:
    return json.dumps(list(keypair.to_bytes()))


def message_bytes(transaction: Transaction) -> bytes:
    """The bytes covered by every signature: the encoded message with its version prefix."""

    return encode_message(transaction.message)


def signer_slot(transaction: Transaction, pubkey: AccountKey) -> int:
    """Return the signature slot of ``pubkey`` or raise :class:`SignerNotRequired`."""

    for slot, key in enumerate(transaction.message.required_signers):
        if key == pubkey:
            return slot
    raise SignerNotRequired(pubkey)


def sign_transaction(
    transaction: Transaction,
    context: ResolvedContext | None,
    key: SigningKeyInput,
) -> Transaction:
    """Sign ``transaction`` with ``key`` and return a copy with the slot filled."""

    keypair = coerce_keypair(key)
    slot = signer_slot(transaction, keypair.pubkey)
    if context is not None and context.message != transaction.message:
        raise SignError("resolved context belongs to a different message")
    signature = keypair.sign(message_bytes(transaction))
    logger.debug("signed slot %d for %s", slot, keypair.pubkey)
    return transaction.with_signature(slot, signature)


def sign_message(data: bytes, key: SigningKeyInput) -> Signature:
    """Sign arbitrary bytes (used for off-chain messages)."""

    return coerce_keypair(key).sign(bytes(data))


def verify_signature(message: bytes, signature: Signature | bytes, pubkey: AccountKey | bytes) -> bool:
    raw_sig = signature.raw if isinstance(signature, Signature) else bytes(signature)
    raw_key = pubkey.raw if isinstance(pubkey, AccountKey) else bytes(pubkey)
    if len(raw_key) != PUBKEY_SIZE:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(raw_key).verify(raw_sig, bytes(message))
    except (InvalidSignature, ValueError):
        return False
    return True


class SignatureStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    MISSING = "missing"


@dataclass(frozen=True)
class SlotVerification:
    slot: int
    pubkey: AccountKey
    status: SignatureStatus
    signature: Signature | None = None


def verify_transaction(transaction: Transaction) -> List[SlotVerification]:
    """Check every required-signer slot against the message bytes."""

    data = message_bytes(transaction)
    results: List[SlotVerification] = []
    for slot, (pubkey, signature) in enumerate(transaction.signature_pairs()):
        if signature is None or signature.is_empty:
            status = SignatureStatus.MISSING
        elif verify_signature(data, signature, pubkey):
            status = SignatureStatus.VALID
        else:
            status = SignatureStatus.INVALID
        results.append(SlotVerification(slot=slot, pubkey=pubkey, status=status, signature=signature))
    return results
