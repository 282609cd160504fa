"""BIP39 mnemonics and SLIP-0010 Ed25519 key derivation."""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Tuple

from mnemonic import Mnemonic

from .errors import InvalidKeyMaterial
from .signer import SEED_SIZE, Keypair, keypair_from_bytes

logger = logging.getLogger(__name__)

ED25519_CURVE_KEY = b"ed25519 seed"
HARDENED_OFFSET = 0x8000_0000
SOLANA_DERIVATION_PATH = "m/44'/501'/0'/0'"
WORD_COUNTS = {12: 128, 24: 256}

_WORDLIST = Mnemonic("english")


class InvalidDerivationPath(InvalidKeyMaterial):
    """Raised when a derivation path is malformed or not fully hardened."""


@dataclass(frozen=True)
class DerivationPath:
    indexes: Tuple[int, ...]

    @classmethod
    def parse(cls, text: str) -> "DerivationPath":
        """Parse ``m/44'/501'/0'/0'``; every segment must be hardened (``'`` or ``h``)."""

        parts = text.strip().split("/")
        if parts[0] != "m":
            raise InvalidDerivationPath(f"derivation path must start with 'm': {text!r}")
        indexes = []
        for part in parts[1:]:
            if not part:
                raise InvalidDerivationPath(f"empty segment in derivation path {text!r}")
            if part[-1] not in "'h":
                raise InvalidDerivationPath(
                    f"segment {part!r} is not hardened; Ed25519 only supports hardened derivation"
                )
            number = part[:-1]
            if not number.isdigit() or int(number) >= HARDENED_OFFSET:
                raise InvalidDerivationPath(f"invalid index {part!r} in derivation path {text!r}")
            indexes.append(int(number) | HARDENED_OFFSET)
        return cls(tuple(indexes))

    def __str__(self) -> str:
        return "m" + "".join(f"/{index - HARDENED_OFFSET}'" for index in self.indexes)


def generate_mnemonic(word_count: int = 12) -> str:
    if word_count not in WORD_COUNTS:
        raise InvalidKeyMaterial(f"mnemonic must have 12 or 24 words, not {word_count}")
    return _WORDLIST.generate(strength=WORD_COUNTS[word_count])


def normalize_mnemonic(phrase: str) -> str:
    """Collapse whitespace and check the word count and checksum."""

    words = phrase.split()
    if len(words) not in WORD_COUNTS:
        raise InvalidKeyMaterial(f"mnemonic must have 12 or 24 words, got {len(words)}")
    normalized = " ".join(words)
    if not _WORDLIST.check(normalized):
        raise InvalidKeyMaterial("mnemonic has an unknown word or a bad checksum")
    return normalized


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    return Mnemonic.to_seed(normalize_mnemonic(phrase), passphrase)


def derive_private_key(seed: bytes, path: DerivationPath | str) -> Tuple[bytes, bytes]:
    """Return the ``(key, chain_code)`` pair at ``path`` below ``seed``."""

    if isinstance(path, str):
        path = DerivationPath.parse(path)
    digest = hmac.new(ED25519_CURVE_KEY, seed, hashlib.sha512).digest()
    key, chain_code = digest[:32], digest[32:]
    for index in path.indexes:
        data = b"\x00" + key + index.to_bytes(4, "big")
        digest = hmac.new(chain_code, data, hashlib.sha512).digest()
        key, chain_code = digest[:32], digest[32:]
    return key, chain_code


def keypair_from_mnemonic(
    phrase: str,
    passphrase: str = "",
    derivation_path: DerivationPath | str | None = None,
) -> Keypair:
    """Build a keypair from a mnemonic.

    Without a path the first 32 bytes of the BIP39 seed are the Ed25519 seed,
    which matches keys created by ``solana-keygen new``. Wallets that use
    ``m/44'/501'/0'/0'`` need that path passed explicitly.
    """

    seed = mnemonic_to_seed(phrase, passphrase)
    if derivation_path is None:
        return keypair_from_bytes(seed[:SEED_SIZE])
    key, _ = derive_private_key(seed, derivation_path)
    logger.debug("derived key at %s", derivation_path)
    return keypair_from_bytes(key)
