"""Offline parsing, analysis and signing of Solana transactions."""

from .analyzer import AnalysisSummary, AnalysisWarning, analyze, analyze_unresolved
from .codec import decode_message, decode_transaction, encode_message, encode_transaction
from .errors import (
    AmbiguousOrUnrecognizedTextEncoding,
    ColdsignError,
    DecodeError,
    EncodeError,
    FeeExceedsLimit,
    IndexOutOfRange,
    InvalidSignatureEncoding,
    LookupIndexOutOfRange,
    MalformedLength,
    SignerNotRequired,
    TruncatedInput,
    UnknownLookupTable,
    UnsupportedVersion,
)
from .extensions import ClassifierRegistry, LightProtocolClassifier, builtin_registry, default_registry
from .fees import FeeEstimate, estimate_fee
from .findings import AnalysisFinding, PrivacyClassification
from .formats import TextFormat, decode_text, detect_and_decode, encode_text
from .keys import AccountKey, Signature
from .lookup_tables import ResolvedContext, parse_lookup_tables, resolve
from .model import (
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)
from .signer import Keypair, sign_message, sign_transaction, verify_signature, verify_transaction

__all__ = [
    "AccountKey",
    "AddressTableLookup",
    "AmbiguousOrUnrecognizedTextEncoding",
    "AnalysisFinding",
    "AnalysisSummary",
    "AnalysisWarning",
    "ClassifierRegistry",
    "ColdsignError",
    "DecodeError",
    "EncodeError",
    "FeeEstimate",
    "FeeExceedsLimit",
    "IndexOutOfRange",
    "Instruction",
    "InvalidSignatureEncoding",
    "Keypair",
    "LightProtocolClassifier",
    "LookupIndexOutOfRange",
    "MalformedLength",
    "Message",
    "MessageHeader",
    "MessageVersion",
    "PrivacyClassification",
    "ResolvedContext",
    "Signature",
    "SignerNotRequired",
    "TextFormat",
    "Transaction",
    "TruncatedInput",
    "UnknownLookupTable",
    "UnsupportedVersion",
    "analyze",
    "analyze_unresolved",
    "builtin_registry",
    "decode_message",
    "decode_text",
    "decode_transaction",
    "default_registry",
    "detect_and_decode",
    "encode_message",
    "encode_text",
    "encode_transaction",
    "estimate_fee",
    "parse_lookup_tables",
    "resolve",
    "sign_message",
    "sign_transaction",
    "verify_signature",
    "verify_transaction",
]
