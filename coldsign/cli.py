"""Command-line interface for offline transaction signing and analysis.

The CLI is a thin façade over the codec, resolver, signer and analyzer. Signed
transactions and JSON summaries go to stdout or the requested file, while
human-readable summaries are written to stderr so output can be piped.
"""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .analyzer import AnalysisSummary, analyze
from .codec import encode_transaction
from .config import ConfigurationError, SigningConfig, load_signing_config, set_default_config_path
from .derivation import SOLANA_DERIVATION_PATH, generate_mnemonic, keypair_from_mnemonic
from .errors import ColdsignError, FeeExceedsLimit, InvalidSignatureEncoding
from .extensions import builtin_registry
from .fees import DEFAULT_COMPUTE_UNIT_LIMIT, check_fee_limit, format_sol
from .formats import AUTO, TextFormat, decode_bytes, encode_text
from .keys import AccountKey, Signature, b58decode, b58encode
from .lookup_tables import ResolvedContext, load_lookup_tables, resolve, static_context
from .model import Transaction
from .signer import (
    SignatureStatus,
    generate_keypair,
    keypair_to_json,
    load_signing_key,
    sign_message,
    sign_transaction,
    verify_signature,
    verify_transaction,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FORMAT_CHOICES = [fmt.value for fmt in TextFormat]
INPUT_FORMAT_CHOICES = [AUTO, *FORMAT_CHOICES]
FEE_LIMIT_EXIT_CODE = 2


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coldsign", description="Offline signer and analyzer for Solana transactions"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sign_parser = subparsers.add_parser("sign-tx", help="Sign an unsigned or partially signed transaction")
    _add_input_args(sign_parser)
    sign_parser.add_argument("--keypair", "-k", help="Keypair file (JSON array, keypair JSON or base58)")
    sign_parser.add_argument("--output", "-o", help="Write the signed transaction to this file")
    sign_parser.add_argument(
        "--output-format",
        choices=FORMAT_CHOICES,
        help="Encoding for the signed transaction (defaults to the input encoding)",
    )
    sign_parser.add_argument("--max-fee", type=int, help="Refuse to sign above this fee in lamports")
    sign_parser.add_argument("--force", action="store_true", help="Overwrite an existing output file")
    sign_parser.add_argument("--yes", action="store_true", help="Sign even when the fee exceeds --max-fee")
    sign_parser.add_argument(
        "--summary-json",
        action="store_true",
        help="Print a JSON signing summary to stdout (requires --output)",
    )
    sign_parser.add_argument("--config", help="Path to a YAML config file")

    analyze_parser = subparsers.add_parser("analyze", help="Summarize fees, transfers and privacy impact")
    _add_input_args(analyze_parser)
    analyze_parser.add_argument("--pubkey", help="Report transfers and costs from this account's view")
    analyze_parser.add_argument("--max-fee", type=int, help="Fail when the fee exceeds this many lamports")
    analyze_parser.add_argument("--summary-json", action="store_true", help="Print the summary as JSON")
    analyze_parser.add_argument("--config", help="Path to a YAML config file")

    message_sign_parser = subparsers.add_parser("sign", help="Sign an off-chain message")
    _add_message_args(message_sign_parser)
    message_sign_parser.add_argument("--keypair", "-k", help="Keypair file (JSON array, keypair JSON or base58)")
    message_sign_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    message_sign_parser.add_argument("--config", help="Path to a YAML config file")

    verify_parser = subparsers.add_parser(
        "verify",
        help="Check every signature of a transaction, or one message signature",
        description=(
            "Without --signature, verifies every signature slot of the input transaction. "
            "With --signature and --pubkey, verifies that signature over --message."
        ),
    )
    _add_input_args(verify_parser, with_tables=False)
    _add_message_args(verify_parser)
    verify_parser.add_argument("--signature", help="Base58 signature of the message")
    verify_parser.add_argument("--pubkey", help="Base58 public key that produced --signature")
    verify_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    convert_parser = subparsers.add_parser("convert", help="Re-encode a transaction")
    _add_input_args(convert_parser, with_tables=False)
    convert_parser.add_argument("--to", required=True, choices=FORMAT_CHOICES, help="Target encoding")
    convert_parser.add_argument("--output", "-o", help="Write to this file instead of stdout")
    convert_parser.add_argument("--force", action="store_true", help="Overwrite an existing output file")

    base58_parser = subparsers.add_parser("base58", help="Convert between hex and base58")
    base58_sub = base58_parser.add_subparsers(dest="base58_command", required=True)
    b58_encode = base58_sub.add_parser("encode", help="Encode hex bytes as base58")
    b58_encode.add_argument("value", help="Hex string")
    b58_decode = base58_sub.add_parser("decode", help="Decode base58 into hex bytes")
    b58_decode.add_argument("value", help="Base58 string")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a new keypair file")
    keygen_parser.add_argument("--output", "-o", required=True, help="Keypair file to write")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite an existing keypair file")
    mnemonic_group = keygen_parser.add_mutually_exclusive_group()
    mnemonic_group.add_argument(
        "--mnemonic",
        action="store_true",
        help="Generate a BIP39 mnemonic and derive the key from it (phrase goes to stderr)",
    )
    mnemonic_group.add_argument("--from-mnemonic", help="Recover from a mnemonic file, or '-' for stdin")
    keygen_parser.add_argument("--words", type=int, choices=[12, 24], default=12, help="Mnemonic length")
    keygen_parser.add_argument("--passphrase", default="", help="Optional BIP39 passphrase")
    keygen_parser.add_argument(
        "--derivation-path",
        help=f"Derive with SLIP-0010 along this path (e.g. {SOLANA_DERIVATION_PATH})",
    )

    return parser


def _add_message_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--message", "-m", help="Message text (signed as UTF-8)")
    group.add_argument("--message-file", help="File whose raw bytes are the message")


def _add_input_args(parser: argparse.ArgumentParser, *, with_tables: bool = True) -> None:
    parser.add_argument("--input", "-i", default="-", help="Transaction file, or '-' for stdin")
    parser.add_argument(
        "--input-format",
        choices=INPUT_FORMAT_CHOICES,
        default=AUTO,
        help="Input encoding (default: auto-detect json, base64, base58)",
    )
    if with_tables:
        parser.add_argument("--tables", help="JSON file mapping lookup table addresses to address lists")


def _read_input(source: str | None) -> bytes:
    if source in (None, "-"):
        return sys.stdin.buffer.read()
    path = Path(source).expanduser()
    if not path.exists():
        raise CLIError(f"input file not found: {path}")
    return path.read_bytes()


def _write_output(destination: str | Path, text: str, *, force: bool) -> Path:
    path = Path(destination).expanduser()
    if path.exists() and not force:
        raise CLIError(f"{path} already exists; pass --force to overwrite")
    path.write_text(text if text.endswith("\n") else text + "\n")
    return path


def _load_transaction(args: argparse.Namespace) -> tuple[Transaction, TextFormat | None]:
    return decode_bytes(_read_input(args.input), args.input_format)


def _build_context(transaction: Transaction, tables_path: Path | None) -> ResolvedContext:
    if tables_path is not None:
        return resolve(transaction, load_lookup_tables(tables_path))
    if transaction.message.address_table_lookups:
        logger.warning(
            "Transaction uses %d lookup tables but --tables was not provided; "
            "accounts loaded from them are not analyzed",
            len(transaction.message.address_table_lookups),
        )
    return static_context(transaction.message)


def _config_from_args(args: argparse.Namespace) -> SigningConfig:
    if getattr(args, "config", None):
        set_default_config_path(args.config)
    return load_signing_config(
        overrides={
            "keypair": getattr(args, "keypair", None),
            "max_fee": getattr(args, "max_fee", None),
            "output_format": getattr(args, "output_format", None),
            "tables": getattr(args, "tables", None),
            "force": getattr(args, "force", False) or None,
            "assume_yes": getattr(args, "yes", False) or None,
        }
    )


def _print_summary(summary: AnalysisSummary, transaction: Transaction) -> None:
    err = sys.stderr
    for transfer in summary.transfers:
        print("=" * 50, file=err)
        print(f"Instruction #{transfer.instruction_index + 1}: System Program (Transfer)", file=err)
        signer_note = " (signer)" if transfer.source_is_signer else ""
        print(f"  From:   {transfer.source}{signer_note}", file=err)
        print(f"  To:     {transfer.destination}", file=err)
        print(f"  Amount: {format_sol(transfer.lamports)} ({transfer.lamports} lamports)", file=err)

    fee = summary.fee
    print("-" * 50, file=err)
    print("TRANSACTION SUMMARY", file=err)
    print(f"Version:        {transaction.version.value}", file=err)
    print(f"Network Fee:    {format_sol(fee.base_fee)} ({fee.base_fee} lamports)", file=err)
    if summary.is_fee_payer:
        print("                !!! YOU ARE THE FEE PAYER !!!", file=err)
    if fee.priority_estimated:
        print(
            f"Priority Fee:   {format_sol(fee.priority_fee)} ({fee.priority_fee} lamports, "
            f"estimated with default {DEFAULT_COMPUTE_UNIT_LIMIT} CU)",
            file=err,
        )
    else:
        print(f"Priority Fee:   {format_sol(fee.priority_fee)} ({fee.priority_fee} lamports)", file=err)
    if summary.total_sent_by_signer:
        print(
            f"YOU SEND:       {format_sol(summary.total_sent_by_signer)} "
            f"({summary.total_sent_by_signer} lamports)",
            file=err,
        )
    print(f"MAX TOTAL COST: {format_sol(summary.max_total_cost)}", file=err)
    print(f"PRIVACY LEVEL:  {summary.classification.value}", file=err)
    for finding in summary.findings:
        print(
            f"  - #{finding.instruction_index + 1} [{finding.classification.value}] {finding.description}",
            file=err,
        )
    for warning in summary.warnings:
        print(f"WARNING: {warning.value.replace('_', ' ')}", file=err)
    print("-" * 50, file=err)


def cmd_sign_tx(args: argparse.Namespace) -> None:
    if args.summary_json and not args.output:
        raise CLIError("--summary-json requires --output so the summary does not mix with the transaction")

    config = _config_from_args(args)
    if config.keypair is None:
        raise CLIError("a keypair is required (--keypair, COLDSIGN_KEYPAIR or signing.keypair)")

    transaction, detected = _load_transaction(args)
    context = _build_context(transaction, config.tables)
    keypair = load_signing_key(config.keypair)

    summary = analyze(transaction, context, registry=builtin_registry(), signer=keypair.pubkey)
    _print_summary(summary, transaction)
    try:
        check_fee_limit(summary.fee, config.max_fee)
    except FeeExceedsLimit as exc:
        if not config.assume_yes:
            raise
        logger.warning("%s; continuing because --yes was given", exc)

    signed = sign_transaction(transaction, context, keypair)
    output_format = config.output_format or detected or TextFormat.BASE64
    rendered = encode_text(signed, output_format)

    if args.output:
        path = _write_output(args.output, rendered, force=config.force)
        logger.info("Saved signed transaction to %s", path)
    else:
        print(rendered)

    if args.summary_json:
        payload: dict[str, Any] = {
            "message_version": signed.version.value,
            "signer": keypair.pubkey.to_base58(),
            "signatures": [None if sig.is_empty else sig.to_base58() for sig in signed.signatures],
            "signed_tx_base64": base64.b64encode(encode_transaction(signed)).decode("ascii"),
            "output": str(args.output),
        }
        payload.update(summary.to_dict())
        print(json.dumps(payload, indent=2))


def cmd_analyze(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    transaction, _ = _load_transaction(args)
    context = _build_context(transaction, config.tables)
    signer = AccountKey.from_base58(args.pubkey) if args.pubkey else None

    summary = analyze(
        transaction,
        context,
        max_fee=config.max_fee,
        registry=builtin_registry(),
        signer=signer,
    )
    _print_summary(summary, transaction)
    if args.summary_json:
        print(json.dumps(summary.to_dict(), indent=2))


def _message_from_args(args: argparse.Namespace) -> bytes:
    if args.message is not None:
        return args.message.encode("utf-8")
    if args.message_file:
        return _read_input(args.message_file)
    raise CLIError("a message is required (--message or --message-file)")


def cmd_sign_message(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    if config.keypair is None:
        raise CLIError("a keypair is required (--keypair, COLDSIGN_KEYPAIR or signing.keypair)")
    keypair = load_signing_key(config.keypair)
    signature = sign_message(_message_from_args(args), keypair)
    if args.json:
        print(
            json.dumps(
                {"pubkey": keypair.pubkey.to_base58(), "signature": signature.to_base58()},
                indent=2,
            )
        )
    else:
        print(signature.to_base58())


def _verify_message(args: argparse.Namespace) -> None:
    if not args.pubkey:
        raise CLIError("--signature requires --pubkey")
    message = _message_from_args(args)
    error: str | None = None
    try:
        valid = verify_signature(
            message, Signature.from_base58(args.signature), AccountKey.from_base58(args.pubkey)
        )
    except InvalidSignatureEncoding as exc:
        valid, error = False, str(exc)
    if not valid and error is None:
        error = "signature verification failed"

    if args.json:
        print(
            json.dumps(
                {
                    "message": message.decode("utf-8", errors="replace"),
                    "pubkey": args.pubkey,
                    "signature": args.signature,
                    "valid": valid,
                    "error": error,
                },
                indent=2,
            )
        )
    elif valid:
        print("Signature is valid")
    if not valid:
        raise CLIError(f"signature is invalid: {error}")


def cmd_verify(args: argparse.Namespace) -> None:
    if args.signature:
        _verify_message(args)
        return
    transaction, _ = _load_transaction(args)
    results = verify_transaction(transaction)
    if args.json:
        print(
            json.dumps(
                [
                    {"slot": result.slot, "pubkey": result.pubkey.to_base58(), "status": result.status.value}
                    for result in results
                ],
                indent=2,
            )
        )
    else:
        for result in results:
            print(f"[{result.slot}] {result.pubkey}: {result.status.value}")

    failures = [result for result in results if result.status is not SignatureStatus.VALID]
    if failures:
        raise CLIError(f"{len(failures)} of {len(results)} signatures are missing or invalid")


def cmd_convert(args: argparse.Namespace) -> None:
    transaction, _ = _load_transaction(args)
    rendered = encode_text(transaction, args.to)
    if args.output:
        path = _write_output(args.output, rendered, force=args.force)
        logger.info("Saved %s transaction to %s", args.to, path)
    else:
        print(rendered)


def cmd_base58(args: argparse.Namespace) -> None:
    if args.base58_command == "encode":
        try:
            raw = binascii.unhexlify(args.value.strip().removeprefix("0x"))
        except (binascii.Error, ValueError) as exc:
            raise CLIError(f"invalid hex input: {exc}") from exc
        print(b58encode(raw))
    else:
        print(b58decode(args.value).hex())


def cmd_keygen(args: argparse.Namespace) -> None:
    if args.from_mnemonic:
        phrase = _read_input(args.from_mnemonic).decode("utf-8")
        keypair = keypair_from_mnemonic(phrase, args.passphrase, args.derivation_path)
    elif args.mnemonic:
        phrase = generate_mnemonic(args.words)
        keypair = keypair_from_mnemonic(phrase, args.passphrase, args.derivation_path)
        print(f"Mnemonic (write it down, it is not stored): {phrase}", file=sys.stderr)
    elif args.derivation_path:
        raise CLIError("--derivation-path needs --mnemonic or --from-mnemonic")
    else:
        keypair = generate_keypair()
    path = _write_output(args.output, keypair_to_json(keypair), force=args.force)
    logger.info("Wrote keypair to %s", path)
    print(keypair.pubkey.to_base58())


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        if args.command == "sign-tx":
            cmd_sign_tx(args)
        elif args.command == "analyze":
            cmd_analyze(args)
        elif args.command == "sign":
            cmd_sign_message(args)
        elif args.command == "verify":
            cmd_verify(args)
        elif args.command == "convert":
            cmd_convert(args)
        elif args.command == "base58":
            cmd_base58(args)
        elif args.command == "keygen":
            cmd_keygen(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except FeeExceedsLimit as exc:
        parser.exit(FEE_LIMIT_EXIT_CODE, f"error: {exc}; re-run with a higher --max-fee or --yes\n")
    except (CLIError, ConfigurationError, ColdsignError, OSError) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
