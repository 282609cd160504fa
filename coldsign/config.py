"""Shared configuration loader for coldsign."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .formats import TextFormat


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_DIR = Path.home() / ".coldsign"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
LEGACY_CONFIG_PATH = Path.home() / ".coldsign.yaml"
_CONFIG_PATH_OVERRIDE: Path | None = None

ENV_KEYPAIR = ("COLDSIGN_KEYPAIR", "SOLANA_SIGNER_KEYPAIR")
ENV_MAX_FEE = ("COLDSIGN_MAX_FEE",)
ENV_OUTPUT_FORMAT = ("COLDSIGN_OUTPUT_FORMAT",)
ENV_TABLES = ("COLDSIGN_TABLES",)
ENV_FORCE = ("COLDSIGN_FORCE",)
ENV_YES = ("COLDSIGN_YES",)


@dataclass
class SigningConfig:
    """Defaults applied to sign-tx and analyze when flags are omitted."""

    keypair: Path | None = None
    max_fee: int | None = None
    output_format: TextFormat | None = None
    tables: Path | None = None
    force: bool = False
    assume_yes: bool = False


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with a 'signing' section")
    return loaded


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_lamports(raw: Any, *, source: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid max fee in {source}: {raw}") from exc
    if value < 0:
        raise ConfigurationError(f"Max fee in {source} must not be negative: {raw}")
    return value


def _coerce_format(raw: Any, *, source: str) -> TextFormat | None:
    if raw is None or raw == "":
        return None
    try:
        return TextFormat(str(raw).strip().lower())
    except ValueError as exc:
        choices = ", ".join(fmt.value for fmt in TextFormat)
        raise ConfigurationError(f"Invalid output format in {source}: {raw} (expected {choices})") from exc


def _coerce_path(raw: Any) -> Path | None:
    if not raw:
        return None
    return Path(str(raw)).expanduser()


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _env_value(env_map: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = env_map.get(name)
        if value:
            return value
    return None


def _resolve_path(config_path: str | Path | None) -> tuple[Path, bool]:
    if config_path is not None:
        return Path(config_path).expanduser(), True
    if _CONFIG_PATH_OVERRIDE is not None:
        return _CONFIG_PATH_OVERRIDE, True
    if not DEFAULT_CONFIG_PATH.exists() and LEGACY_CONFIG_PATH.exists():
        return LEGACY_CONFIG_PATH, False
    return DEFAULT_CONFIG_PATH, False


def load_signing_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> SigningConfig:
    """Load signing defaults from overrides, then environment, then YAML."""

    env_map = os.environ if env is None else env
    path, explicit_path = _resolve_path(config_path)

    file_config = _load_config_file(path, required=explicit_path)
    section = file_config.get("signing", {}) if isinstance(file_config, dict) else {}
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected 'signing' to be a mapping in {path}")

    override_map = {key: value for key, value in dict(overrides or {}).items() if value is not None}

    keypair = _first_value(
        _coerce_path(override_map.get("keypair")),
        _coerce_path(_env_value(env_map, ENV_KEYPAIR)),
        _coerce_path(section.get("keypair")),
    )
    max_fee = _first_value(
        _coerce_lamports(override_map.get("max_fee"), source="overrides"),
        _coerce_lamports(_env_value(env_map, ENV_MAX_FEE), source="environment"),
        _coerce_lamports(section.get("max_fee"), source=f"{path} signing.max_fee"),
    )
    output_format = _first_value(
        _coerce_format(override_map.get("output_format"), source="overrides"),
        _coerce_format(_env_value(env_map, ENV_OUTPUT_FORMAT), source="environment"),
        _coerce_format(section.get("output_format"), source=f"{path} signing.output_format"),
    )
    tables = _first_value(
        _coerce_path(override_map.get("tables")),
        _coerce_path(_env_value(env_map, ENV_TABLES)),
        _coerce_path(section.get("tables")),
    )
    force = _first_value(
        _coerce_bool(override_map.get("force")),
        _coerce_bool(_env_value(env_map, ENV_FORCE)),
        _coerce_bool(section.get("force")),
        False,
    )
    assume_yes = _first_value(
        _coerce_bool(override_map.get("assume_yes")),
        _coerce_bool(_env_value(env_map, ENV_YES)),
        _coerce_bool(section.get("assume_yes")),
        False,
    )

    return SigningConfig(
        keypair=keypair,
        max_fee=max_fee,
        output_format=output_format,
        tables=tables,
        force=bool(force),
        assume_yes=bool(assume_yes),
    )
