"""Shared configuration loader for the ordinals SDK."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .model import DUST_LIMIT
from .networks import Network, get_network


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".ordinals-sdk.yaml"
DEFAULT_MEMPOOL_URLS = {
    "mainnet": "https://mempool.space/api",
    "testnet": "https://mempool.space/testnet/api",
    "signet": "https://mempool.space/signet/api",
    "regtest": "http://127.0.0.1:3002/api",
}
DEFAULT_TIMEOUT = 30.0
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class MempoolConfig:
    """Connection details for a mempool.space/Esplora style REST API."""

    base_url: str
    timeout: float = DEFAULT_TIMEOUT

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass
class OrdinalsConfig:
    """Resolved settings shared by the CLI and the workflow layer."""

    network: Network
    mempool: MempoolConfig
    fee_rate: float | None = None
    min_fee_rate: float | None = None
    dust_limit: int = DUST_LIMIT
    postage: int = DUST_LIMIT


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
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: Mapping[str, Any], name: str, path: Path) -> Mapping[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_float(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid number in {source}: {raw}") from exc
    if value < 0:
        raise ConfigurationError(f"Negative value in {source}: {raw}")
    return value


def _coerce_sats(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid satoshi amount in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _validate_base_url(raw: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid mempool API URL: {raw}")
    return raw.rstrip("/")


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> OrdinalsConfig:
    """Load settings from overrides, ``ORDINALS_*`` variables and optional YAML.

    Precedence is overrides, then environment, then the config file. A file
    is only required when a path was given explicitly.
    """

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    fees_section = _section(file_config, "fees", path)
    mempool_section = _section(file_config, "mempool", path)
    override_map = dict(overrides or {})

    network_name = _first_value(
        override_map.get("network"),
        env_map.get("ORDINALS_NETWORK"),
        file_config.get("network"),
        "mainnet",
    )
    try:
        network = get_network(network_name)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    fee_rate = _first_value(
        _coerce_float(override_map.get("fee_rate"), source="overrides"),
        _coerce_float(env_map.get("ORDINALS_FEE_RATE"), source="ORDINALS_FEE_RATE"),
        _coerce_float(fees_section.get("fee_rate"), source=f"{path} fees.fee_rate"),
    )
    min_fee_rate = _first_value(
        _coerce_float(override_map.get("min_fee_rate"), source="overrides"),
        _coerce_float(env_map.get("ORDINALS_MIN_FEE_RATE"), source="ORDINALS_MIN_FEE_RATE"),
        _coerce_float(fees_section.get("min_fee_rate"), source=f"{path} fees.min_fee_rate"),
    )
    dust_limit = _first_value(
        _coerce_sats(override_map.get("dust_limit"), source="overrides"),
        _coerce_sats(env_map.get("ORDINALS_DUST_LIMIT"), source="ORDINALS_DUST_LIMIT"),
        _coerce_sats(fees_section.get("dust_limit"), source=f"{path} fees.dust_limit"),
        DUST_LIMIT,
    )
    postage = _first_value(
        _coerce_sats(override_map.get("postage"), source="overrides"),
        _coerce_sats(env_map.get("ORDINALS_POSTAGE"), source="ORDINALS_POSTAGE"),
        _coerce_sats(fees_section.get("postage"), source=f"{path} fees.postage"),
        dust_limit,
    )
    if dust_limit <= 0:
        raise ConfigurationError(f"Dust limit must be positive, got {dust_limit}")
    if postage < dust_limit:
        raise ConfigurationError(f"Postage {postage} is below the dust limit {dust_limit}")

    base_url = _first_value(
        override_map.get("mempool_url"),
        env_map.get("ORDINALS_MEMPOOL_URL"),
        mempool_section.get("base_url"),
        DEFAULT_MEMPOOL_URLS[network.name],
    )
    timeout = _first_value(
        _coerce_float(override_map.get("timeout"), source="overrides"),
        _coerce_float(env_map.get("ORDINALS_MEMPOOL_TIMEOUT"), source="ORDINALS_MEMPOOL_TIMEOUT"),
        _coerce_float(mempool_section.get("timeout"), source=f"{path} mempool.timeout"),
        DEFAULT_TIMEOUT,
    )

    return OrdinalsConfig(
        network=network,
        mempool=MempoolConfig(base_url=_validate_base_url(str(base_url)), timeout=timeout),
        fee_rate=fee_rate,
        min_fee_rate=min_fee_rate,
        dust_limit=dust_limit,
        postage=postage,
    )
