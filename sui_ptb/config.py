"""Shared configuration loader for the Sui JSON-RPC connection."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".sui_ptb.yaml"
_CONFIG_PATH_OVERRIDE: Path | None = None

NETWORK_URLS: Dict[str, str] = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}
DEFAULT_NETWORK = "localnet"
DEFAULT_TIMEOUT = 30.0


@dataclass
class RPCConfig:
    """Configuration container for Sui JSON-RPC connection details."""

    url: str = NETWORK_URLS[DEFAULT_NETWORK]
    network: str | None = DEFAULT_NETWORK
    timeout: float = DEFAULT_TIMEOUT
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def use_https(self) -> bool:
        return urlparse(self.url).scheme.lower() == "https"


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
        raise ConfigurationError(f"Expected {path} to contain a YAML object with an 'rpc' section")
    return loaded


def _coerce_timeout(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid timeout in {source}: {raw}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"Timeout in {source} must be positive, got {raw}")
    return timeout


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _check_url(raw: str | None) -> str | None:
    if not raw:
        return None
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    return raw


def _network_url(network: str | None) -> str | None:
    if network is None:
        return None
    try:
        return NETWORK_URLS[network.strip().lower()]
    except KeyError as exc:
        known = ", ".join(sorted(NETWORK_URLS))
        raise ConfigurationError(f"Unknown network {network!r}; expected one of {known}") from exc


def load_rpc_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RPCConfig:
    """Load RPC configuration from environment variables and optional YAML.

    Precedence is ``overrides`` > environment > YAML ``rpc`` section >
    defaults. An explicit URL wins over a network name at the same level.
    """

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    rpc_section = file_config.get("rpc", {}) if isinstance(file_config, dict) else {}
    if rpc_section and not isinstance(rpc_section, dict):
        raise ConfigurationError(f"Expected 'rpc' to be a mapping in {path}")

    override_map = dict(overrides or {})

    env_url = env_map.get("SUI_RPC_URL") or env_map.get("SUI_PTB_RPC_URL")
    env_network = env_map.get("SUI_NETWORK") or env_map.get("SUI_PTB_NETWORK")
    env_timeout = _coerce_timeout(
        env_map.get("SUI_RPC_TIMEOUT") or env_map.get("SUI_PTB_RPC_TIMEOUT"),
        source="environment",
    )

    resolved_network = _first_value(
        override_map.get("network"), env_network, rpc_section.get("network")
    )
    resolved_url = _first_value(
        _check_url(override_map.get("url")),
        _network_url(override_map.get("network")),
        _check_url(env_url),
        _network_url(env_network),
        _check_url(rpc_section.get("url")),
        _network_url(rpc_section.get("network")),
        NETWORK_URLS[DEFAULT_NETWORK],
    )
    if resolved_network is None and resolved_url == NETWORK_URLS[DEFAULT_NETWORK]:
        resolved_network = DEFAULT_NETWORK
    resolved_timeout = _first_value(
        _coerce_timeout(override_map.get("timeout"), source="overrides"),
        env_timeout,
        _coerce_timeout(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        DEFAULT_TIMEOUT,
    )
    headers = rpc_section.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigurationError(f"Expected 'rpc.headers' to be a mapping in {path}")
    headers = {str(key): str(value) for key, value in headers.items()}
    headers.update(override_map.get("headers") or {})

    return RPCConfig(
        url=resolved_url,
        network=resolved_network,
        timeout=resolved_timeout,
        headers=headers,
    )
