"""Application configuration read from a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class ConfigError(Exception):
    """Raised when the configuration cannot be read or decoded."""


@dataclass
class BlockchainConfig:
    difficulty_calculation_blocks: int = 0
    target_block_time: int = 0


@dataclass
class NetworkConfig:
    host: str = ""
    port: int = 0


@dataclass
class MinerConfig:
    network_sync_interval: int = 0
    max_nonce: int = 0


@dataclass
class Config:
    blockchain: BlockchainConfig = field(default_factory=BlockchainConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    miner: MinerConfig = field(default_factory=MinerConfig)


def _to_int(name: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value == "":
            return 0
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"failed to unmarshal config: {name}: {exc}") from exc
    raise ConfigError(f"failed to unmarshal config: {name}: expected an integer")


def _to_str(name: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"failed to unmarshal config: {name}: expected a string")


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"failed to unmarshal config: {name}: expected a mapping")
    return {str(k).lower(): v for k, v in value.items()}


def load(config_path: str | Path) -> Config:
    """Read a YAML configuration file; absent keys take zero values."""
    try:
        text = Path(config_path).read_text(encoding="utf-8")
        raw = yaml.safe_load(text)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("failed to read config file: top level is not a mapping")
    raw = {str(k).lower(): v for k, v in raw.items()}

    chain = _section(raw, "blockchain")
    network = _section(raw, "network")
    miner = _section(raw, "miner")
    return Config(
        blockchain=BlockchainConfig(
            difficulty_calculation_blocks=_to_int(
                "difficulty_calculation_blocks", chain.get("difficulty_calculation_blocks")
            ),
            target_block_time=_to_int("target_block_time", chain.get("target_block_time")),
        ),
        network=NetworkConfig(
            host=_to_str("host", network.get("host")),
            port=_to_int("port", network.get("port")),
        ),
        miner=MinerConfig(
            network_sync_interval=_to_int(
                "network_sync_interval", miner.get("network_sync_interval")
            ),
            max_nonce=_to_int("max_nonce", miner.get("max_nonce")),
        ),
    )


def default_config() -> Config:
    """Return the built-in configuration used when no file can be loaded."""
    return Config(
        blockchain=BlockchainConfig(difficulty_calculation_blocks=50, target_block_time=20),
        network=NetworkConfig(host="127.0.0.1", port=8080),
        miner=MinerConfig(network_sync_interval=1, max_nonce=4294967296),
    )