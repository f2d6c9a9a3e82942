"""
rewardhound/config.py

Configuration constants and data classes for rewardhound.

Everything the service needs (distribution endpoint, pinned commitments,
referral contract, hunting-ground catalog) is passed in as a RewardsConfig
value. load_config() builds one from a JSON file and environment.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .chain import ETHEREUM, Network, normalize_address, resolve_network
from .retry import RetryConfig

logger = logging.getLogger(__name__)


# Referral event emitted by the claim contract
REFERRAL_EVENT_SIGNATURE = (
    "ClaimedWithCommunityCode(uint256,address,uint256,uint256,address,uint256)"
)

# Timeouts (seconds)
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HISTORY_TIMEOUT = 120.0

# Default storage location for the referral ledger
DEFAULT_STORAGE_DIR = Path.home() / ".rewardhound" / "storage"

# Environment variables
ENV_CONFIG_PATH = "REWARDHOUND_CONFIG"
ENV_DISTRIBUTION_URL = "REWARDHOUND_DISTRIBUTION_URL"
ENV_STORAGE_DIR = "REWARDHOUND_STORAGE_DIR"


@dataclass
class ShardSpec:
    """
    One claim-data file covering an inclusive range of addresses.

    content_hash is the pinned SHA-256 of the file's bytes.
    """
    shard_id: str
    start_address: str
    end_address: str
    content_hash: str

    def contains(self, address: str) -> bool:
        value = int(normalize_address(address), 16)
        return int(self.start_address, 16) <= value <= int(self.end_address, 16)

    def to_dict(self) -> Dict[str, str]:
        return {
            "shard_id": self.shard_id,
            "start_address": self.start_address,
            "end_address": self.end_address,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShardSpec":
        return cls(
            shard_id=data["shard_id"],
            start_address=normalize_address(data["start_address"]),
            end_address=normalize_address(data["end_address"]),
            content_hash=data["content_hash"],
        )


@dataclass
class DistributionConfig:
    """Where claim data lives and what it must hash to."""

    # Files are fetched from {base_url}/{shard_id}
    base_url: str = ""

    # Pinned merkle root of the whole distribution
    merkle_root: str = ""

    shards: List[ShardSpec] = field(default_factory=list)

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Cache verified files per shard for the life of the process
    cache_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "merkle_root": self.merkle_root,
            "shards": [s.to_dict() for s in self.shards],
            "request_timeout": self.request_timeout,
            "retry": self.retry.to_dict(),
            "cache_enabled": self.cache_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionConfig":
        return cls(
            base_url=data.get("base_url", ""),
            merkle_root=data.get("merkle_root", ""),
            shards=[ShardSpec.from_dict(s) for s in data.get("shards", [])],
            request_timeout=float(data.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
            retry=RetryConfig.from_dict(data.get("retry", {})),
            cache_enabled=bool(data.get("cache_enabled", True)),
        )


@dataclass
class AssetSpec:
    """Fungible asset on a network."""
    name: str
    symbol: str
    contract_address: str
    decimals: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "contract_address": self.contract_address,
            "decimals": self.decimals,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetSpec":
        return cls(
            name=data["name"],
            symbol=data["symbol"],
            contract_address=data["contract_address"],
            decimals=int(data["decimals"]),
        )


@dataclass
class HuntingGround:
    """A vault whose deposit asset should be tracked by the indexer."""
    network: Network
    asset: AssetSpec
    vault_address: str
    yearn_vault: str
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network.to_dict(),
            "asset": self.asset.to_dict(),
            "vault_address": self.vault_address,
            "yearn_vault": self.yearn_vault,
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HuntingGround":
        return cls(
            network=resolve_network(data["network"]),
            asset=AssetSpec.from_dict(data["asset"]),
            vault_address=data["vault_address"],
            yearn_vault=data["yearn_vault"],
            active=bool(data.get("active", True)),
        )


def default_hunting_grounds() -> List[HuntingGround]:
    """Built-in hunting-ground catalog, used when a config supplies none."""
    return [
        HuntingGround(
            network=ETHEREUM,
            asset=AssetSpec(
                name="USDT",
                symbol="USDT",
                contract_address="0xdAC17F958D2ee523a2206206994597C13D831ec7",
                decimals=6,
            ),
            vault_address="0x6575a8E8Ca0FD1Fb974419AE1f9128cCb1055209",
            yearn_vault="0x7Da96a3891Add058AdA2E826306D812C638D87a7",
        ),
        HuntingGround(
            network=ETHEREUM,
            asset=AssetSpec(
                name="Wrapped BTC",
                symbol="WBTC",
                contract_address="0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
                decimals=8,
            ),
            vault_address="0xAAfcDd71F8eb9B6229852fD6B005F0c39394Af06",
            yearn_vault="0xA696a63cc78DfFa1a63E9E50587C197387FF6C7E",
        ),
        HuntingGround(
            network=ETHEREUM,
            asset=AssetSpec(
                name="ChainLink",
                symbol="LINK",
                contract_address="0x514910771AF9Ca656af840dff83E8264EcF986CA",
                decimals=18,
            ),
            vault_address="0x30EEB5c3d3B3FB3aC532c77cD76dd59f78Ff9070",
            yearn_vault="0x671a912C10bba0CFA74Cfc2d6Fba9BA1ed9530B2",
            active=False,
        ),
    ]


@dataclass
class RewardsConfig:
    """
    Complete configuration for the reward service.

    Usage:
        config = RewardsConfig(
            referral_contract="0x...",
            distribution=DistributionConfig(base_url="https://...", merkle_root="0x..."),
        )
    """

    # Contract emitting referral events
    referral_contract: str = ""
    referral_event_signature: str = REFERRAL_EVENT_SIGNATURE

    # The one network referral tracking runs on
    network: Network = ETHEREUM

    distribution: DistributionConfig = field(default_factory=DistributionConfig)
    hunting_grounds: List[HuntingGround] = field(default_factory=default_hunting_grounds)

    # Referral ledger location (None = DEFAULT_STORAGE_DIR)
    storage_dir: Optional[Path] = None

    # Historical event queries
    history_timeout: float = DEFAULT_HISTORY_TIMEOUT
    history_retry: RetryConfig = field(default_factory=RetryConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "referral_contract": self.referral_contract,
            "referral_event_signature": self.referral_event_signature,
            "network": self.network.to_dict(),
            "distribution": self.distribution.to_dict(),
            "hunting_grounds": [g.to_dict() for g in self.hunting_grounds],
            "storage_dir": str(self.storage_dir) if self.storage_dir else None,
            "history_timeout": self.history_timeout,
            "history_retry": self.history_retry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardsConfig":
        config = cls(
            referral_contract=data.get("referral_contract", ""),
            referral_event_signature=data.get(
                "referral_event_signature", REFERRAL_EVENT_SIGNATURE
            ),
            network=resolve_network(data.get("network", ETHEREUM)),
            distribution=DistributionConfig.from_dict(data.get("distribution", {})),
            history_timeout=float(data.get("history_timeout", DEFAULT_HISTORY_TIMEOUT)),
            history_retry=RetryConfig.from_dict(data.get("history_retry", {})),
        )
        if "hunting_grounds" in data:
            config.hunting_grounds = [
                HuntingGround.from_dict(g) for g in data["hunting_grounds"]
            ]
        if data.get("storage_dir"):
            config.storage_dir = Path(data["storage_dir"])
        return config

    def get_storage_dir(self) -> Path:
        return self.storage_dir or DEFAULT_STORAGE_DIR


def load_config(path: Optional[str] = None) -> RewardsConfig:
    """
    Load configuration.

    Priority (highest to lowest):
    1. Environment overrides: REWARDHOUND_DISTRIBUTION_URL, REWARDHOUND_STORAGE_DIR
    2. JSON file at path, or at REWARDHOUND_CONFIG
    3. Defaults

    Raises:
        ValueError: If the config file cannot be read or has unknown or
            missing fields
    """
    path = path or os.environ.get(ENV_CONFIG_PATH)

    if path:
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Could not read config {path}: {e}") from e
        try:
            config = RewardsConfig.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid config {path}: {e!r}") from e
        logger.info(f"Loaded config from {path}")
    else:
        config = RewardsConfig()

    env_url = os.environ.get(ENV_DISTRIBUTION_URL)
    if env_url:
        config.distribution.base_url = env_url
        logger.info(f"Distribution URL from env: {env_url}")

    env_storage = os.environ.get(ENV_STORAGE_DIR)
    if env_storage:
        config.storage_dir = Path(env_storage)

    return config
