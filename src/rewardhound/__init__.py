"""
rewardhound - Claim eligibility and referral rewards for tracked accounts

Two jobs:
- Verify token claim eligibility: fetch the claim shard for an address,
  check it against its pinned SHA-256, and fold the address's merkle proof
  up to the pinned root
- Watch ClaimedWithCommunityCode events for every tracked account and keep
  a deduplicated, persisted ledger of referral bonuses per referrer

Usage:
    from rewardhound import RewardService, RewardsConfig, load_config

    service = RewardService(load_config(), chain, events, indexing)
    service.on_new_eligibility(on_claim)
    service.on_new_referral(on_referral)
    await service.start()

    claim = await service.get_eligibility("0x...")
"""

from .chain import (
    Network,
    AddressOnNetwork,
    EventFilter,
    ChainService,
    ReferralEventSource,
    IndexingService,
    ETHEREUM,
    same_network,
)
from .config import (
    RewardsConfig,
    DistributionConfig,
    ShardSpec,
    HuntingGround,
    AssetSpec,
    load_config,
)
from .errors import (
    RewardHoundError,
    FetchError,
    IntegrityError,
    ClaimDataError,
    NotEligible,
    ProofInvalid,
    MalformedEvent,
    LedgerError,
)
from .retry import RetryConfig
from .storage import StorageBackend, MemoryBackend, FileBackend
from .distribution import (
    IntegrityFetcher,
    TrustedDataFile,
    ClaimVerifier,
    EligibilityClaim,
    MerkleTree,
)
from .referrals import (
    ReferralTracker,
    ReferralLedger,
    ReferrerStats,
    ReferralEvent,
    WatchState,
)
from .service import RewardService

__version__ = "1.0.0"
__all__ = [
    # Service
    "RewardService",
    # Chain
    "Network",
    "AddressOnNetwork",
    "EventFilter",
    "ChainService",
    "ReferralEventSource",
    "IndexingService",
    "ETHEREUM",
    "same_network",
    # Config
    "RewardsConfig",
    "DistributionConfig",
    "ShardSpec",
    "HuntingGround",
    "AssetSpec",
    "RetryConfig",
    "load_config",
    # Errors
    "RewardHoundError",
    "FetchError",
    "IntegrityError",
    "ClaimDataError",
    "NotEligible",
    "ProofInvalid",
    "MalformedEvent",
    "LedgerError",
    # Storage
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    # Eligibility
    "IntegrityFetcher",
    "TrustedDataFile",
    "ClaimVerifier",
    "EligibilityClaim",
    "MerkleTree",
    # Referrals
    "ReferralTracker",
    "ReferralLedger",
    "ReferrerStats",
    "ReferralEvent",
    "WatchState",
]
