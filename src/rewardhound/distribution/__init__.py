"""
rewardhound/distribution/

Claim distribution: integrity-checked claim files and merkle eligibility.
"""

from .fetcher import (
    TrustedDataFile,
    DistributionSource,
    ShardedDistributionSource,
    HttpDistributionSource,
    IntegrityFetcher,
    content_hash,
)
from .merkle import (
    MerkleTree,
    hash_leaf,
    hash_pair,
    compute_root,
    verify_proof,
)
from .claims import (
    EligibilityClaim,
    ClaimVerifier,
    find_claim_record,
)

__all__ = [
    # Integrity fetching
    "TrustedDataFile",
    "DistributionSource",
    "ShardedDistributionSource",
    "HttpDistributionSource",
    "IntegrityFetcher",
    "content_hash",
    # Merkle
    "MerkleTree",
    "hash_leaf",
    "hash_pair",
    "compute_root",
    "verify_proof",
    # Eligibility
    "EligibilityClaim",
    "ClaimVerifier",
    "find_claim_record",
]
