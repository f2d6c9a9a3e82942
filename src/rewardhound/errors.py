"""
rewardhound/errors.py

Exception taxonomy for claim verification and referral tracking.

Callers of ClaimVerifier.get_eligibility() must be able to tell an
ineligible address (NotEligible) apart from broken verification
(FetchError, IntegrityError, ClaimDataError, ProofInvalid).
"""


class RewardHoundError(Exception):
    """Base class for all rewardhound errors."""
    pass


class FetchError(RewardHoundError):
    """Network failure while fetching external data. Retryable."""
    pass


class IntegrityError(RewardHoundError):
    """Fetched data does not match its pinned content hash."""

    def __init__(self, shard_id: str, expected: str, actual: str):
        self.shard_id = shard_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Content hash mismatch for shard {shard_id}: "
            f"expected {expected}, got {actual}"
        )


class ClaimDataError(RewardHoundError):
    """Trusted claim data could not be parsed."""
    pass


class NotEligible(RewardHoundError):
    """The address has no claim in the distribution. Not a failure."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No claim found for {address}")


class ProofInvalid(RewardHoundError):
    """A claim record exists but its proof does not fold to the pinned root."""

    def __init__(self, address: str, computed_root: str, expected_root: str):
        self.address = address
        self.computed_root = computed_root
        self.expected_root = expected_root
        super().__init__(
            f"Merkle proof for {address} folds to {computed_root}, "
            f"expected {expected_root}"
        )


class MalformedEvent(RewardHoundError):
    """A decoded on-chain event is missing fields or has the wrong shape."""
    pass


class LedgerError(RewardHoundError):
    """Referral ledger update could not be persisted."""
    pass
