"""
rewardhound/distribution/claims.py

Claim eligibility: find an address's record in trusted claim data and
check its merkle proof against the pinned root.

Usage:
    fetcher = IntegrityFetcher.from_config(config.distribution)
    verifier = ClaimVerifier(fetcher, config.distribution.merkle_root)
    verifier.on_new_eligibility(lambda claim: print(claim.amount))

    claim = await verifier.get_eligibility("0x...")
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..chain import normalize_address
from ..errors import ClaimDataError, NotEligible, ProofInvalid, RewardHoundError
from .fetcher import IntegrityFetcher, TrustedDataFile
from .merkle import compute_root, decode_hash, encode_hash, hash_leaf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityClaim:
    """A verified claim: everything needed to call the claim contract."""
    index: int
    amount: int
    account: str
    proof: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "amount": str(self.amount),
            "account": self.account,
            "proof": list(self.proof),
        }


# ============================================================================
# CLAIM FILE PARSING
# ============================================================================

def _parse_uint(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ClaimDataError(f"Claim {field_name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError:
            raise ClaimDataError(f"Claim {field_name} is not an integer: {value!r}")
    else:
        raise ClaimDataError(f"Claim {field_name} must be an integer")

    if result < 0:
        raise ClaimDataError(f"Claim {field_name} is negative: {result}")
    return result


def _iter_records(data: Any) -> List[Dict[str, Any]]:
    """Flatten the supported claim-file shapes into records with an account."""
    if isinstance(data, list):
        return data

    if isinstance(data, dict):
        claims = data.get("claims", data)
        if isinstance(claims, dict):
            records = []
            for account, record in claims.items():
                if not isinstance(record, dict):
                    raise ClaimDataError(f"Claim for {account} is not an object")
                records.append({"account": account, **record})
            return records

    raise ClaimDataError("Claim data must be a list of claims or an object of claims")


def find_claim_record(content: bytes, address: str) -> Optional[Dict[str, Any]]:
    """
    Locate and validate the claim record for address.

    Returns:
        {"index", "account", "amount", "proof"} or None if absent

    Raises:
        ClaimDataError: If the file or the matching record is malformed
    """
    try:
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ClaimDataError(f"Claim data is not valid JSON: {e}") from e

    target = normalize_address(address)

    for record in _iter_records(data):
        if not isinstance(record, dict):
            raise ClaimDataError("Claim record is not an object")
        try:
            account = normalize_address(record.get("account"))
        except ValueError as e:
            raise ClaimDataError(f"Claim record has an invalid account: {e}") from e
        if account != target:
            continue

        missing = {"index", "amount", "proof"} - set(record)
        if missing:
            raise ClaimDataError(
                f"Claim record for {address} is missing {sorted(missing)}"
            )
        proof = record["proof"]
        if not isinstance(proof, list):
            raise ClaimDataError(f"Claim proof for {address} is not a list")

        return {
            "index": _parse_uint(record["index"], "index"),
            "account": record["account"],
            "amount": _parse_uint(record["amount"], "amount"),
            "proof": proof,
        }

    return None


# ============================================================================
# CLAIM VERIFIER
# ============================================================================

class ClaimVerifier:
    """
    Decides whether an address can claim, by merkle proof.

    Results:
    - EligibilityClaim on success (and one "new eligibility" notification)
    - NotEligible when the trusted data has no claim for the address
    - ProofInvalid / ClaimDataError / IntegrityError / FetchError when
      verification itself broke
    """

    def __init__(self, fetcher: IntegrityFetcher, merkle_root: str):
        """
        Initialize ClaimVerifier.

        Args:
            fetcher: Source of trusted claim files
            merkle_root: Pinned root of the distribution (hex)
        """
        self._fetcher = fetcher
        self._merkle_root = decode_hash(merkle_root) if merkle_root else None
        self._eligibility_callbacks: List[Callable] = []

    @property
    def merkle_root(self) -> str:
        return encode_hash(self._merkle_root) if self._merkle_root else ""

    def on_new_eligibility(self, callback: Callable[[EligibilityClaim], Any]) -> None:
        """Register callback for verified claims."""
        self._eligibility_callbacks.append(callback)

    async def get_eligibility(self, address: str) -> EligibilityClaim:
        """
        Verify the claim for address.

        Raises:
            ValueError: If address is not a valid address
            NotEligible: If there is no claim for address
            ProofInvalid: If the claim's proof does not reach the pinned root
        """
        normalize_address(address)
        if self._merkle_root is None:
            raise RewardHoundError("No merkle root configured")

        trusted = await self._fetcher.fetch_trusted(address)
        claim = self.verify_claim(trusted, address)

        await self._notify(claim)
        return claim

    def verify_claim(self, trusted: TrustedDataFile, address: str) -> EligibilityClaim:
        """Look up and verify a claim in an already-trusted file."""
        record = find_claim_record(trusted.content, address)
        if record is None:
            logger.debug(f"{address} not in claim shard {trusted.shard_id}")
            raise NotEligible(address)

        try:
            proof = tuple(encode_hash(decode_hash(p)) for p in record["proof"])
            leaf = hash_leaf(record["index"], record["account"], record["amount"])
        except ValueError as e:
            logger.error(f"Unusable claim record for {address}: {e}")
            raise ProofInvalid(address, "", self.merkle_root) from e

        computed = compute_root(leaf, proof)
        if computed != self._merkle_root:
            logger.error(
                f"Merkle proof for {address} in shard {trusted.shard_id} "
                f"does not match the pinned root"
            )
            raise ProofInvalid(address, encode_hash(computed), self.merkle_root)

        return EligibilityClaim(
            index=record["index"],
            amount=record["amount"],
            account=record["account"],
            proof=proof,
        )

    async def _notify(self, claim: EligibilityClaim) -> None:
        for callback in self._eligibility_callbacks:
            try:
                result = callback(claim)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Eligibility callback error: {e}")
