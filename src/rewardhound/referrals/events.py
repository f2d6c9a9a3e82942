"""
rewardhound/referrals/events.py

Typed decoding of ClaimedWithCommunityCode logs.

A raw log either decodes into a ReferralEvent or raises MalformedEvent;
nothing downstream ever sees an untyped argument list.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from ..chain import AddressOnNetwork, normalize_address
from ..errors import MalformedEvent

REFERRAL_EVENT_NAME = "ClaimedWithCommunityCode"

# Decoded argument names, in declaration order
REFERRAL_EVENT_FIELDS = (
    "index",
    "claimant",
    "amountClaimed",
    "claimedBonus",
    "communityRef",
    "communityBonus",
)


@dataclass(frozen=True)
class EventId:
    """
    On-chain identity of a log entry.

    Two deliveries of the same log share block number and log index; the
    transaction hash is carried for diagnostics only.
    """
    block_number: int
    log_index: int
    transaction_hash: str = ""

    @property
    def key(self) -> str:
        return f"{self.block_number}:{self.log_index}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ReferralEvent:
    """A claim made with a referrer's community code."""
    referrer: AddressOnNetwork
    claimant: str
    claimed_amount: int
    claimed_bonus: int
    community_bonus: int
    index: int
    event_id: EventId


def _uint(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedEvent(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise MalformedEvent(f"{name} must not be negative, got {value}")
    return value


def _address(value: Any, name: str) -> str:
    try:
        return normalize_address(value)
    except ValueError:
        raise MalformedEvent(f"{name} is not an address: {value!r}")


def _tx_hash(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def decode_referral_event(raw: Any, referrer: AddressOnNetwork) -> ReferralEvent:
    """
    Decode a raw log delivered for the referrer's filter.

    Args:
        raw: web3-style decoded log mapping
        referrer: The tracked account the filter was built for

    Raises:
        MalformedEvent: If fields are missing, extra, or of the wrong type,
            or the log names a different referrer
    """
    if not isinstance(raw, Mapping):
        raise MalformedEvent(f"Event is not a mapping: {type(raw).__name__}")

    args = raw.get("args")
    if not isinstance(args, Mapping):
        raise MalformedEvent("Event has no decoded args")

    if set(args) != set(REFERRAL_EVENT_FIELDS):
        raise MalformedEvent(
            f"Expected {len(REFERRAL_EVENT_FIELDS)} {REFERRAL_EVENT_NAME} args "
            f"{list(REFERRAL_EVENT_FIELDS)}, got {sorted(args)}"
        )

    community_ref = _address(args["communityRef"], "communityRef")
    if community_ref != referrer.address:
        raise MalformedEvent(
            f"Event referrer {community_ref} does not match tracked {referrer.address}"
        )

    event_id = EventId(
        block_number=_uint(raw.get("blockNumber"), "blockNumber"),
        log_index=_uint(raw.get("logIndex"), "logIndex"),
        transaction_hash=_tx_hash(raw.get("transactionHash")),
    )

    return ReferralEvent(
        referrer=referrer,
        claimant=_address(args["claimant"], "claimant"),
        claimed_amount=_uint(args["amountClaimed"], "amountClaimed"),
        claimed_bonus=_uint(args["claimedBonus"], "claimedBonus"),
        community_bonus=_uint(args["communityBonus"], "communityBonus"),
        index=_uint(args["index"], "index"),
        event_id=event_id,
    )
