"""
rewardhound/referrals/

On-chain referral tracking and the persisted referral ledger.
"""

from .events import (
    EventId,
    ReferralEvent,
    decode_referral_event,
    REFERRAL_EVENT_NAME,
    REFERRAL_EVENT_FIELDS,
)
from .ledger import (
    ReferrerStats,
    ReferralLedger,
)
from .tracker import (
    ReferralTracker,
    WatchState,
)

__all__ = [
    "EventId",
    "ReferralEvent",
    "decode_referral_event",
    "REFERRAL_EVENT_NAME",
    "REFERRAL_EVENT_FIELDS",
    "ReferrerStats",
    "ReferralLedger",
    "ReferralTracker",
    "WatchState",
]
