"""
rewardhound/referrals/ledger.py

Persisted, append-only referral ledger.

One record per (referrer, network) holds the referral count, the
cumulative community bonus and the ids of every event already applied.
The record is rewritten as a whole on each append, so an update either
lands completely or not at all, and replaying history after a restart
never counts an event twice.
"""

import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ..chain import AddressOnNetwork
from ..errors import LedgerError
from ..storage import StorageBackend
from .events import EventId

logger = logging.getLogger(__name__)

LEDGER_KEY_PREFIX = "referrer:"


@dataclass
class ReferrerStats:
    """Referral totals for one referrer."""
    total_referred: int = 0
    total_bonus: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # Bonus is a uint256 and may exceed JSON-safe integers
        return {
            "total_referred": self.total_referred,
            "total_bonus": str(self.total_bonus),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferrerStats":
        return cls(
            total_referred=int(data.get("total_referred", 0)),
            total_bonus=int(data.get("total_bonus", 0)),
        )


@dataclass
class LedgerRecord:
    """Stored form of a referrer's ledger entry."""
    referrer: str
    network: Dict[str, str]
    stats: ReferrerStats = field(default_factory=ReferrerStats)
    applied_events: Set[str] = field(default_factory=set)

    def to_bytes(self) -> bytes:
        return json.dumps({
            "referrer": self.referrer,
            "network": self.network,
            "stats": self.stats.to_dict(),
            "applied_events": sorted(self.applied_events),
        }).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> "LedgerRecord":
        raw = json.loads(data.decode())
        return cls(
            referrer=raw["referrer"],
            network=raw["network"],
            stats=ReferrerStats.from_dict(raw.get("stats", {})),
            applied_events=set(raw.get("applied_events", [])),
        )


class ReferralLedger:
    """
    Per-referrer referral totals on top of a StorageBackend.

    Appends for the same referrer are serialized by a per-referrer lock;
    different referrers proceed in parallel.
    """

    def __init__(self, storage: StorageBackend):
        self._storage = storage
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def _key(referrer: AddressOnNetwork) -> str:
        return f"{LEDGER_KEY_PREFIX}{referrer.key}"

    async def _load(self, referrer: AddressOnNetwork) -> Optional[LedgerRecord]:
        data = await self._storage.get(self._key(referrer))
        if data is None:
            return None
        try:
            return LedgerRecord.from_bytes(data)
        except (ValueError, KeyError) as e:
            raise LedgerError(f"Corrupt ledger record for {referrer.address}: {e}") from e

    async def get_stats(self, referrer: AddressOnNetwork) -> ReferrerStats:
        """Totals for referrer; zeroes if it has never referred anyone."""
        record = await self._load(referrer)
        if record is None:
            return ReferrerStats()
        return ReferrerStats(
            total_referred=record.stats.total_referred,
            total_bonus=record.stats.total_bonus,
        )

    async def has_applied(self, referrer: AddressOnNetwork, event_id: EventId) -> bool:
        record = await self._load(referrer)
        return record is not None and event_id.key in record.applied_events

    async def append(
        self,
        referrer: AddressOnNetwork,
        claimant: str,
        community_bonus: int,
        event_id: EventId,
    ) -> Optional[ReferrerStats]:
        """
        Credit one referral to referrer.

        Returns:
            Updated totals, or None if event_id was already applied

        Raises:
            LedgerError: If the update could not be persisted; the stored
                record is unchanged
        """
        if community_bonus < 0:
            raise ValueError(f"Negative community bonus: {community_bonus}")

        async with self._locks[self._key(referrer)]:
            record = await self._load(referrer)
            if record is None:
                record = LedgerRecord(
                    referrer=referrer.address,
                    network=referrer.network.to_dict(),
                )

            if event_id.key in record.applied_events:
                logger.debug(
                    f"Referral event {event_id} for {referrer.address} already applied"
                )
                return None

            # Loaded fresh under the lock, never shared
            record.stats = ReferrerStats(
                total_referred=record.stats.total_referred + 1,
                total_bonus=record.stats.total_bonus + community_bonus,
            )
            record.applied_events.add(event_id.key)

            if not await self._storage.put(self._key(referrer), record.to_bytes()):
                raise LedgerError(
                    f"Failed to persist referral {event_id} for {referrer.address}"
                )

            logger.info(
                f"Referral credited to {referrer.address[:12]}... from "
                f"{claimant[:12]}... (+{community_bonus}, "
                f"total {record.stats.total_referred} referrals)"
            )
            return record.stats

    async def top_referrers(self, limit: int = 10) -> List[Tuple[str, ReferrerStats]]:
        """Referrers with the most referrals, as (address, stats)."""
        entries = []
        for key in await self._storage.list_keys(LEDGER_KEY_PREFIX):
            data = await self._storage.get(key)
            if data is None:
                continue
            record = LedgerRecord.from_bytes(data)
            entries.append((record.referrer, record.stats))

        entries.sort(key=lambda e: (e[1].total_referred, e[1].total_bonus), reverse=True)
        return entries[:limit]
