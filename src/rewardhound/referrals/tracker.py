"""
rewardhound/referrals/tracker.py

Watches referral events for tracked accounts and feeds the ledger.

For each watched account:
1. Subscribe to live ClaimedWithCommunityCode logs with the account as
   referrer; deliveries are buffered in a per-account queue
2. Query the full history for the same filter and apply it
3. Drain the live queue for the rest of the process lifetime

History and live delivery overlap, so the same log can arrive twice.
The ledger dedupes on block number + log index, which still counts
repeat referrals between the same referrer and claimant.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..chain import (
    AddressOnNetwork,
    ChainService,
    EventFilter,
    RawEvent,
    ReferralEventSource,
    same_network,
)
from ..config import RewardsConfig
from ..errors import LedgerError, MalformedEvent
from ..retry import call_with_retry
from .events import ReferralEvent, decode_referral_event
from .ledger import ReferralLedger, ReferrerStats

logger = logging.getLogger(__name__)


class WatchState(Enum):
    """Per-account subscription state."""
    UNWATCHED = "unwatched"
    SUBSCRIBING = "subscribing"
    WATCHING = "watching"


class ReferralTracker:
    """
    Maintains one referral subscription per tracked account.

    Usage:
        tracker = ReferralTracker(chain, events, ledger, config)
        tracker.on_new_referral(lambda update: print(update["total_bonus"]))

        await tracker.track_referrals(AddressOnNetwork("0x...", ETHEREUM))
        stats = await tracker.get_referrer_stats(account)
    """

    def __init__(
        self,
        chain: ChainService,
        events: ReferralEventSource,
        ledger: ReferralLedger,
        config: RewardsConfig,
    ):
        self._chain = chain
        self._events = events
        self._ledger = ledger
        self._config = config

        self._states: Dict[str, WatchState] = {}
        self._queues: Dict[str, asyncio.Queue] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._unsubscribers: Dict[str, Callable[[], Any]] = {}

        self._referral_callbacks: List[Callable] = []

    def on_new_referral(self, callback: Callable[[Dict[str, Any]], Any]) -> None:
        """
        Register callback for ledger updates.

        Called with {"referrer": AddressOnNetwork, "total_referred": int,
        "total_bonus": int}.
        """
        self._referral_callbacks.append(callback)

    def get_state(self, account: AddressOnNetwork) -> WatchState:
        return self._states.get(account.key, WatchState.UNWATCHED)

    @property
    def watched_accounts(self) -> List[str]:
        return [k for k, s in self._states.items() if s == WatchState.WATCHING]

    # ========================================================================
    # TRACKING
    # ========================================================================

    async def track_referrals(self, account: AddressOnNetwork) -> bool:
        """
        Start watching referrals credited to account.

        No-op for other networks and for accounts already subscribed.

        Returns:
            True if a new subscription was established

        Raises:
            FetchError: If the history query failed; the account is left
                unwatched so it can be tracked again later
            LedgerError: If a historical referral could not be persisted
        """
        network = self._config.network
        if not same_network(account.network, network):
            logger.debug(f"Not tracking referrals for {account.address} on {account.network.name}")
            return False

        key = account.key
        if self.get_state(account) != WatchState.UNWATCHED:
            return False

        provider = self._chain.provider_for_network(network)
        if provider is None:
            logger.error(f"No {network.name} provider, not tracking referrals for {account.address}")
            return False

        self._states[key] = WatchState.SUBSCRIBING
        event_filter = EventFilter(
            contract_address=self._config.referral_contract,
            event_signature=self._config.referral_event_signature,
            referrer=account.address,
        )
        queue: asyncio.Queue = asyncio.Queue()
        established = False

        try:
            unsubscribe = self._events.subscribe(provider, event_filter, queue.put_nowait)
            if callable(unsubscribe):
                self._unsubscribers[key] = unsubscribe

            history = await call_with_retry(
                lambda: self._events.query_filter(provider, event_filter),
                timeout=self._config.history_timeout,
                retry=self._config.history_retry,
                description=f"Referral history for {account.address}",
            )

            logger.debug(f"Replaying {len(history)} past referrals for {account.address}")
            for raw in history:
                await self._handle_event(account, raw)

            self._queues[key] = queue
            self._tasks[key] = asyncio.ensure_future(self._drain(account, queue))
            self._states[key] = WatchState.WATCHING
            established = True
        finally:
            if not established:
                self._states[key] = WatchState.UNWATCHED
                await self._unsubscribe(key)

        logger.info(f"Tracking referrals for {account.address} on {network.name}")
        return True

    async def _drain(self, account: AddressOnNetwork, queue: asyncio.Queue) -> None:
        while True:
            raw = await queue.get()
            try:
                await self._handle_event(account, raw)
            except LedgerError as e:
                logger.error(f"Dropping live referral for {account.address}: {e}")
            except Exception as e:
                logger.error(f"Live referral handling failed for {account.address}: {e}")
            finally:
                queue.task_done()

    async def _handle_event(
        self,
        account: AddressOnNetwork,
        raw: RawEvent,
    ) -> Optional[ReferrerStats]:
        try:
            event = decode_referral_event(raw, account)
        except MalformedEvent as e:
            logger.error(f"Malformed referral event for {account.address}: {e}")
            return None
        return await self.register_referral(event)

    async def register_referral(self, event: ReferralEvent) -> Optional[ReferrerStats]:
        """
        Credit a decoded referral event and notify listeners.

        Returns:
            Refreshed totals, or None if the event was a duplicate
        """
        stats = await self._ledger.append(
            event.referrer,
            event.claimant,
            event.community_bonus,
            event.event_id,
        )
        if stats is None:
            return None

        await self._notify({
            "referrer": event.referrer,
            "total_referred": stats.total_referred,
            "total_bonus": stats.total_bonus,
        })
        return stats

    async def get_referrer_stats(self, referrer: AddressOnNetwork) -> ReferrerStats:
        """Totals for referrer; zeroes if none recorded."""
        return await self._ledger.get_stats(referrer)

    async def _notify(self, update: Dict[str, Any]) -> None:
        for callback in self._referral_callbacks:
            try:
                result = callback(update)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Referral callback error: {e}")

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def flush(self) -> None:
        """Wait until every live event received so far has been handled."""
        await asyncio.gather(*(q.join() for q in list(self._queues.values())))

    async def stop(self) -> None:
        """Cancel all subscriptions and drain tasks."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for key in list(self._unsubscribers):
            await self._unsubscribe(key)

        self._tasks.clear()
        self._queues.clear()
        self._states.clear()
        logger.info("ReferralTracker stopped")

    async def _unsubscribe(self, key: str) -> None:
        unsubscribe = self._unsubscribers.pop(key, None)
        if unsubscribe is None:
            return
        try:
            result = unsubscribe()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning(f"Failed to cancel referral subscription {key}: {e}")
