"""
rewardhound/service.py

RewardService composes claim verification and referral tracking on top
of the chain and indexing collaborators.

Usage:
    service = RewardService(config, chain, events, indexing)
    service.on_new_referral(print)
    await service.start()

    claim = await service.get_eligibility("0x...")
    stats = await service.get_referrer_stats(AddressOnNetwork("0x...", ETHEREUM))

    await service.stop()
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Set

from .chain import AddressOnNetwork, ChainService, IndexingService, ReferralEventSource
from .config import RewardsConfig
from .distribution.claims import ClaimVerifier, EligibilityClaim
from .distribution.fetcher import DistributionSource, IntegrityFetcher
from .referrals.ledger import ReferralLedger, ReferrerStats
from .referrals.tracker import ReferralTracker
from .storage import FileBackend, StorageBackend

logger = logging.getLogger(__name__)


class RewardService:
    """Eligibility checks and referral tracking for tracked accounts."""

    def __init__(
        self,
        config: RewardsConfig,
        chain: ChainService,
        events: ReferralEventSource,
        indexing: IndexingService,
        storage: Optional[StorageBackend] = None,
        distribution_source: Optional[DistributionSource] = None,
    ):
        """
        Initialize RewardService.

        Args:
            config: Service configuration
            chain: Chain collaborator (providers, tracked accounts)
            events: Historical and live referral log access
            indexing: Asset indexer the hunting-ground assets are added to
            storage: Ledger storage (default: FileBackend at config storage dir)
            distribution_source: Claim file source (default: HTTP from config)
        """
        self.config = config
        self._chain = chain
        self._indexing = indexing

        self._storage = storage or FileBackend(config.get_storage_dir())
        self.ledger = ReferralLedger(self._storage)
        self.tracker = ReferralTracker(chain, events, self.ledger, config)

        self.fetcher = IntegrityFetcher.from_config(
            config.distribution, source=distribution_source
        )
        self.verifier = ClaimVerifier(self.fetcher, config.distribution.merkle_root)

        self._pending: Set[asyncio.Task] = set()
        self._started = False
        self._account_callback_registered = False

    async def start(self) -> None:
        """Register hunting-ground assets and start tracking referrals. No-op if running."""
        if self._started:
            return
        self._started = True

        for ground in self.config.hunting_grounds:
            result = self._indexing.add_asset_to_track(ground.asset, ground.network)
            if asyncio.iscoroutine(result):
                await result

        network = self.config.network
        if self._chain.provider_for_network(network) is None:
            logger.error(f"No {network.name} provider available, referral monitoring disabled")

        if not self._account_callback_registered:
            self._chain.on_new_account_to_track(self._on_new_account)
            self._account_callback_registered = True

        accounts = await self._chain.get_accounts_to_track()
        await asyncio.gather(*(self._track(account) for account in accounts))

        logger.info(f"RewardService started ({len(self.tracker.watched_accounts)} accounts watched)")

    async def stop(self) -> None:
        """Stop all referral subscriptions."""
        if not self._started:
            return

        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()

        await self.tracker.stop()
        self._started = False
        logger.info("RewardService stopped")

    def _on_new_account(self, account: AddressOnNetwork) -> None:
        if not self._started:
            return
        task = asyncio.ensure_future(self._track(account))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _track(self, account: AddressOnNetwork) -> None:
        try:
            await self.tracker.track_referrals(account)
        except Exception as e:
            logger.error(f"Could not track referrals for {account.address}: {e}")

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_eligibility(self, address: str) -> EligibilityClaim:
        """See ClaimVerifier.get_eligibility."""
        return await self.verifier.get_eligibility(address)

    async def get_referrer_stats(self, referrer: AddressOnNetwork) -> ReferrerStats:
        """
        Total referrals and bonus for referrer. Only populated for accounts
        tracked by the chain collaborator.
        """
        return await self.tracker.get_referrer_stats(referrer)

    def on_new_eligibility(self, callback: Callable[[EligibilityClaim], Any]) -> None:
        self.verifier.on_new_eligibility(callback)

    def on_new_referral(self, callback: Callable[[dict], Any]) -> None:
        self.tracker.on_new_referral(callback)
