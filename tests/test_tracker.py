"""
rewardhound/tests/test_tracker.py

Tests for referral subscriptions and ledger updates.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FakeChain, FakeEventSource, REFERRAL_CONTRACT, referral_log
from rewardhound.chain import ETHEREUM, POLYGON, AddressOnNetwork, address_topic, event_topic
from rewardhound.config import REFERRAL_EVENT_SIGNATURE
from rewardhound.errors import FetchError
from rewardhound.referrals.ledger import ReferralLedger, ReferrerStats
from rewardhound.referrals.tracker import ReferralTracker, WatchState
from rewardhound.storage import MemoryBackend


REFERRER = "0x" + "ab" * 20


@pytest.fixture
def account():
    return AddressOnNetwork(REFERRER, ETHEREUM)


@pytest.fixture
def events():
    return FakeEventSource()


@pytest.fixture
def tracker(events, rewards_config):
    return ReferralTracker(
        FakeChain(),
        events,
        ReferralLedger(MemoryBackend()),
        rewards_config,
    )


class TestTrackReferrals:
    """Test ReferralTracker.track_referrals."""

    @pytest.mark.asyncio
    async def test_history_then_live(self, tracker, events, account):
        first = referral_log(REFERRER, 100, 0, bonus=50)
        events.history[REFERRER] = [first]
        # Same log also arrives live while history is being read
        events.on_query = lambda f: events.emit(REFERRER, first)
        updates = []
        tracker.on_new_referral(updates.append)

        assert await tracker.track_referrals(account) is True
        events.emit(REFERRER, referral_log(REFERRER, 120, 3, bonus=30))
        await tracker.flush()

        stats = await tracker.get_referrer_stats(account)
        assert stats == ReferrerStats(total_referred=2, total_bonus=80)
        assert [u["total_bonus"] for u in updates] == [50, 80]
        assert updates[-1]["referrer"] == account
        assert updates[-1]["total_referred"] == 2
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_filter_targets_referrer(self, tracker, events, account):
        seen = []
        events.on_query = seen.append

        await tracker.track_referrals(account)

        event_filter = seen[0]
        assert event_filter.contract_address == REFERRAL_CONTRACT
        assert event_filter.topics == [
            event_topic(REFERRAL_EVENT_SIGNATURE),
            address_topic(REFERRER),
        ]
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_state_transitions(self, tracker, account):
        assert tracker.get_state(account) == WatchState.UNWATCHED

        await tracker.track_referrals(account)

        assert tracker.get_state(account) == WatchState.WATCHING
        assert tracker.watched_accounts == [account.key]
        await tracker.stop()
        assert tracker.get_state(account) == WatchState.UNWATCHED

    @pytest.mark.asyncio
    async def test_track_twice_subscribes_once(self, tracker, events, account):
        assert await tracker.track_referrals(account) is True
        assert await tracker.track_referrals(
            AddressOnNetwork("0x" + "AB" * 20, ETHEREUM)
        ) is False

        assert events.subscriptions == 1
        assert events.queries == 1
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_other_network_ignored(self, tracker, events):
        result = await tracker.track_referrals(AddressOnNetwork(REFERRER, POLYGON))

        assert result is False
        assert events.subscriptions == 0

    @pytest.mark.asyncio
    async def test_no_provider(self, events, rewards_config, account):
        tracker = ReferralTracker(
            FakeChain(provider=None),
            events,
            ReferralLedger(MemoryBackend()),
            rewards_config,
        )

        assert await tracker.track_referrals(account) is False
        assert events.subscriptions == 0

    @pytest.mark.asyncio
    async def test_history_failure_resets_state(self, tracker, events, account):
        events.fail_queries = 1

        with pytest.raises(FetchError):
            await tracker.track_referrals(account)

        assert tracker.get_state(account) == WatchState.UNWATCHED
        assert events.unsubscribed == [REFERRER]

        # Tracking can be retried once the network is back
        assert await tracker.track_referrals(account) is True
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_history_retried(self, events, rewards_config, account):
        rewards_config.history_retry.max_retries = 2
        events.fail_queries = 2
        events.history[REFERRER] = [referral_log(REFERRER, 100, 0, bonus=5)]
        tracker = ReferralTracker(
            FakeChain(), events, ReferralLedger(MemoryBackend()), rewards_config
        )

        assert await tracker.track_referrals(account) is True
        assert events.queries == 3
        assert (await tracker.get_referrer_stats(account)).total_bonus == 5
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_malformed_event_dropped(self, tracker, events, account):
        await tracker.track_referrals(account)
        bad = referral_log(REFERRER, 100, 0, bonus=50)
        del bad["args"]["communityBonus"]

        events.emit(REFERRER, bad)
        events.emit(REFERRER, referral_log(REFERRER, 101, 0, bonus=7))
        await tracker.flush()

        assert await tracker.get_referrer_stats(account) == ReferrerStats(1, 7)
        assert tracker.get_state(account) == WatchState.WATCHING
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_malformed_history_event_skipped(self, tracker, events, account):
        wrong_referrer = referral_log("0x" + "ef" * 20, 99, 0, bonus=1000)
        events.history[REFERRER] = [wrong_referrer, referral_log(REFERRER, 100, 0, bonus=5)]

        await tracker.track_referrals(account)

        assert await tracker.get_referrer_stats(account) == ReferrerStats(1, 5)
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_callback_errors_isolated(self, tracker, events, account):
        good = AsyncMock()
        tracker.on_new_referral(Mock(side_effect=RuntimeError("boom")))
        tracker.on_new_referral(good)
        events.history[REFERRER] = [referral_log(REFERRER, 100, 0, bonus=5)]

        await tracker.track_referrals(account)

        good.assert_awaited_once()
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, tracker, events, account):
        await tracker.track_referrals(account)

        await tracker.stop()

        assert events.unsubscribed == [REFERRER]
        assert tracker.watched_accounts == []

    @pytest.mark.asyncio
    async def test_unknown_referrer_stats(self, tracker):
        stats = await tracker.get_referrer_stats(AddressOnNetwork("0x" + "01" * 20, ETHEREUM))
        assert stats == ReferrerStats(0, 0)


class FlakyBackend(MemoryBackend):
    """Backend whose next read fails once."""

    def __init__(self):
        super().__init__()
        self.fail_next_get = False

    async def get(self, key):
        if self.fail_next_get:
            self.fail_next_get = False
            raise PermissionError("ledger directory not readable")
        return await super().get(key)


class TestLiveDelivery:
    """Live events keep flowing after a failed one."""

    @pytest.mark.asyncio
    async def test_storage_error_does_not_stop_stream(self, events, rewards_config, account):
        storage = FlakyBackend()
        tracker = ReferralTracker(FakeChain(), events, ReferralLedger(storage), rewards_config)
        await tracker.track_referrals(account)

        storage.fail_next_get = True
        events.emit(REFERRER, referral_log(REFERRER, 100, 0, bonus=5))
        events.emit(REFERRER, referral_log(REFERRER, 101, 0, bonus=7))
        await asyncio.wait_for(tracker.flush(), timeout=1.0)

        assert await tracker.get_referrer_stats(account) == ReferrerStats(1, 7)
        assert tracker.get_state(account) == WatchState.WATCHING
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_unexpected_handler_error_does_not_stop_stream(self, tracker, events, account):
        await tracker.track_referrals(account)
        original = tracker.register_referral
        calls = []

        async def fail_first(event):
            calls.append(event)
            if len(calls) == 1:
                raise ConnectionError("ledger service unreachable")
            return await original(event)

        tracker.register_referral = fail_first
        events.emit(REFERRER, referral_log(REFERRER, 100, 0, bonus=5))
        events.emit(REFERRER, referral_log(REFERRER, 101, 0, bonus=7))
        await asyncio.wait_for(tracker.flush(), timeout=1.0)

        assert len(calls) == 2
        assert await tracker.get_referrer_stats(account) == ReferrerStats(1, 7)
        await tracker.stop()


def test_module_logger_name():
    from rewardhound.referrals import tracker as tracker_module
    assert tracker_module.logger.name == "rewardhound.referrals.tracker"
