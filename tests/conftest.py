"""
Shared fakes for the chain-side collaborators.
"""

import pytest

from rewardhound.chain import ChainService, IndexingService, ReferralEventSource
from rewardhound.config import RewardsConfig
from rewardhound.errors import FetchError
from rewardhound.retry import RetryConfig


REFERRAL_CONTRACT = "0x" + "99" * 20


class FakeChain(ChainService):
    """Chain collaborator with a fixed provider and account list."""

    def __init__(self, accounts=None, provider="provider"):
        self.accounts = list(accounts or [])
        self.provider = provider
        self.account_callbacks = []

    def provider_for_network(self, network):
        return self.provider

    async def get_accounts_to_track(self):
        return list(self.accounts)

    def on_new_account_to_track(self, callback):
        self.account_callbacks.append(callback)

    def add_account(self, account):
        self.accounts.append(account)
        for callback in self.account_callbacks:
            callback(account)


class FakeEventSource(ReferralEventSource):
    """
    Serves a canned history per referrer and lets tests push live events.

    on_query, if set, runs while the history query is in flight.
    """

    def __init__(self):
        self.history = {}
        self.handlers = {}
        self.subscriptions = 0
        self.unsubscribed = []
        self.queries = 0
        self.fail_queries = 0
        self.on_query = None

    async def query_filter(self, provider, event_filter):
        self.queries += 1
        if self.fail_queries > 0:
            self.fail_queries -= 1
            raise FetchError("log query failed")
        if self.on_query:
            self.on_query(event_filter)
        return list(self.history.get(event_filter.referrer, []))

    def subscribe(self, provider, event_filter, handler):
        self.subscriptions += 1
        self.handlers[event_filter.referrer] = handler

        def unsubscribe():
            self.unsubscribed.append(event_filter.referrer)
            self.handlers.pop(event_filter.referrer, None)

        return unsubscribe

    def emit(self, referrer, raw):
        self.handlers[referrer](raw)


class FakeIndexing(IndexingService):

    def __init__(self):
        self.assets = []

    def add_asset_to_track(self, asset, network):
        self.assets.append((asset.symbol, network.name))


def referral_log(referrer, block, log_index, bonus, claimant="0x" + "cd" * 20):
    return {
        "args": {
            "index": block,
            "claimant": claimant,
            "amountClaimed": 1000,
            "claimedBonus": 0,
            "communityRef": referrer,
            "communityBonus": bonus,
        },
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": "0x" + "12" * 32,
    }


@pytest.fixture
def rewards_config(tmp_path):
    return RewardsConfig(
        referral_contract=REFERRAL_CONTRACT,
        hunting_grounds=[],
        storage_dir=tmp_path / "storage",
        history_timeout=5.0,
        history_retry=RetryConfig(max_retries=0, base_delay=0, jitter=False),
    )
