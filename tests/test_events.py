"""
rewardhound/tests/test_events.py

Tests for referral event decoding.
"""

import pytest

from rewardhound.chain import ETHEREUM, AddressOnNetwork
from rewardhound.errors import MalformedEvent
from rewardhound.referrals.events import EventId, decode_referral_event


REFERRER = "0x" + "ab" * 20
CLAIMANT = "0x" + "cd" * 20


def raw_event(block=100, log_index=0, **overrides):
    args = {
        "index": 7,
        "claimant": CLAIMANT,
        "amountClaimed": 1000,
        "claimedBonus": 10,
        "communityRef": REFERRER,
        "communityBonus": 50,
    }
    args.update(overrides)
    return {
        "args": args,
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": bytes.fromhex("12" * 32),
    }


@pytest.fixture
def referrer():
    return AddressOnNetwork(REFERRER, ETHEREUM)


class TestDecodeReferralEvent:
    """Test decode_referral_event."""

    def test_decodes_all_fields(self, referrer):
        event = decode_referral_event(raw_event(), referrer)

        assert event.referrer == referrer
        assert event.claimant == CLAIMANT
        assert event.claimed_amount == 1000
        assert event.claimed_bonus == 10
        assert event.community_bonus == 50
        assert event.index == 7
        assert event.event_id == EventId(100, 0, "0x" + "12" * 32)

    def test_checksummed_addresses_accepted(self, referrer):
        event = decode_referral_event(
            raw_event(communityRef="0x" + "AB" * 20, claimant="0x" + "CD" * 20),
            referrer,
        )
        assert event.claimant == CLAIMANT

    def test_event_id_key(self):
        assert EventId(100, 3).key == "100:3"
        assert EventId(100, 3, "0xaa") == EventId(100, 3, "0xaa")

    def test_not_a_mapping(self, referrer):
        with pytest.raises(MalformedEvent):
            decode_referral_event(["args"], referrer)

    def test_missing_args(self, referrer):
        raw = raw_event()
        del raw["args"]
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw, referrer)

    def test_missing_field(self, referrer):
        raw = raw_event()
        del raw["args"]["communityBonus"]
        with pytest.raises(MalformedEvent, match="communityBonus"):
            decode_referral_event(raw, referrer)

    def test_extra_field(self, referrer):
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw_event(extra=1), referrer)

    def test_non_integer_bonus(self, referrer):
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw_event(communityBonus="50"), referrer)

    def test_negative_bonus(self, referrer):
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw_event(communityBonus=-1), referrer)

    def test_bad_claimant(self, referrer):
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw_event(claimant="0x1234"), referrer)

    def test_other_referrer(self, referrer):
        with pytest.raises(MalformedEvent, match="does not match"):
            decode_referral_event(raw_event(communityRef="0x" + "ef" * 20), referrer)

    def test_missing_position(self, referrer):
        raw = raw_event()
        del raw["logIndex"]
        with pytest.raises(MalformedEvent):
            decode_referral_event(raw, referrer)
