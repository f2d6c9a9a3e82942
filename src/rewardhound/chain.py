"""
rewardhound/chain.py

Chain-side types and the collaborator interfaces this package consumes.

The chain-abstraction layer (network connections, the set of tracked
accounts, historical and live log queries) and the asset indexer live
outside rewardhound. They are described here as ABCs so the tracker and
the service can be composed against any implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from eth_utils import is_hex_address, keccak

if TYPE_CHECKING:
    from .config import AssetSpec


# ============================================================================
# NETWORKS & ADDRESSES
# ============================================================================

@dataclass(frozen=True)
class Network:
    """An EVM network identified by chain id."""
    name: str
    chain_id: str
    family: str = "EVM"

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "chain_id": self.chain_id, "family": self.family}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Network":
        return cls(
            name=data["name"],
            chain_id=str(data["chain_id"]),
            family=data.get("family", "EVM"),
        )


ETHEREUM = Network(name="Ethereum", chain_id="1")
POLYGON = Network(name="Polygon", chain_id="137")
ARBITRUM = Network(name="Arbitrum", chain_id="42161")
OPTIMISM = Network(name="Optimism", chain_id="10")

KNOWN_NETWORKS: Dict[str, Network] = {
    n.name.lower(): n for n in (ETHEREUM, POLYGON, ARBITRUM, OPTIMISM)
}


def same_network(a: Network, b: Network) -> bool:
    """Networks match on family and chain id; the display name is ignored."""
    return a.family == b.family and a.chain_id == b.chain_id


def resolve_network(value: Any) -> Network:
    """Resolve a network from a Network, a known name, or a dict."""
    if isinstance(value, Network):
        return value
    if isinstance(value, dict):
        return Network.from_dict(value)
    if isinstance(value, str) and value.lower() in KNOWN_NETWORKS:
        return KNOWN_NETWORKS[value.lower()]
    raise ValueError(f"Unknown network: {value!r}")


def normalize_address(address: str) -> str:
    """
    Normalise a 20-byte hex address to lower case.

    Raises:
        ValueError: If address is not a 0x-prefixed 20-byte hex string
    """
    if not isinstance(address, str) or not is_hex_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    if not address.startswith(("0x", "0X")):
        address = "0x" + address
    return "0x" + address[2:].lower()


@dataclass(frozen=True)
class AddressOnNetwork:
    """An account on a specific network. Equal regardless of address case."""
    address: str
    network: Network

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))

    @property
    def key(self) -> str:
        """Stable storage key for this account."""
        return f"{self.network.family}:{self.network.chain_id}:{self.address}"

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "network": self.network.to_dict()}


# ============================================================================
# EVENT FILTERS
# ============================================================================

def event_topic(signature: str) -> str:
    """topic0 for an event signature, e.g. 'Transfer(address,address,uint256)'."""
    return "0x" + keccak(text=signature).hex()


def address_topic(address: str) -> str:
    """An address left-padded to a 32-byte indexed topic."""
    return "0x" + "0" * 24 + normalize_address(address)[2:]


@dataclass(frozen=True)
class EventFilter:
    """
    Log filter for one contract event with the referrer as indexed argument.

    The referrer is the only indexed argument of the referral event, so it
    lands in topics[1].
    """
    contract_address: str
    event_signature: str
    referrer: str

    @property
    def topics(self) -> List[Optional[str]]:
        return [event_topic(self.event_signature), address_topic(self.referrer)]

    def to_log_filter(self) -> Dict[str, Any]:
        """eth_getLogs-style filter params."""
        return {
            "address": self.contract_address,
            "topics": self.topics,
            "fromBlock": "earliest",
        }


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

RawEvent = Dict[str, Any]


class ChainService(ABC):
    """Supplies connections and the set of tracked accounts."""

    @abstractmethod
    def provider_for_network(self, network: Network) -> Optional[Any]:
        """Connection handle for a network, or None if unavailable."""
        pass

    @abstractmethod
    async def get_accounts_to_track(self) -> List[AddressOnNetwork]:
        """Accounts already tracked at startup."""
        pass

    @abstractmethod
    def on_new_account_to_track(
        self,
        callback: Callable[[AddressOnNetwork], Any],
    ) -> None:
        """Register a callback for accounts tracked after startup."""
        pass


class ReferralEventSource(ABC):
    """
    Historical and live log access for a filter.

    Raw events follow web3's decoded log shape:
    {"args": {...}, "blockNumber": int, "logIndex": int, "transactionHash": ...}
    """

    @abstractmethod
    async def query_filter(
        self,
        provider: Any,
        event_filter: EventFilter,
    ) -> List[RawEvent]:
        """All past events matching the filter. Should raise FetchError on network failure."""
        pass

    @abstractmethod
    def subscribe(
        self,
        provider: Any,
        event_filter: EventFilter,
        handler: Callable[[RawEvent], None],
    ) -> Optional[Callable[[], Any]]:
        """
        Invoke handler for every new matching event.

        Returns an optional callable that cancels the subscription.
        """
        pass


class IndexingService(ABC):
    """Asset tracking subsystem."""

    @abstractmethod
    def add_asset_to_track(self, asset: "AssetSpec", network: Network) -> Any:
        """Make sure an asset is tracked. May return an awaitable."""
        pass
