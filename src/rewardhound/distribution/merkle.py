"""
rewardhound/distribution/merkle.py

Sorted-pair keccak merkle trees, matching the on-chain claim contract.

Leaf:  keccak256(abi.encodePacked(uint256 index, address account, uint256 amount))
Node:  keccak256(min(a, b) ++ max(a, b))

Because each pair is hashed in sorted order, a proof is just the list of
sibling hashes; no left/right flags are needed.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from eth_utils import keccak, to_canonical_address, to_checksum_address

logger = logging.getLogger(__name__)

HASH_SIZE = 32
UINT256_MAX = 2 ** 256 - 1

HashLike = Union[str, bytes]


def encode_uint256(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"uint256 must be an int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return value.to_bytes(32, byteorder="big")


def hash_leaf(index: int, account: str, amount: int) -> bytes:
    """Leaf hash for a claim entry."""
    packed = encode_uint256(index) + to_canonical_address(account) + encode_uint256(amount)
    return keccak(packed)


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in canonical (sorted) order."""
    if b < a:
        a, b = b, a
    return keccak(a + b)


def decode_hash(value: HashLike) -> bytes:
    """
    Parse a 32-byte hash from bytes or a hex string (0x prefix optional).

    Raises:
        ValueError: If value is not exactly 32 bytes
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        hex_str = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(hex_str)
        except ValueError as e:
            raise ValueError(f"Not a hex hash: {value!r}") from e
    else:
        raise ValueError(f"Not a hash: {value!r}")

    if len(raw) != HASH_SIZE:
        raise ValueError(f"Hash must be {HASH_SIZE} bytes, got {len(raw)}")
    return raw


def encode_hash(value: bytes) -> str:
    return "0x" + value.hex()


def compute_root(leaf: bytes, proof: Sequence[HashLike]) -> bytes:
    """Fold a proof into the root it implies for a leaf."""
    current = leaf
    for sibling in proof:
        current = hash_pair(current, decode_hash(sibling))
    return current


def verify_proof(leaf: bytes, proof: Sequence[HashLike], root: HashLike) -> bool:
    """Check that proof folds leaf to root."""
    try:
        return compute_root(leaf, proof) == decode_hash(root)
    except ValueError:
        return False


class MerkleTree:
    """
    Build sorted-pair merkle trees for claim distributions.

    Leaves are sorted before building and an unpaired node is carried up
    to the next level unchanged, the same way the off-chain tree for the
    claim contract is built.

    Usage:
        tree = MerkleTree.from_balances({"0xaa..": 1000, "0xbb..": 250})
        tree.root           # "0x..."
        tree.get_proof(0)   # sibling hashes for the claim with index 0
    """

    def __init__(self, entries: Iterable[Tuple[int, str, int]]):
        """
        Initialize MerkleTree.

        Args:
            entries: (index, account, amount) tuples; indexes must be unique
        """
        self.entries: List[Tuple[int, str, int]] = list(entries)
        if not self.entries:
            raise ValueError("Cannot build a merkle tree with no entries")

        indexes = [index for index, _, _ in self.entries]
        if len(set(indexes)) != len(indexes):
            raise ValueError("Claim indexes must be unique")

        self._leaf_by_index: Dict[int, bytes] = {
            index: hash_leaf(index, account, amount)
            for index, account, amount in self.entries
        }
        self.layers: List[List[bytes]] = self._build(
            sorted(self._leaf_by_index.values())
        )

    @classmethod
    def from_balances(cls, balances: Mapping[str, int]) -> "MerkleTree":
        """Assign indexes in numeric address order and build the tree."""
        accounts = sorted((to_checksum_address(a) for a in balances), key=lambda a: int(a, 16))
        lookup = {to_checksum_address(a): int(v) for a, v in balances.items()}
        return cls(
            (index, account, lookup[account])
            for index, account in enumerate(accounts)
        )

    @staticmethod
    def _build(leaves: List[bytes]) -> List[List[bytes]]:
        layers = [leaves]
        current = leaves
        while len(current) > 1:
            next_level = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    next_level.append(hash_pair(current[i], current[i + 1]))
                else:
                    next_level.append(current[i])
            layers.append(next_level)
            current = next_level
        return layers

    @property
    def root_bytes(self) -> bytes:
        return self.layers[-1][0]

    @property
    def root(self) -> str:
        return encode_hash(self.root_bytes)

    def get_proof(self, index: int) -> List[str]:
        """
        Get merkle proof for the entry with a claim index.

        Raises:
            KeyError: If no entry has this index
        """
        leaf = self._leaf_by_index[index]
        position = self.layers[0].index(leaf)

        proof = []
        for layer in self.layers[:-1]:
            sibling = position ^ 1
            if sibling < len(layer):
                proof.append(encode_hash(layer[sibling]))
            position //= 2
        return proof

    def to_distribution(self) -> Dict[str, Any]:
        """
        Distribution file contents: root, total and per-account claims.

        Amounts are 0x-prefixed hex strings.
        """
        claims = {}
        total = 0
        for index, account, amount in sorted(self.entries):
            total += amount
            claims[to_checksum_address(account)] = {
                "index": index,
                "amount": hex(amount),
                "proof": self.get_proof(index),
            }
        return {
            "merkleRoot": self.root,
            "tokenTotal": hex(total),
            "claims": claims,
        }
