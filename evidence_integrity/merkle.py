"""
Merkle tree for evidence certification.

Canonical format, reproducible by independent verifiers:

- Leaves are SHA-256 hex digests, normalized to lowercase.
- The leaf level is padded to the next power of two with NULL_LEAF_HASH,
  the SHA-256 of the ASCII string "LEXATO_MERKLE_NULL_LEAF".
- A parent is SHA-256 over the UTF-8 text of left_hex + right_hex, the
  left child first. Leaf order is significant: swapping two leaves
  changes the root.
- A single leaf is its own root.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Union

from .errors import MerkleTreeError
from .hashing import is_sha256_hex, sha256_hex
from .logging_config import audit_log

logger = logging.getLogger(__name__)

NULL_LEAF_MARKER = "LEXATO_MERKLE_NULL_LEAF"
NULL_LEAF_HASH = sha256_hex(NULL_LEAF_MARKER)

LEFT = "left"
RIGHT = "right"


def get_null_hash() -> str:
    """Hash used to pad the leaf level: SHA-256("LEXATO_MERKLE_NULL_LEAF")."""
    return NULL_LEAF_HASH


def combine_hashes(left: str, right: str) -> str:
    """Parent hash of two sibling nodes, left concatenated before right."""
    return sha256_hex(left + right)


def _next_power_of_two(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


@dataclass
class MerkleSibling:
    """A sibling hash on an inclusion path and the side it sits on."""
    hash: str
    position: str

    def to_dict(self) -> Dict[str, str]:
        return {"hash": self.hash, "position": self.position}


@dataclass
class MerkleProof:
    """Inclusion proof of one leaf, siblings ordered from leaf to root."""
    leaf_hash: str
    leaf_index: int
    siblings: List[MerkleSibling]
    root: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leafHash": self.leaf_hash,
            "leafIndex": self.leaf_index,
            "siblings": [s.to_dict() for s in self.siblings],
            "root": self.root,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MerkleProof':
        """
        Parse the JSON form of a proof.

        Raises:
            MerkleTreeError: if a field is missing or has the wrong type
        """
        try:
            leaf_index = data["leafIndex"]
            if isinstance(leaf_index, bool) or not isinstance(leaf_index, int):
                raise MerkleTreeError("leafIndex must be an integer")
            siblings = [_parse_sibling(s, leaf_index, level) for level, s in enumerate(data["siblings"])]
            leaf_hash = data["leafHash"]
            root = data["root"]
        except (KeyError, TypeError) as e:
            raise MerkleTreeError(f"Malformed proof: {e}") from e
        if not isinstance(leaf_hash, str) or not isinstance(root, str):
            raise MerkleTreeError("leafHash and root must be strings")
        return cls(leaf_hash=leaf_hash, leaf_index=leaf_index, siblings=siblings, root=root)


def _parse_sibling(entry: Any, leaf_index: int, level: int) -> MerkleSibling:
    if isinstance(entry, MerkleSibling):
        return entry
    if isinstance(entry, str):
        # bare hash: side follows from the index bit at this level
        position = RIGHT if (leaf_index >> level) % 2 == 0 else LEFT
        return MerkleSibling(hash=entry, position=position)
    if isinstance(entry, Mapping):
        h = entry.get("hash")
        position = entry.get("position")
        if not isinstance(h, str) or not isinstance(position, str):
            raise MerkleTreeError("sibling hash and position must be strings")
        return MerkleSibling(hash=h, position=position)
    raise MerkleTreeError(f"Unsupported sibling entry: {type(entry).__name__}")


@dataclass
class MerkleTreeResult:
    """Summary of a built tree."""
    root_hash: str
    leaf_count: int
    total_leaves: int
    height: int
    leaf_hashes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rootHash": self.root_hash,
            "leafCount": self.leaf_count,
            "totalLeaves": self.total_leaves,
            "height": self.height,
            "leafHashes": list(self.leaf_hashes),
        }


class MerkleTree:
    """
    Merkle tree over evidence hashes.

    Keeps the levels of the last built tree, from the padded leaf level
    (index 0) up to the root, for proof generation.
    """

    def __init__(self):
        self._levels: List[List[str]] = []
        self._leaf_hashes: List[str] = []

    def build(self, hashes: Sequence[str]) -> MerkleTreeResult:
        """
        Build the tree from leaf hashes.

        Raises:
            MerkleTreeError: if the list is empty or an entry is not a
                64-character hex digest
        """
        if not hashes:
            raise MerkleTreeError("Hash list must not be empty")

        leaves: List[str] = []
        for h in hashes:
            if not is_sha256_hex(h):
                raise MerkleTreeError(f"Invalid hash: {h!r}. Must be a SHA-256 hex digest")
            leaves.append(h.lower())

        padded = leaves + [NULL_LEAF_HASH] * (_next_power_of_two(len(leaves)) - len(leaves))

        levels = [padded]
        current = padded
        while len(current) > 1:
            current = [combine_hashes(current[i], current[i + 1]) for i in range(0, len(current), 2)]
            levels.append(current)

        self._levels = levels
        self._leaf_hashes = leaves

        logger.debug("Built Merkle tree over %d leaves (%d padded)", len(leaves), len(padded))

        return self._summary()

    def build_from_data(self, items: Sequence[str]) -> MerkleTreeResult:
        """Hash each item (UTF-8, SHA-256) and build the tree over the digests."""
        if not items:
            raise MerkleTreeError("Item list must not be empty")

        hashes = []
        for item in items:
            if item is None:
                raise MerkleTreeError("Items must not be None")
            hashes.append(sha256_hex(str(item)))

        return self.build(hashes)

    def get_root_hash(self) -> str:
        return self._require_built()[-1][0]

    def get_leaf_count(self) -> int:
        self._require_built()
        return len(self._leaf_hashes)

    def get_leaf_hashes(self) -> List[str]:
        return list(self._leaf_hashes)

    def get_proof(self, leaf_index: int) -> MerkleProof:
        """
        Generate the inclusion proof of a leaf.

        Raises:
            MerkleTreeError: if the tree is not built or the index is out
                of [0, leaf_count)
        """
        levels = self._require_built()
        count = len(self._leaf_hashes)

        if isinstance(leaf_index, bool) or not isinstance(leaf_index, int):
            raise MerkleTreeError(f"Leaf index must be an integer, got {leaf_index!r}")
        if leaf_index < 0 or leaf_index >= count:
            raise MerkleTreeError(
                f"Invalid leaf index: {leaf_index}. Must be between 0 and {count - 1}"
            )

        siblings: List[MerkleSibling] = []
        index = leaf_index
        for level in levels[:-1]:
            if index % 2 == 0:
                siblings.append(MerkleSibling(hash=level[index + 1], position=RIGHT))
            else:
                siblings.append(MerkleSibling(hash=level[index - 1], position=LEFT))
            index //= 2

        return MerkleProof(
            leaf_hash=levels[0][leaf_index],
            leaf_index=leaf_index,
            siblings=siblings,
            root=levels[-1][0],
        )

    def verify_proof(self, proof: Union[MerkleProof, Mapping[str, Any], None]) -> bool:
        """
        Verify an inclusion proof.

        Never raises: malformed or tampered proofs return False.
        """
        return verify_merkle_proof(proof)

    def contains_hash(self, h: str) -> bool:
        return self.get_hash_index(h) != -1

    def get_hash_index(self, h: str) -> int:
        """Index of a leaf hash (case-insensitive), or -1 when absent."""
        if not isinstance(h, str):
            return -1
        try:
            return self._leaf_hashes.index(h.lower())
        except ValueError:
            return -1

    def to_dict(self) -> Dict[str, Any]:
        return self._summary().to_dict()

    def _summary(self) -> MerkleTreeResult:
        levels = self._require_built()
        return MerkleTreeResult(
            root_hash=levels[-1][0],
            leaf_count=len(self._leaf_hashes),
            total_leaves=len(levels[0]),
            height=len(levels),
            leaf_hashes=list(self._leaf_hashes),
        )

    def _require_built(self) -> List[List[str]]:
        if not self._levels:
            raise MerkleTreeError("Tree has not been built")
        return self._levels


def create_merkle_tree(hashes: Sequence[str]) -> MerkleTreeResult:
    """Build a Merkle tree from leaf hashes."""
    return MerkleTree().build(hashes)


def create_merkle_tree_from_data(items: Sequence[str]) -> MerkleTreeResult:
    """Build a Merkle tree from raw string items."""
    return MerkleTree().build_from_data(items)


def verify_merkle_proof(proof: Union[MerkleProof, Mapping[str, Any], None]) -> bool:
    """
    Recompute the path from leafHash through the siblings and compare with root.

    Accepts a MerkleProof or its JSON dict form. Returns False for None,
    malformed proofs, non-hex hashes, unknown sibling positions or a path
    that does not reach the declared root.
    """
    if proof is None:
        return False

    try:
        if not isinstance(proof, MerkleProof):
            if not isinstance(proof, Mapping):
                return False
            proof = MerkleProof.from_dict(proof)
        siblings = [_parse_sibling(s, proof.leaf_index, level) for level, s in enumerate(proof.siblings)]
    except (MerkleTreeError, TypeError) as e:
        audit_log.proof_rejected(getattr(proof, "leaf_index", None), str(e))
        return False

    if not is_sha256_hex(proof.leaf_hash) or not is_sha256_hex(proof.root):
        audit_log.proof_rejected(proof.leaf_index, "leafHash and root must be SHA-256 hex digests")
        return False

    current = proof.leaf_hash.lower()
    for sibling in siblings:
        if not is_sha256_hex(sibling.hash):
            audit_log.proof_rejected(proof.leaf_index, "sibling is not a SHA-256 hex digest")
            return False
        sibling_hash = sibling.hash.lower()
        if sibling.position == LEFT:
            current = combine_hashes(sibling_hash, current)
        elif sibling.position == RIGHT:
            current = combine_hashes(current, sibling_hash)
        else:
            audit_log.proof_rejected(proof.leaf_index, f"unknown sibling position {sibling.position!r}")
            return False

    if current != proof.root.lower():
        audit_log.proof_rejected(proof.leaf_index, "computed root does not match")
        return False
    return True
