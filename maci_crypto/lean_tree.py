"""
Dynamic binary Merkle accumulator (LeanTree).

The tree has no declared capacity: its depth is ceil(log2(size)) and the
root is that of a perfect binary tree whose unfilled leaves are 0 and whose
unfilled internal nodes are hashes of empty subtrees.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .errors import TreeIndexError
from .field import check_field_element
from .poseidon import hash_left_right

logger = logging.getLogger(__name__)


@dataclass
class MerkleProof:
    """Inclusion proof; len(siblings) equals the tree depth at generation time"""
    root: int
    leaf: int
    index: int
    siblings: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'root': self.root,
            'leaf': self.leaf,
            'index': self.index,
            'siblings': list(self.siblings),
        }


class LeanTree:
    """Binary Poseidon Merkle tree that grows one leaf at a time"""

    def __init__(self, leaves: Iterable[int] = ()):
        # _nodes[0] holds the leaves, _nodes[level] the hashes at that height
        self._nodes: List[List[int]] = [[]]
        self._zeros: List[int] = [0]
        leaves = list(leaves)
        if leaves:
            self.insert_many(leaves)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._nodes[0])

    @property
    def depth(self) -> int:
        return max(self.size - 1, 0).bit_length()

    @property
    def root(self) -> int:
        if self.size == 0:
            return 0
        return self._nodes[self.depth][0]

    @property
    def leaves(self) -> List[int]:
        return list(self._nodes[0])

    def __len__(self) -> int:
        return self.size

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._nodes[0][index]

    def has(self, leaf: int) -> bool:
        return leaf in self._nodes[0]

    def index_of(self, leaf: int) -> int:
        """Position of the first occurrence, -1 when absent"""
        try:
            return self._nodes[0].index(leaf)
        except ValueError:
            return -1

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert(self, leaf: int):
        check_field_element(leaf, "leaf")
        self._nodes[0].append(leaf)
        self._ensure_levels()
        self._recompute_path(self.size - 1)

    def insert_many(self, leaves: Iterable[int]):
        leaves = list(leaves)
        for leaf in leaves:
            check_field_element(leaf, "leaf")
        if not leaves:
            return
        self._nodes[0].extend(leaves)
        self._ensure_levels()
        self._rebuild()

    def update(self, index: int, leaf: int):
        self._check_index(index)
        check_field_element(leaf, "leaf")
        self._nodes[0][index] = leaf
        self._recompute_path(index)

    # ------------------------------------------------------------------
    # Proofs
    # ------------------------------------------------------------------

    def generate_proof(self, index: int) -> MerkleProof:
        self._check_index(index)
        siblings = [
            self._node(level, (index >> level) ^ 1)
            for level in range(self.depth)
        ]
        return MerkleProof(
            root=self.root,
            leaf=self._nodes[0][index],
            index=index,
            siblings=siblings,
        )

    @staticmethod
    def verify_proof(proof: MerkleProof) -> bool:
        current = proof.leaf
        for i, sibling in enumerate(proof.siblings):
            if (proof.index >> i) & 1:
                current = hash_left_right(sibling, current)
            else:
                current = hash_left_right(current, sibling)
        return current == proof.root

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def copy(self) -> 'LeanTree':
        clone = LeanTree()
        clone._nodes = [list(row) for row in self._nodes]
        clone._zeros = list(self._zeros)
        return clone

    def export(self) -> Dict[str, List[int]]:
        return {'leaves': self.leaves}

    @classmethod
    def load(cls, data: Dict[str, Any]) -> 'LeanTree':
        """Rebuild from exported leaves; root and depth are recomputed"""
        return cls(int(leaf) for leaf in data['leaves'])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_index(self, index: int):
        if index < 0 or index >= self.size:
            raise TreeIndexError(
                f"The leaf at index '{index}' does not exist in this tree")

    def _ensure_levels(self):
        depth = self.depth
        while len(self._zeros) <= depth:
            self._zeros.append(hash_left_right(self._zeros[-1], self._zeros[-1]))
        while len(self._nodes) <= depth:
            self._nodes.append([])

    def _node(self, level: int, index: int) -> int:
        row = self._nodes[level]
        if index < len(row):
            return row[index]
        return self._zeros[level]

    def _set_node(self, level: int, index: int, value: int):
        row = self._nodes[level]
        while len(row) <= index:
            row.append(self._zeros[level])
        row[index] = value

    def _recompute_path(self, index: int):
        for level in range(self.depth):
            parent = index >> (level + 1)
            left = self._node(level, parent * 2)
            right = self._node(level, parent * 2 + 1)
            self._set_node(level + 1, parent, hash_left_right(left, right))

    def _rebuild(self):
        for level in range(self.depth):
            row = self._nodes[level]
            parents = []
            for i in range(0, len(row), 2):
                right = row[i + 1] if i + 1 < len(row) else self._zeros[level]
                parents.append(hash_left_right(row[i], right))
            self._nodes[level + 1] = parents
