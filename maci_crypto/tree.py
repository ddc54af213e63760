"""
Fixed-capacity k-ary Poseidon Merkle tree stored as a flat node array.

Backs the state tree, the per-voter vote-option trees and the tally
results tree. Node 0 is the root; the children of node i sit at
i * degree + 1 .. i * degree + degree.
"""

import logging
from typing import List, Sequence

from .errors import RangeError, TreeIndexError
from .poseidon import poseidon

logger = logging.getLogger(__name__)


class Tree:
    """Quinary (by default) Merkle tree of fixed depth"""

    def __init__(self, degree: int, depth: int, zero: int):
        if degree < 2 or degree > 12:
            raise RangeError(f"Tree degree must be within 2..12, got {degree}")
        if depth < 0:
            raise RangeError(f"Tree depth must be non-negative, got {depth}")

        self.degree = degree
        self.depth = depth
        self.height = depth + 1

        self.leaves_count = degree ** depth
        self.leaves_idx_0 = (degree ** depth - 1) // (degree - 1)
        self.nodes_count = (degree ** (depth + 1) - 1) // (degree - 1)

        self.zeros = Tree.compute_zero_hashes(degree, depth, zero)
        self.nodes = self._empty_nodes()

    @property
    def root(self) -> int:
        return self.nodes[0]

    def _empty_nodes(self) -> List[int]:
        nodes = [0] * self.nodes_count
        for d in range(self.depth, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            zero = self.zeros[self.depth - d]
            for i in range(self.degree ** d):
                nodes[idx0 + i] = zero
        return nodes

    def _check_leaf_index(self, leaf_idx: int):
        if leaf_idx < 0 or leaf_idx >= self.leaves_count:
            raise TreeIndexError(
                f"Leaf index {leaf_idx} outside capacity {self.leaves_count}")

    def copy(self) -> 'Tree':
        clone = Tree.__new__(Tree)
        clone.__dict__.update(self.__dict__)
        clone.zeros = list(self.zeros)
        clone.nodes = list(self.nodes)
        return clone

    def init_leaves(self, leaves: Sequence[int]):
        """Replace the leading leaves and rebuild every internal node"""
        if len(leaves) > self.leaves_count:
            raise TreeIndexError(
                f"{len(leaves)} leaves overflow capacity {self.leaves_count}")
        for i, leaf in enumerate(leaves):
            self.nodes[self.leaves_idx_0 + i] = int(leaf)

        for d in range(self.depth - 1, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            for i in range(self.degree ** d):
                start = (idx0 + i) * self.degree + 1
                self.nodes[idx0 + i] = poseidon(self.nodes[start:start + self.degree])

    def leaf(self, leaf_idx: int) -> int:
        self._check_leaf_index(leaf_idx)
        return self.nodes[self.leaves_idx_0 + leaf_idx]

    def leaves(self) -> List[int]:
        return self.nodes[self.leaves_idx_0:]

    def update_leaf(self, leaf_idx: int, leaf: int):
        self._check_leaf_index(leaf_idx)
        node_idx = self.leaves_idx_0 + leaf_idx
        self.nodes[node_idx] = leaf
        self._update(node_idx)

    def path_idx_of(self, leaf_idx: int) -> List[int]:
        """Position of the node among its siblings, leaf level first"""
        self._check_leaf_index(leaf_idx)
        idx = self.leaves_idx_0 + leaf_idx
        path_idx = []
        for _ in range(self.depth):
            parent_idx = (idx - 1) // self.degree
            children_idx_0 = parent_idx * self.degree + 1
            path_idx.append(idx - children_idx_0)
            idx = parent_idx
        return path_idx

    def path_element_of(self, leaf_idx: int) -> List[List[int]]:
        """Siblings at each level, excluding the node on the path"""
        self._check_leaf_index(leaf_idx)
        idx = self.leaves_idx_0 + leaf_idx
        path_element = []
        for _ in range(self.depth):
            parent_idx = (idx - 1) // self.degree
            children_idx_0 = parent_idx * self.degree + 1
            path_element.append([
                self.nodes[i]
                for i in range(children_idx_0, children_idx_0 + self.degree)
                if i != idx
            ])
            idx = parent_idx
        return path_element

    def sub_tree(self, length: int) -> 'Tree':
        """Copy keeping only the first length leaves"""
        if length < 0 or length > self.leaves_count:
            raise TreeIndexError(
                f"Sub tree length {length} outside capacity {self.leaves_count}")

        sub = Tree(self.degree, self.depth, self.zeros[0])
        if length == 0:
            return sub

        nodes = list(self.nodes)
        tail = length
        for d in range(self.depth, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            zero = self.zeros[self.depth - d]
            for i in range(tail, self.degree ** d):
                nodes[idx0 + i] = zero
            tail = -(-tail // self.degree)

        sub.nodes = nodes
        sub._update(self.leaves_idx_0 + length - 1)
        return sub

    def _update(self, node_idx: int):
        idx = node_idx
        while idx > 0:
            parent_idx = (idx - 1) // self.degree
            children_idx_0 = parent_idx * self.degree + 1
            self.nodes[parent_idx] = poseidon(
                self.nodes[children_idx_0:children_idx_0 + self.degree])
            idx = parent_idx

    @staticmethod
    def compute_zero_hashes(degree: int, max_depth: int, zero: int) -> List[int]:
        """zero_hashes[i] is the root of an empty subtree of depth i"""
        zero_hashes = [zero]
        for _ in range(max_depth):
            zero_hashes.append(poseidon([zero_hashes[-1]] * degree))
        return zero_hashes

    @staticmethod
    def extend_tree_root(small_root: int, from_depth: int, to_depth: int,
                         zero_hashes: Sequence[int], degree: int = 5) -> int:
        """Root of a deeper tree whose only non-empty subtree is the leftmost one"""
        if to_depth <= from_depth:
            raise RangeError("to_depth must be greater than from_depth")
        if len(zero_hashes) <= to_depth:
            raise RangeError("zero_hashes is too short for the target depth")

        current_root = small_root
        for level in range(from_depth, to_depth):
            current_root = poseidon([current_root] + [zero_hashes[level]] * (degree - 1))
        return current_root
