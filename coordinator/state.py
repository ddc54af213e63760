"""
Voter state leaves and the tree bundle a round operates on.

A state leaf commits to two independent sub-hashes: the ballot part
(key, balance, vote root, nonce) and the status part (d1, d2). Ballot
updates never touch d1/d2 and status updates never touch the ballot.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from maci_crypto.babyjub import Point
from maci_crypto.lean_tree import LeanTree
from maci_crypto.poseidon import hash2, hash5
from maci_crypto.status_cipher import StatusCiphertext
from maci_crypto.tree import Tree

logger = logging.getLogger(__name__)


def empty_state_leaf_hash() -> int:
    """Zero value of the state tree"""
    zero_hash5 = hash5([0, 0, 0, 0, 0])
    return hash2([zero_hash5, zero_hash5])


@dataclass
class StateLeaf:
    vo_tree: Tree
    pub_key: Point = (0, 0)
    balance: int = 0
    nonce: int = 0
    voted: bool = False
    d1: Point = (0, 0)
    d2: Point = (0, 0)

    @classmethod
    def empty(cls, vote_option_tree_depth: int, arity: int = 5) -> 'StateLeaf':
        return cls(vo_tree=Tree(arity, vote_option_tree_depth, 0))

    @property
    def vote_root(self) -> int:
        return self.vo_tree.root if self.voted else 0

    @property
    def status(self) -> StatusCiphertext:
        return StatusCiphertext(c1=self.d1, c2=self.d2)

    def ballot_hash(self) -> int:
        return hash5([self.pub_key[0], self.pub_key[1], self.balance, self.vote_root, self.nonce])

    def status_hash(self) -> int:
        return hash5([self.d1[0], self.d1[1], self.d2[0], self.d2[1], 0])

    def commitment(self) -> int:
        return hash2([self.ballot_hash(), self.status_hash()])

    def to_list(self) -> List[int]:
        """Witness layout [pub.x, pub.y, balance, vote_root, nonce, d1.x, d1.y, d2.x, d2.y, 0]"""
        return [
            self.pub_key[0], self.pub_key[1], self.balance, self.vote_root, self.nonce,
            self.d1[0], self.d1[1], self.d2[0], self.d2[1], 0,
        ]

    def copy(self) -> 'StateLeaf':
        return StateLeaf(
            vo_tree=self.vo_tree.copy(),
            pub_key=self.pub_key,
            balance=self.balance,
            nonce=self.nonce,
            voted=self.voted,
            d1=self.d1,
            d2=self.d2,
        )


@dataclass
class RoundState:
    """Trees and leaves shared by the processing, deactivation and tally steps"""
    state_tree: Tree
    vote_option_tree_depth: int
    arity: int = 5
    state_leaves: Dict[int, StateLeaf] = field(default_factory=dict)
    active_state_tree: LeanTree = field(default_factory=LeanTree)
    deactivate_tree: LeanTree = field(default_factory=LeanTree)
    deactivate_leaves: List[List[int]] = field(default_factory=list)

    @classmethod
    def create(cls, state_tree_depth: int, vote_option_tree_depth: int,
               arity: int = 5) -> 'RoundState':
        """Empty round; the active-status tree holds one zero leaf per state slot.

        Its root only moves when a deactivation writes a slot, so sign-ups
        leave the deactivate commitment unchanged.
        """
        state_tree = Tree(arity, state_tree_depth, empty_state_leaf_hash())
        return cls(
            state_tree=state_tree,
            vote_option_tree_depth=vote_option_tree_depth,
            arity=arity,
            active_state_tree=LeanTree([0] * state_tree.leaves_count),
        )

    @property
    def redirect_index(self) -> int:
        """State slot that absorbs invalid commands"""
        return self.state_tree.leaves_count - 1

    def leaf(self, index: int) -> StateLeaf:
        """Stored leaf, or a fresh empty leaf for unused slots"""
        stored = self.state_leaves.get(index)
        if stored is not None:
            return stored
        return StateLeaf.empty(self.vote_option_tree_depth, self.arity)

    def active_leaf(self, index: int) -> int:
        if index < self.active_state_tree.size:
            return self.active_state_tree.leaf(index)
        return 0

    def active_leaf_path(self, index: int) -> List[int]:
        """Sibling path of an active-status leaf against the current root"""
        return self.active_state_tree.generate_proof(index).siblings

    def set_leaf(self, index: int, leaf: StateLeaf):
        self.state_leaves[index] = leaf
        self.state_tree.update_leaf(index, leaf.commitment())

    def deactivate_commitment(self) -> int:
        return hash2([self.active_state_tree.root, self.deactivate_tree.root])

    def copy(self) -> 'RoundState':
        return RoundState(
            state_tree=self.state_tree.copy(),
            vote_option_tree_depth=self.vote_option_tree_depth,
            arity=self.arity,
            state_leaves={k: v.copy() for k, v in self.state_leaves.items()},
            active_state_tree=self.active_state_tree.copy(),
            deactivate_tree=self.deactivate_tree.copy(),
            deactivate_leaves=copy.deepcopy(self.deactivate_leaves),
        )


def state_leaf_for_sign_up(vote_option_tree_depth: int, arity: int, pub_key: Point,
                           balance: int, status: Optional[StatusCiphertext] = None) -> StateLeaf:
    leaf = StateLeaf.empty(vote_option_tree_depth, arity)
    leaf.pub_key = (pub_key[0], pub_key[1])
    leaf.balance = balance
    if status is not None:
        leaf.d1 = status.c1
        leaf.d2 = status.c2
    return leaf
