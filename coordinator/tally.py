"""
Tally processing over batches of state leaves.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from config.config import RoundConfig
from maci_crypto.errors import StructuralMismatch
from maci_crypto.field import compute_input_hash
from maci_crypto.poseidon import hash2
from maci_crypto.tree import Tree

from .state import RoundState

logger = logging.getLogger(__name__)

# Results accumulate v * (v + MAX_VOTES), i.e. MAX_VOTES * sum(v) + sum(v^2)
MAX_VOTES = 10 ** 24


@dataclass
class TallyResult:
    results: Tree
    batch_num: int
    batch_start_idx: int
    new_tally_commitment: int
    new_tally_salt: int
    input_hash: int
    witness: Dict[str, Any] = field(default_factory=dict)


class TallyProcessor:
    """Accumulates vote-option weights of one state batch into the results tree"""

    def __init__(self, config: RoundConfig, num_sign_ups: int):
        self.config = config
        self.num_sign_ups = num_sign_ups

    @property
    def batch_size(self) -> int:
        return self.config.tally_batch_size

    def new_results_tree(self) -> Tree:
        return Tree(self.config.tree_arity, self.config.vote_option_tree_depth, 0)

    def process(self, state: RoundState, results: Tree, batch_num: int,
                state_commitment: int, state_salt: int, current_tally_commitment: int,
                current_tally_salt: int, new_tally_salt: int) -> TallyResult:
        """Fold one batch into a copy of results"""
        batch_size = self.batch_size
        batch_start_idx = batch_num * batch_size
        if batch_start_idx >= state.state_tree.leaves_count:
            logger.error(f"Tally batch {batch_num} starts beyond the state tree")
            raise StructuralMismatch(f"Tally batch {batch_num} starts beyond the state tree")
        if results.leaves_count != self.config.vote_option_capacity:
            logger.error("Results tree does not match the vote option tree capacity")
            raise StructuralMismatch("Results tree does not match the vote option tree capacity")

        logger.info(f"Process tally [{batch_start_idx}, {batch_start_idx + batch_size})")

        state_path_elements = state.state_tree.path_element_of(
            batch_start_idx)[self.config.int_state_tree_depth:]

        new_results = results.copy()
        current_results = results.leaves()
        state_leaf = []
        votes = []

        for i in range(batch_size):
            s = state.leaf(batch_start_idx + i)
            state_leaf.append(s.to_list())
            votes.append(s.vo_tree.leaves())

            if not s.voted:
                continue

            for j in range(s.vo_tree.leaves_count):
                v = s.vo_tree.leaf(j)
                if v:
                    new_results.update_leaf(j, new_results.leaf(j) + v * (v + MAX_VOTES))

        new_tally_commitment = hash2([new_results.root, new_tally_salt])
        packed_vals = batch_num + (self.num_sign_ups << 32)

        input_hash = compute_input_hash([
            packed_vals,
            state_commitment,
            current_tally_commitment,
            new_tally_commitment,
        ])

        witness = {
            'stateRoot': state.state_tree.root,
            'stateSalt': state_salt,
            'packedVals': packed_vals,
            'stateCommitment': state_commitment,
            'currentTallyCommitment': current_tally_commitment,
            'newTallyCommitment': new_tally_commitment,
            'inputHash': input_hash,
            'stateLeaf': state_leaf,
            'statePathElements': state_path_elements,
            'votes': votes,
            'currentResults': current_results,
            'currentResultsRootSalt': current_tally_salt,
            'newResultsRootSalt': new_tally_salt,
        }

        logger.info(f"New tally commitment: {new_tally_commitment}")

        return TallyResult(
            results=new_results,
            batch_num=batch_num,
            batch_start_idx=batch_start_idx,
            new_tally_commitment=new_tally_commitment,
            new_tally_salt=new_tally_salt,
            input_hash=input_hash,
            witness=witness,
        )


def decode_tally_result(value: int) -> Dict[str, int]:
    """Split an accumulated result into total weight and sum of squares"""
    return {'votes': value // MAX_VOTES, 'squares': value % MAX_VOTES}
