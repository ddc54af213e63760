"""
ProcessMessages state transition.

A batch of encrypted messages is replayed newest-first into the state tree.
Every command resolves to an outcome that is either valid or carries a
ConstraintViolation; both kinds go through the same fold, invalid ones
against the reserved redirect slot with the leaf unchanged, so the witness
has the same shape whatever the validity.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config.config import RoundConfig
from maci_crypto.eddsa import Keypair, verify_signature
from maci_crypto.errors import DecryptionError, StructuralMismatch
from maci_crypto.field import compute_input_hash
from maci_crypto.poseidon import hash2
from maci_crypto.status_cipher import STATUS_PLAINTEXT_BOUND, decrypt

from .command import Command, ConstraintViolation, Message, empty_message, msg_to_command
from .state import RoundState, StateLeaf

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    """Valid (violation is None) or Invalid result for one batch slot"""
    position: int
    state_idx: int
    vo_idx: int
    command: Optional[Command] = None
    violation: Optional[ConstraintViolation] = None

    @property
    def is_valid(self) -> bool:
        return self.violation is None


@dataclass
class BatchResult:
    state: RoundState
    batch_start_idx: int
    batch_end_idx: int
    new_state_root: int
    new_state_commitment: int
    new_state_salt: int
    input_hash: int
    outcomes: List[CommandOutcome] = field(default_factory=list)
    witness: Dict[str, Any] = field(default_factory=dict)

    @property
    def valid_count(self) -> int:
        return sum(1 for o in self.outcomes if o.is_valid and o.command is not None)


def pack_process_vals(max_vote_options: int, num_sign_ups: int, is_quadratic_cost: bool) -> int:
    return max_vote_options + (num_sign_ups << 32) + ((1 if is_quadratic_cost else 0) << 64)


class BatchProcessor:
    """Validates and folds one message batch into working copies of the round state"""

    def __init__(self, config: RoundConfig, coordinator: Keypair, num_sign_ups: int,
                 status_bound: int = STATUS_PLAINTEXT_BOUND):
        self.config = config
        self.coordinator = coordinator
        self.num_sign_ups = num_sign_ups
        self.status_bound = status_bound

    @property
    def coord_pub_key_hash(self) -> int:
        return hash2(list(self.coordinator.pub_key))

    # ========================================================================
    # STRUCTURAL CHECKS
    # ========================================================================

    def _reject(self, reason: str):
        logger.error(f"Batch rejected: {reason}")
        raise StructuralMismatch(reason)

    def check_structure(self, state: RoundState, messages: Sequence[Message]):
        """Fatal configuration problems, raised before any mutation"""
        cfg = self.config
        if not messages:
            self._reject("Batch contains no messages")
        if len(messages) > cfg.batch_size:
            self._reject(f"Batch of {len(messages)} messages exceeds batch size {cfg.batch_size}")
        if state.state_tree.depth != cfg.state_tree_depth:
            self._reject(
                f"State tree depth {state.state_tree.depth} does not match "
                f"configured depth {cfg.state_tree_depth}")
        if state.state_tree.degree != cfg.tree_arity:
            self._reject(
                f"State tree arity {state.state_tree.degree} does not match {cfg.tree_arity}")
        if state.vote_option_tree_depth != cfg.vote_option_tree_depth:
            self._reject(
                f"Vote option tree depth {state.vote_option_tree_depth} does not match "
                f"configured depth {cfg.vote_option_tree_depth}")
        if self.num_sign_ups > cfg.max_sign_ups:
            self._reject(
                f"{self.num_sign_ups} sign ups exceed state capacity {cfg.max_sign_ups}")
        if cfg.max_vote_options > cfg.vote_option_capacity:
            self._reject(
                f"max_vote_options {cfg.max_vote_options} exceeds vote option capacity "
                f"{cfg.vote_option_capacity}")
        for prev, msg in zip(messages, messages[1:]):
            if msg.prev_hash != prev.hash:
                self._reject("Message chain is broken inside the batch")

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def check_command(self, state: RoundState, cmd: Optional[Command]) -> Optional[ConstraintViolation]:
        if cmd is None:
            return ConstraintViolation.EMPTY_COMMAND
        if cmd.state_idx >= self.num_sign_ups:
            return ConstraintViolation.STATE_INDEX_OVERFLOW
        if cmd.vo_idx >= self.config.max_vote_options:
            return ConstraintViolation.VOTE_OPTION_OVERFLOW

        if state.active_leaf(cmd.state_idx) != 0:
            return ConstraintViolation.INACTIVE

        s = state.leaf(cmd.state_idx)
        try:
            status = decrypt(self.coordinator.formatted_priv_key, s.status, self.status_bound)
        except DecryptionError:
            return ConstraintViolation.STATUS_UNREADABLE
        if status % 2 == 1:
            return ConstraintViolation.DEACTIVATED

        if s.nonce + 1 != cmd.nonce:
            return ConstraintViolation.NONCE_MISMATCH
        if not verify_signature(cmd.msg_hash, cmd.signature, s.pub_key):
            return ConstraintViolation.INVALID_SIGNATURE

        curr_votes = s.vo_tree.leaf(cmd.vo_idx)
        if self.config.is_quadratic_cost:
            if s.balance + curr_votes * curr_votes < cmd.new_votes * cmd.new_votes:
                return ConstraintViolation.INSUFFICIENT_BALANCE
        elif s.balance + curr_votes < cmd.new_votes:
            return ConstraintViolation.INSUFFICIENT_BALANCE
        return None

    def resolve(self, state: RoundState, position: int, cmd: Optional[Command]) -> CommandOutcome:
        violation = self.check_command(state, cmd)
        if violation is None:
            return CommandOutcome(position, cmd.state_idx, cmd.vo_idx, cmd)
        return CommandOutcome(position, state.redirect_index, 0, cmd, violation)

    # ========================================================================
    # FOLD
    # ========================================================================

    def _apply(self, leaf: StateLeaf, outcome: CommandOutcome) -> StateLeaf:
        cmd = outcome.command
        updated = leaf.copy()
        curr_votes = leaf.vo_tree.leaf(outcome.vo_idx)

        updated.pub_key = (cmd.new_pub_key[0], cmd.new_pub_key[1])
        if self.config.is_quadratic_cost:
            updated.balance = leaf.balance + curr_votes * curr_votes - cmd.new_votes * cmd.new_votes
        else:
            updated.balance = leaf.balance + curr_votes - cmd.new_votes
        updated.vo_tree.update_leaf(outcome.vo_idx, cmd.new_votes)
        updated.nonce = cmd.nonce
        updated.voted = True
        return updated

    def fold(self, state: RoundState, outcome: CommandOutcome, leaf: StateLeaf):
        """Write the next leaf for the outcome's slot; invalid outcomes rewrite the unchanged leaf"""
        if outcome.is_valid:
            next_leaf = self._apply(leaf, outcome)
            state.state_leaves[outcome.state_idx] = next_leaf
        else:
            next_leaf = leaf
        state.state_tree.update_leaf(outcome.state_idx, next_leaf.commitment())

    # ========================================================================
    # BATCH
    # ========================================================================

    def process(self, state: RoundState, messages: Sequence[Message],
                current_state_commitment: int, current_state_salt: int,
                new_state_salt: int, batch_start_idx: int = 0) -> BatchResult:
        """Process one batch on a working copy of state; the input state is left untouched"""
        self.check_structure(state, messages)

        batch_size = self.config.batch_size
        batch_end_idx = batch_start_idx + len(messages)
        batch_start_hash = messages[0].prev_hash
        batch_end_hash = messages[-1].hash

        padded = list(messages) + [empty_message() for _ in range(batch_size - len(messages))]
        commands = [msg_to_command(msg, self.coordinator) for msg in padded]

        working = state.copy()
        current_state_root = working.state_tree.root
        active_state_root = working.active_state_tree.root
        deactivate_root = working.deactivate_tree.root

        current_state_leaves: List[Any] = [None] * batch_size
        current_state_leaves_path_elements: List[Any] = [None] * batch_size
        current_vote_weights: List[Any] = [None] * batch_size
        current_vote_weights_path_elements: List[Any] = [None] * batch_size
        active_state_leaves: List[Any] = [None] * batch_size
        active_state_leaves_path_elements: List[Any] = [None] * batch_size
        outcomes: List[Optional[CommandOutcome]] = [None] * batch_size

        logger.info(f"Process messages [{batch_start_idx}, {batch_end_idx})")

        for i in range(batch_size - 1, -1, -1):
            outcome = self.resolve(working, i, commands[i])
            leaf = working.leaf(outcome.state_idx)

            current_state_leaves[i] = leaf.to_list()
            current_state_leaves_path_elements[i] = working.state_tree.path_element_of(outcome.state_idx)
            current_vote_weights[i] = leaf.vo_tree.leaf(outcome.vo_idx)
            current_vote_weights_path_elements[i] = leaf.vo_tree.path_element_of(outcome.vo_idx)
            active_state_leaves[i] = working.active_leaf(outcome.state_idx)
            active_state_leaves_path_elements[i] = working.active_leaf_path(outcome.state_idx)

            self.fold(working, outcome, leaf)
            outcomes[i] = outcome

            reason = outcome.violation.value if outcome.violation else 'ok'
            logger.info(f"- Message <{i}> {reason}")

        new_state_root = working.state_tree.root
        new_state_commitment = hash2([new_state_root, new_state_salt])

        packed_vals = pack_process_vals(
            self.config.max_vote_options, self.num_sign_ups, self.config.is_quadratic_cost)
        deactivate_commitment = hash2([active_state_root, deactivate_root])

        hash_inputs = [
            packed_vals,
            self.coord_pub_key_hash,
            batch_start_hash,
            batch_end_hash,
            current_state_commitment,
            new_state_commitment,
        ]
        if self.config.is_amaci:
            hash_inputs.append(deactivate_commitment)
        input_hash = compute_input_hash(hash_inputs)

        witness = {
            'inputHash': input_hash,
            'packedVals': packed_vals,
            'batchStartHash': batch_start_hash,
            'batchEndHash': batch_end_hash,
            'msgs': [list(m.ciphertext) for m in padded],
            'coordPrivKey': self.coordinator.formatted_priv_key,
            'coordPubKey': list(self.coordinator.pub_key),
            'encPubKeys': [list(m.enc_pub_key) for m in padded],
            'currentStateRoot': current_state_root,
            'currentStateLeaves': current_state_leaves,
            'currentStateLeavesPathElements': current_state_leaves_path_elements,
            'currentStateCommitment': current_state_commitment,
            'currentStateSalt': current_state_salt,
            'newStateCommitment': new_state_commitment,
            'newStateSalt': new_state_salt,
            'currentVoteWeights': current_vote_weights,
            'currentVoteWeightsPathElements': current_vote_weights_path_elements,
        }
        if self.config.is_amaci:
            witness.update({
                'activeStateRoot': active_state_root,
                'deactivateRoot': deactivate_root,
                'deactivateCommitment': deactivate_commitment,
                'activeStateLeaves': active_state_leaves,
                'activeStateLeavesPathElements': active_state_leaves_path_elements,
            })

        logger.info(f"New state root: {new_state_root}")

        return BatchResult(
            state=working,
            batch_start_idx=batch_start_idx,
            batch_end_idx=batch_end_idx,
            new_state_root=new_state_root,
            new_state_commitment=new_state_commitment,
            new_state_salt=new_state_salt,
            input_hash=input_hash,
            outcomes=outcomes,
            witness=witness,
        )
