"""
Deactivation processing.

Each deactivate message either flips the voter's active-status leaf and
appends an even-status DeactivateLeaf, or, when it fails its checks but is
not padding, appends an odd-status leaf so that a later add-new-key built
on it yields a deactivated key.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config.config import RoundConfig
from maci_crypto.eddsa import Keypair, verify_signature
from maci_crypto.errors import DecryptionError, StructuralMismatch
from maci_crypto.field import compute_input_hash
from maci_crypto.poseidon import hash2, hash5
from maci_crypto.status_cipher import (DEACTIVATE_RANDOM_SALT, STATUS_PLAINTEXT_BOUND,
                                       decrypt, encrypt_odevity, gen_static_random_key)

from .command import Command, ConstraintViolation, Message, empty_message, msg_to_command
from .state import RoundState

logger = logging.getLogger(__name__)


@dataclass
class DeactivateResult:
    state: RoundState
    batch_start_idx: int
    batch_end_idx: int
    new_deactivate_root: int
    new_deactivate_commitment: int
    input_hash: int
    new_deactivate: List[List[int]] = field(default_factory=list)
    violations: List[Optional[ConstraintViolation]] = field(default_factory=list)
    witness: Dict[str, Any] = field(default_factory=dict)


def deactivate_leaf_hash(d_leaf: Sequence[int]) -> int:
    return hash5(list(d_leaf))


class DeactivateProcessor:
    """Applies a batch of deactivate messages in arrival order"""

    def __init__(self, config: RoundConfig, coordinator: Keypair,
                 random_salt: int = DEACTIVATE_RANDOM_SALT,
                 status_bound: int = STATUS_PLAINTEXT_BOUND):
        self.config = config
        self.coordinator = coordinator
        self.random_salt = random_salt
        self.status_bound = status_bound

    def check_command(self, state: RoundState, cmd: Optional[Command],
                      sub_state_tree_length: int) -> Optional[ConstraintViolation]:
        if cmd is None:
            return ConstraintViolation.EMPTY_COMMAND
        if cmd.state_idx >= sub_state_tree_length:
            return ConstraintViolation.STATE_INDEX_OVERFLOW

        s = state.leaf(cmd.state_idx)
        try:
            status = decrypt(self.coordinator.formatted_priv_key, s.status, self.status_bound)
        except DecryptionError:
            return ConstraintViolation.STATUS_UNREADABLE
        if status % 2 == 1:
            return ConstraintViolation.DEACTIVATED

        if not verify_signature(cmd.msg_hash, cmd.signature, s.pub_key):
            return ConstraintViolation.INVALID_SIGNATURE
        return None

    def process(self, state: RoundState, messages: Sequence[Message], batch_start_idx: int,
                sub_state_tree_length: int) -> DeactivateResult:
        batch_size = self.config.batch_size
        if not messages:
            logger.error("Deactivate batch contains no messages")
            raise StructuralMismatch("Deactivate batch contains no messages")
        if len(messages) > batch_size:
            logger.error(f"Deactivate batch of {len(messages)} exceeds batch size {batch_size}")
            raise StructuralMismatch(
                f"Deactivate batch of {len(messages)} exceeds batch size {batch_size}")
        if not 1 <= sub_state_tree_length <= self.config.max_sign_ups:
            logger.error(f"Sub state tree length {sub_state_tree_length} out of range")
            raise StructuralMismatch(
                f"Sub state tree length {sub_state_tree_length} outside "
                f"1..{self.config.max_sign_ups}")

        batch_end_idx = batch_start_idx + len(messages)
        padded = list(messages) + [empty_message() for _ in range(batch_size - len(messages))]
        commands = [msg_to_command(msg, self.coordinator) for msg in padded]

        working = state.copy()
        sub_state_tree = working.state_tree.sub_tree(sub_state_tree_length)
        coord_pub = self.coordinator.pub_key

        current_active_state_root = working.active_state_tree.root
        current_deactivate_root = working.deactivate_tree.root
        current_deactivate_commitment = working.deactivate_commitment()
        deactivate_index0 = working.deactivate_tree.size

        new_active_state = [batch_start_idx + i + 1 for i in range(batch_size)]
        current_active_state: List[int] = []
        current_state_leaves: List[List[int]] = []
        current_state_leaves_path_elements: List[Any] = []
        active_state_leaves_path_elements: List[List[int]] = []
        deactivate_leaves_path_elements: List[List[int]] = []
        c1: List[List[int]] = []
        c2: List[List[int]] = []
        new_deactivate: List[List[int]] = []
        violations: List[Optional[ConstraintViolation]] = []

        logger.info(f"Process deactivate messages [{batch_start_idx}, {batch_end_idx})")

        for i in range(batch_size):
            violation = self.check_command(working, commands[i], sub_state_tree_length)
            state_idx = working.redirect_index if violation else commands[i].state_idx

            s = working.leaf(state_idx)
            current_state_leaves.append(s.to_list())
            current_state_leaves_path_elements.append(sub_state_tree.path_element_of(state_idx))
            current_active_state.append(working.active_leaf(state_idx))
            active_state_leaves_path_elements.append(working.active_leaf_path(state_idx))

            shared_key = self.coordinator.ecdh(s.pub_key)
            status = encrypt_odevity(
                violation is not None,
                coord_pub,
                gen_static_random_key(self.coordinator.priv_key, self.random_salt,
                                      new_active_state[i]),
                self.status_bound,
            )
            d_leaf = status.to_list() + [hash2(list(shared_key))]
            c1.append(list(status.c1))
            c2.append(list(status.c2))

            if violation is None:
                working.active_state_tree.update(state_idx, new_active_state[i])
            if violation is None or not padded[i].is_empty:
                working.deactivate_tree.insert(deactivate_leaf_hash(d_leaf))
                working.deactivate_leaves.append(d_leaf)
                new_deactivate.append(d_leaf)
                # path of the appended leaf against the root right after the insert
                deactivate_leaves_path_elements.append(working.deactivate_tree.generate_proof(
                    working.deactivate_tree.size - 1).siblings)
            else:
                deactivate_leaves_path_elements.append([])

            violations.append(violation)
            logger.info(f"- Message <{i}> {violation.value if violation else 'ok'}")

        new_deactivate_root = working.deactivate_tree.root
        new_deactivate_commitment = working.deactivate_commitment()
        coord_pub_key_hash = hash2(list(coord_pub))

        batch_start_hash = messages[0].prev_hash
        batch_end_hash = messages[-1].hash
        input_hash = compute_input_hash([
            new_deactivate_root,
            coord_pub_key_hash,
            batch_start_hash,
            batch_end_hash,
            current_deactivate_commitment,
            new_deactivate_commitment,
            sub_state_tree.root,
        ])

        witness = {
            'inputHash': input_hash,
            'currentActiveStateRoot': current_active_state_root,
            'currentDeactivateRoot': current_deactivate_root,
            'batchStartHash': batch_start_hash,
            'batchEndHash': batch_end_hash,
            'msgs': [list(m.ciphertext) for m in padded],
            'coordPrivKey': self.coordinator.formatted_priv_key,
            'coordPubKey': list(coord_pub),
            'encPubKeys': [list(m.enc_pub_key) for m in padded],
            'c1': c1,
            'c2': c2,
            'currentActiveState': current_active_state,
            'newActiveState': new_active_state,
            'activeStateLeavesPathElements': active_state_leaves_path_elements,
            'deactivateLeavesPathElements': deactivate_leaves_path_elements,
            'deactivateIndex0': deactivate_index0,
            'currentStateRoot': sub_state_tree.root,
            'currentStateLeaves': current_state_leaves,
            'currentStateLeavesPathElements': current_state_leaves_path_elements,
            'currentDeactivateCommitment': current_deactivate_commitment,
            'newDeactivateRoot': new_deactivate_root,
            'newDeactivateCommitment': new_deactivate_commitment,
        }

        logger.info(f"New deactivate root: {new_deactivate_root}")

        return DeactivateResult(
            state=working,
            batch_start_idx=batch_start_idx,
            batch_end_idx=batch_end_idx,
            new_deactivate_root=new_deactivate_root,
            new_deactivate_commitment=new_deactivate_commitment,
            input_hash=input_hash,
            new_deactivate=new_deactivate,
            violations=violations,
            witness=witness,
        )
