"""
Round operator: owns the state, active-status and deactivate trees and walks
a round through FILLING -> PROCESSING -> TALLYING -> ENDED.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from config.config import CryptoConfig, RoundConfig
from maci_crypto.babyjub import Point
from maci_crypto.eddsa import Keypair, gen_keypair
from maci_crypto.errors import PhaseError, StructuralMismatch
from maci_crypto.field import compute_input_hash, stringify
from maci_crypto.lean_tree import LeanTree
from maci_crypto.nullifier import NullifierRegistry
from maci_crypto.poseidon import hash2
from maci_crypto.status_cipher import StatusCiphertext
from maci_crypto.tree import Tree

from .command import Message, chain_message
from .deactivate import DeactivateProcessor, DeactivateResult
from .processor import BatchProcessor, BatchResult
from .state import RoundState, state_leaf_for_sign_up
from .tally import TallyProcessor, TallyResult
from .voter import AddKeyInput

logger = logging.getLogger(__name__)


class RoundPhase(Enum):
    FILLING = "filling"
    PROCESSING = "processing"
    TALLYING = "tallying"
    ENDED = "ended"


@dataclass
class AuditEntry:
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind, 'data': stringify(self.data), 'timestamp': self.timestamp}


class Coordinator:
    """Operator of a single AMACI round"""

    def __init__(self, keypair: Optional[Keypair] = None,
                 crypto_config: Optional[CryptoConfig] = None):
        self.keypair = keypair or gen_keypair()
        self.crypto_config = crypto_config or CryptoConfig()
        self.config: Optional[RoundConfig] = None
        self.state: Optional[RoundState] = None
        self.phase = RoundPhase.FILLING
        self.logs: List[AuditEntry] = []

        self.nullifiers = NullifierRegistry()
        self.messages: List[Message] = []
        self.d_messages: List[Message] = []
        self.num_sign_ups = 0

        self.processed_d_msg_count = 0
        self.msg_end_idx = 0
        self.state_salt = 0
        self.state_commitment = 0

        self.batch_num = 0
        self.tally_salt = 0
        self.tally_commitment = 0
        self.tally_results: Optional[Tree] = None

    @property
    def pub_key(self) -> Point:
        return self.keypair.pub_key

    @property
    def coord_pub_key_hash(self) -> int:
        return hash2(list(self.keypair.pub_key))

    # ========================================================================
    # LIFECYCLE HELPERS
    # ========================================================================

    def _require_phase(self, *phases: RoundPhase):
        if self.state is None or self.config is None:
            raise PhaseError("Round not initialized. Call init_round first.")
        if self.phase not in phases:
            expected = ', '.join(p.value for p in phases)
            raise PhaseError(f"Operation requires phase {expected}, round is {self.phase.value}")

    def _audit(self, kind: str, **data):
        self.logs.append(AuditEntry(kind=kind, data=data))

    def init_round(self, config: RoundConfig):
        config.validate()
        self.config = config
        self.state = RoundState.create(
            config.state_tree_depth, config.vote_option_tree_depth, config.tree_arity)
        self.phase = RoundPhase.FILLING
        self.logs = []
        self.nullifiers = NullifierRegistry()
        self.messages = []
        self.d_messages = []
        self.num_sign_ups = 0
        self.processed_d_msg_count = 0
        self.msg_end_idx = 0
        self.state_salt = 0
        self.state_commitment = 0
        self.batch_num = 0
        self.tally_salt = 0
        self.tally_commitment = 0
        self.tally_results = None

        logger.info("Init round coordinator:")
        logger.info(f"- State tree root: {self.state.state_tree.root}")
        logger.info(f"- Coordinator public key hash: {self.coord_pub_key_hash}")
        self._audit('initRound', config=config.__dict__.copy())

    # ========================================================================
    # FILLING
    # ========================================================================

    def set_state_leaf(self, leaf_idx: int, pub_key: Sequence[int], balance: Optional[int] = None,
                       status: Optional[StatusCiphertext] = None):
        self._require_phase(RoundPhase.FILLING)
        if not 0 <= leaf_idx < self.config.max_sign_ups:
            raise StructuralMismatch(
                f"State leaf index {leaf_idx} outside 0..{self.config.max_sign_ups - 1}")
        if balance is None:
            balance = self.config.initial_voice_credits

        leaf = state_leaf_for_sign_up(
            self.config.vote_option_tree_depth, self.config.tree_arity, pub_key, balance, status)
        self.state.set_leaf(leaf_idx, leaf)
        self.num_sign_ups = max(self.num_sign_ups, leaf_idx + 1)

        logger.info(f"Set state leaf {leaf_idx}:")
        logger.info(f"- Leaf hash: {leaf.commitment()}")
        logger.info(f"- New tree root: {self.state.state_tree.root}")
        self._audit('setStateLeaf', leaf_idx=leaf_idx, pub_key=list(pub_key), balance=balance)

    def sign_up(self, pub_key: Sequence[int], balance: Optional[int] = None,
                status: Optional[StatusCiphertext] = None) -> int:
        """Place a new voter at the next free state index"""
        leaf_idx = self.num_sign_ups
        self.set_state_leaf(leaf_idx, pub_key, balance, status)
        return leaf_idx

    def push_message(self, ciphertext: Sequence[int], enc_pub_key: Sequence[int]) -> Message:
        self._require_phase(RoundPhase.FILLING)
        prev_hash = self.messages[-1].hash if self.messages else 0
        message = chain_message(ciphertext, enc_pub_key, prev_hash)
        self.messages.append(message)

        logger.info(f"Push message {len(self.messages) - 1}:")
        logger.info(f"- Old msg hash: {prev_hash}")
        logger.info(f"- New msg hash: {message.hash}")
        self._audit('publishMessage', message=list(message.ciphertext),
                    enc_pub_key=list(message.enc_pub_key))
        return message

    def push_deactivate_message(self, ciphertext: Sequence[int],
                                enc_pub_key: Sequence[int]) -> Message:
        self._require_phase(RoundPhase.FILLING)
        prev_hash = self.d_messages[-1].hash if self.d_messages else 0
        message = chain_message(ciphertext, enc_pub_key, prev_hash)
        self.d_messages.append(message)

        logger.info(f"Push deactivate message {len(self.d_messages) - 1}:")
        logger.info(f"- New msg hash: {message.hash}")
        self._audit('publishDeactivateMessage', message=list(message.ciphertext),
                    enc_pub_key=list(message.enc_pub_key))
        return message

    def process_deactivate_messages(self, input_size: int,
                                    sub_state_tree_length: int) -> DeactivateResult:
        self._require_phase(RoundPhase.FILLING)
        batch_start_idx = self.processed_d_msg_count
        size = min(input_size, len(self.d_messages) - batch_start_idx)
        if size <= 0:
            raise StructuralMismatch("No pending deactivate messages")

        processor = DeactivateProcessor(
            self.config, self.keypair,
            random_salt=self.crypto_config.deactivate_random_salt,
            status_bound=self.crypto_config.status_plaintext_bound)
        result = processor.process(
            self.state, self.d_messages[batch_start_idx:batch_start_idx + size],
            batch_start_idx, sub_state_tree_length)

        self.state = result.state
        self.processed_d_msg_count = result.batch_end_idx

        self._audit('processDeactivate', size=size,
                    new_deactivate_root=result.new_deactivate_root,
                    new_deactivate_commitment=result.new_deactivate_commitment,
                    violations={i: v.value for i, v in enumerate(result.violations)
                                if v is not None})
        return result

    @property
    def deactivate_leaves(self) -> List[List[int]]:
        """Published DeactivateLeaf records in insertion order"""
        return [list(d) for d in self.state.deactivate_leaves]

    def verify_add_key_input(self, add_key_input: AddKeyInput) -> bool:
        """Check the membership proof and input hash against the current deactivate tree"""
        self._require_phase(RoundPhase.FILLING)
        proof = add_key_input.deactivate_proof
        if proof.root != self.state.deactivate_tree.root:
            return False
        if not LeanTree.verify_proof(proof):
            return False
        if proof.leaf != add_key_input.deactivate_leaf:
            return False
        expected = compute_input_hash([
            proof.root,
            self.coord_pub_key_hash,
            add_key_input.nullifier,
            add_key_input.d1[0], add_key_input.d1[1],
            add_key_input.d2[0], add_key_input.d2[1],
        ])
        return expected == add_key_input.input_hash

    def add_new_key(self, pub_key: Sequence[int], nullifier: int, d: StatusCiphertext,
                    balance: Optional[int] = None) -> int:
        """Consume the nullifier, then sign up a fresh leaf carrying the rerandomized status"""
        self._require_phase(RoundPhase.FILLING)
        if self.num_sign_ups >= self.config.max_sign_ups:
            raise StructuralMismatch("State tree is full")
        self.nullifiers.consume(nullifier)
        leaf_idx = self.sign_up(pub_key, balance, d)
        self._audit('addNewKey', leaf_idx=leaf_idx, nullifier=nullifier, d=d.to_list())
        return leaf_idx

    def end_vote_period(self):
        self._require_phase(RoundPhase.FILLING)
        self.phase = RoundPhase.PROCESSING
        self.msg_end_idx = len(self.messages)
        self.state_salt = 0
        self.state_commitment = hash2([self.state.state_tree.root, 0])

        logger.info("Vote period ended")
        logger.info(f"- Total messages: {len(self.messages)}")
        self._audit('endVotePeriod', total_messages=len(self.messages))

        if self.msg_end_idx == 0:
            self._end_processing_period()

    # ========================================================================
    # PROCESSING
    # ========================================================================

    def process_messages(self, new_state_salt: int = 0) -> BatchResult:
        """Process the last unprocessed batch; batches run from the newest to the oldest"""
        self._require_phase(RoundPhase.PROCESSING)
        batch_size = self.config.batch_size
        batch_start_idx = ((self.msg_end_idx - 1) // batch_size) * batch_size
        batch_end_idx = min(batch_start_idx + batch_size, self.msg_end_idx)

        processor = BatchProcessor(
            self.config, self.keypair, self.num_sign_ups,
            status_bound=self.crypto_config.status_plaintext_bound)
        result = processor.process(
            self.state, self.messages[batch_start_idx:batch_end_idx],
            current_state_commitment=self.state_commitment,
            current_state_salt=self.state_salt,
            new_state_salt=new_state_salt,
            batch_start_idx=batch_start_idx)

        self.state = result.state
        self.msg_end_idx = batch_start_idx
        self.state_commitment = result.new_state_commitment
        self.state_salt = new_state_salt

        self._audit('processMessage', batch=[batch_start_idx, batch_end_idx],
                    new_state_commitment=result.new_state_commitment,
                    violations={o.position: o.violation.value for o in result.outcomes
                                if o.violation is not None})

        if batch_start_idx == 0:
            self._end_processing_period()
        return result

    def _end_processing_period(self):
        self.phase = RoundPhase.TALLYING
        self.batch_num = 0
        self.tally_salt = 0
        self.tally_commitment = 0
        self.tally_results = Tree(self.config.tree_arity, self.config.vote_option_tree_depth, 0)
        logger.info("Processing period ended")

    # ========================================================================
    # TALLYING
    # ========================================================================

    def process_tally(self, tally_salt: int = 0) -> TallyResult:
        self._require_phase(RoundPhase.TALLYING)
        processor = TallyProcessor(self.config, self.num_sign_ups)
        result = processor.process(
            self.state, self.tally_results, self.batch_num,
            state_commitment=self.state_commitment,
            state_salt=self.state_salt,
            current_tally_commitment=self.tally_commitment,
            current_tally_salt=self.tally_salt,
            new_tally_salt=tally_salt)

        self.tally_results = result.results
        self.batch_num += 1
        self.tally_commitment = result.new_tally_commitment
        self.tally_salt = tally_salt
        self._audit('processTally', batch_num=result.batch_num,
                    new_tally_commitment=result.new_tally_commitment)

        if result.batch_start_idx + processor.batch_size >= self.num_sign_ups:
            self.phase = RoundPhase.ENDED
            logger.info("Tallying finished")
        return result

    def get_tally_results(self) -> List[int]:
        if self.tally_results is None:
            raise PhaseError("Tallying has not started")
        return self.tally_results.leaves()[:self.config.max_vote_options]

    def get_logs(self) -> List[AuditEntry]:
        return list(self.logs)
