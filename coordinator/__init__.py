"""
AMACI round coordinator
Message processing, deactivation, key rotation and tally over the maci_crypto core
"""

from .command import (
    Command,
    ConstraintViolation,
    Message,
    chain_message,
    empty_message,
    hash_message,
    msg_to_command,
    pack_element,
    unpack_element,
)
from .coordinator import AuditEntry, Coordinator, RoundPhase
from .deactivate import DeactivateProcessor, DeactivateResult
from .processor import BatchProcessor, BatchResult, CommandOutcome
from .state import RoundState, StateLeaf, empty_state_leaf_hash
from .tally import MAX_VOTES, TallyProcessor, TallyResult, decode_tally_result
from .voter import (
    AddKeyInput,
    VotePayload,
    batch_gen_message,
    build_deactivate_payload,
    gen_add_key_input,
    gen_message,
)

__version__ = "1.0.0"
__author__ = "AMACI Engine Team"

__all__ = [
    # Commands and messages
    'Command',
    'ConstraintViolation',
    'Message',
    'chain_message',
    'empty_message',
    'hash_message',
    'msg_to_command',
    'pack_element',
    'unpack_element',

    # Round state
    'RoundState',
    'StateLeaf',
    'empty_state_leaf_hash',

    # Processing
    'BatchProcessor',
    'BatchResult',
    'CommandOutcome',
    'DeactivateProcessor',
    'DeactivateResult',
    'TallyProcessor',
    'TallyResult',
    'MAX_VOTES',
    'decode_tally_result',

    # Coordinator
    'Coordinator',
    'RoundPhase',
    'AuditEntry',

    # Voter
    'AddKeyInput',
    'VotePayload',
    'gen_message',
    'batch_gen_message',
    'build_deactivate_payload',
    'gen_add_key_input',
]
