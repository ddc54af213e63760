"""
Voter commands: bit packing, plaintext layout, encrypted messages and the
message hash chain.
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from maci_crypto.babyjub import Point, in_curve
from maci_crypto.eddsa import Keypair, Signature
from maci_crypto.errors import CryptographicFailure, DecryptionError, RangeError
from maci_crypto.field import SNARK_FIELD_SIZE, UINT32, UINT96
from maci_crypto.key_exchange import poseidon_decrypt
from maci_crypto.poseidon import hash2, hash3, hash12

logger = logging.getLogger(__name__)

PLAINTEXT_LENGTH = 6
CIPHERTEXT_LENGTH = 7

SALT_BITS = 56


class ConstraintViolation(Enum):
    """Reason a command was folded as a no-op"""
    EMPTY_COMMAND = "empty command"
    STATE_INDEX_OVERFLOW = "state leaf index overflow"
    VOTE_OPTION_OVERFLOW = "vote option index overflow"
    INACTIVE = "inactive"
    DEACTIVATED = "deactivated"
    STATUS_UNREADABLE = "status decryption error"
    NONCE_MISMATCH = "nonce error"
    INVALID_SIGNATURE = "signature error"
    INSUFFICIENT_BALANCE = "insufficient balance"


def gen_command_salt() -> int:
    return secrets.randbits(SALT_BITS)


def pack_element(nonce: int, state_idx: int, vo_idx: int, new_votes: int,
                 salt: Optional[int] = None) -> int:
    """nonce | state_idx << 32 | vo_idx << 64 | new_votes << 96 | salt << 192"""
    for name, value, bound in (
        ('nonce', nonce, UINT32),
        ('state_idx', state_idx, UINT32),
        ('vo_idx', vo_idx, UINT32),
        ('new_votes', new_votes, UINT96),
    ):
        if value < 0 or value >= bound:
            raise RangeError(f"{name} {value} outside [0, {bound})")

    if salt is None:
        salt = gen_command_salt()
    if salt < 0:
        raise RangeError(f"salt {salt} must be non-negative")

    packed = nonce + (state_idx << 32) + (vo_idx << 64) + (new_votes << 96) + (salt << 192)
    if packed >= SNARK_FIELD_SIZE:
        raise RangeError("Packed command does not fit in a field element")
    return packed


def unpack_element(packed: int) -> dict:
    if packed < 0 or packed >= SNARK_FIELD_SIZE:
        raise RangeError(f"Packed value {packed} outside field bounds")
    return {
        'nonce': packed % UINT32,
        'state_idx': (packed >> 32) % UINT32,
        'vo_idx': (packed >> 64) % UINT32,
        'new_votes': (packed >> 96) % UINT96,
    }


@dataclass
class Command:
    nonce: int
    state_idx: int
    vo_idx: int
    new_votes: int
    new_pub_key: Point
    signature: Signature
    packed: int = 0

    @property
    def msg_hash(self) -> int:
        """Value the voter signs"""
        return hash3([self.packed, self.new_pub_key[0], self.new_pub_key[1]])

    def to_plaintext(self) -> List[int]:
        return [
            self.packed,
            self.new_pub_key[0],
            self.new_pub_key[1],
            self.signature.R8[0],
            self.signature.R8[1],
            self.signature.S,
        ]

    @classmethod
    def from_plaintext(cls, plaintext: Sequence[int]) -> 'Command':
        if len(plaintext) != PLAINTEXT_LENGTH:
            raise RangeError(
                f"Command plaintext needs {PLAINTEXT_LENGTH} elements, got {len(plaintext)}")
        fields = unpack_element(plaintext[0])
        return cls(
            nonce=fields['nonce'],
            state_idx=fields['state_idx'],
            vo_idx=fields['vo_idx'],
            new_votes=fields['new_votes'],
            new_pub_key=(plaintext[1], plaintext[2]),
            signature=Signature(R8=(plaintext[3], plaintext[4]), S=plaintext[5]),
            packed=plaintext[0],
        )


@dataclass
class Message:
    ciphertext: List[int]
    enc_pub_key: Point
    prev_hash: int = 0
    hash: int = 0

    def __post_init__(self):
        if len(self.ciphertext) != CIPHERTEXT_LENGTH:
            raise RangeError(
                f"Message ciphertext needs {CIPHERTEXT_LENGTH} elements, "
                f"got {len(self.ciphertext)}")

    @property
    def is_empty(self) -> bool:
        return self.ciphertext[0] == 0

    def to_dict(self) -> dict:
        return {
            'ciphertext': list(self.ciphertext),
            'enc_pub_key': list(self.enc_pub_key),
            'prev_hash': self.prev_hash,
            'hash': self.hash,
        }


def empty_message() -> Message:
    """Batch padding; decrypts to no command"""
    return Message(ciphertext=[0] * CIPHERTEXT_LENGTH, enc_pub_key=(0, 0))


def hash_message(ciphertext: Sequence[int], enc_pub_key: Sequence[int]) -> int:
    return hash12(list(ciphertext) + list(enc_pub_key))


def chain_message(ciphertext: Sequence[int], enc_pub_key: Sequence[int],
                  prev_hash: int) -> Message:
    """Append-only hash chain link: hash2(hash_message(msg), prev_hash)"""
    ciphertext = [int(c) for c in ciphertext]
    enc_pub_key = (int(enc_pub_key[0]), int(enc_pub_key[1]))
    return Message(
        ciphertext=ciphertext,
        enc_pub_key=enc_pub_key,
        prev_hash=prev_hash,
        hash=hash2([hash_message(ciphertext, enc_pub_key), prev_hash]),
    )


def msg_to_command(message: Message, coordinator: Keypair) -> Optional[Command]:
    """Decrypt and unpack; None when the message carries no readable command"""
    if not in_curve(message.enc_pub_key):
        return None
    try:
        shared_key = coordinator.ecdh(message.enc_pub_key)
        plaintext = poseidon_decrypt(message.ciphertext, shared_key, 0, PLAINTEXT_LENGTH)
        return Command.from_plaintext(plaintext)
    except (DecryptionError, CryptographicFailure, RangeError) as e:
        logger.debug(f"Message decrypt error: {e}")
        return None
