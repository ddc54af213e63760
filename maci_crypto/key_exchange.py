"""
ECDH shared keys and the Poseidon sponge cipher used for command vectors.
"""

import logging
from typing import List, Sequence

from .babyjub import Point, in_curve, mul_point_escalar
from .eddsa import format_priv_key_for_babyjub
from .errors import CryptographicFailure, DecryptionError, RangeError
from .field import SNARK_FIELD_SIZE, UINT128, field_add, field_sub
from .poseidon import poseidon_perm

logger = logging.getLogger(__name__)


def gen_ecdh_shared_key(priv_key: int, pub_key: Sequence[int]) -> Point:
    """format(priv) * pub; symmetric across the two keypairs"""
    if not in_curve(pub_key):
        raise CryptographicFailure("ECDH public key is not on the curve")
    return mul_point_escalar(pub_key, format_priv_key_for_babyjub(priv_key))


def _check_nonce(nonce: int):
    if nonce < 0 or nonce >= UINT128:
        raise RangeError(f"Nonce {nonce} must be below 2^128")


def _initial_state(shared_key: Sequence[int], nonce: int, length: int) -> List[int]:
    return [0, shared_key[0], shared_key[1], (nonce + length * UINT128) % SNARK_FIELD_SIZE]


def poseidon_encrypt(plaintext: Sequence[int], shared_key: Sequence[int], nonce: int) -> List[int]:
    """Duplex sponge encryption; output has ceil(len/3)*3 + 1 elements"""
    _check_nonce(nonce)
    message = [int(x) for x in plaintext]
    for x in message:
        if x < 0 or x >= SNARK_FIELD_SIZE:
            raise RangeError(f"Plaintext element {x} outside field bounds")

    state = _initial_state(shared_key, nonce, len(message))
    while len(message) % 3:
        message.append(0)

    ciphertext = []
    for i in range(0, len(message), 3):
        state = poseidon_perm(state)
        for j in range(3):
            state[j + 1] = field_add(state[j + 1], message[i + j])
        ciphertext.extend(state[1:4])

    state = poseidon_perm(state)
    ciphertext.append(state[1])
    return ciphertext


def poseidon_decrypt(ciphertext: Sequence[int], shared_key: Sequence[int], nonce: int,
                     length: int) -> List[int]:
    """Inverse of poseidon_encrypt; DecryptionError on a bad tag or padding"""
    _check_nonce(nonce)
    padded_length = -(-length // 3) * 3
    if len(ciphertext) != padded_length + 1:
        raise DecryptionError(
            f"Ciphertext of {len(ciphertext)} elements cannot hold {length} values")

    state = _initial_state(shared_key, nonce, length)
    message = []
    for i in range(0, padded_length, 3):
        state = poseidon_perm(state)
        for j in range(3):
            c = int(ciphertext[i + j]) % SNARK_FIELD_SIZE
            message.append(field_sub(c, state[j + 1]))
            state[j + 1] = c

    if any(message[length:]):
        raise DecryptionError("Non-zero padding in decrypted message")

    state = poseidon_perm(state)
    if int(ciphertext[padded_length]) != state[1]:
        raise DecryptionError("Authentication element does not match")

    return message[:length]
