"""
ElGamal status flag over Baby Jubjub.

A voter's status is the parity of a small plaintext scalar m: even means
active, odd means deactivated. Ciphertexts are (c1, c2) = (r*B8, m*B8 + r*Pub)
and decryption recovers m from m*B8 with a lookup table bounded by
STATUS_PLAINTEXT_BOUND.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Sequence

from .babyjub import (BASE8, IDENTITY, Point, add_point, in_curve,
                      mul_point_escalar, sub_point, to_point)
from .errors import CryptographicFailure, DecryptionError, RangeError
from .field import gen_random_babyjub_value
from .poseidon import hash3

logger = logging.getLogger(__name__)

STATUS_PLAINTEXT_BOUND = 256

# Salt mixed into the coordinator's deterministic deactivation randomness
DEACTIVATE_RANDOM_SALT = 20040


@dataclass(frozen=True)
class StatusCiphertext:
    """(c1, c2) as stored in a state leaf; (0, 0) coordinates mean identity"""
    c1: Point = (0, 0)
    c2: Point = (0, 0)

    def to_list(self) -> List[int]:
        return [self.c1[0], self.c1[1], self.c2[0], self.c2[1]]

    @classmethod
    def from_list(cls, values: Sequence[int]) -> 'StatusCiphertext':
        if len(values) != 4:
            raise RangeError(f"Status ciphertext needs 4 elements, got {len(values)}")
        return cls(c1=(int(values[0]), int(values[1])), c2=(int(values[2]), int(values[3])))

    @property
    def is_zero(self) -> bool:
        return not any(self.to_list())


@lru_cache(maxsize=8)
def _plaintext_table(bound: int) -> Dict[Point, int]:
    table = {}
    point: Point = IDENTITY
    for m in range(bound):
        table[point] = m
        point = add_point(point, BASE8)
    logger.debug(f"Built status plaintext table of size {bound}")
    return table


def _check_bound(bound: int):
    if bound < 2 or bound % 2:
        raise RangeError(f"Status plaintext bound must be an even number >= 2, got {bound}")


def encode_status(is_odd: bool, random_val: int, bound: int = STATUS_PLAINTEXT_BOUND) -> int:
    """Plaintext scalar in [0, bound) whose parity is is_odd"""
    _check_bound(bound)
    return (random_val % (bound // 2)) * 2 + int(bool(is_odd))


def encrypt_odevity(is_odd: bool, pub_key: Sequence[int], random_val: Optional[int] = None,
                    bound: int = STATUS_PLAINTEXT_BOUND) -> StatusCiphertext:
    if random_val is None:
        random_val = gen_random_babyjub_value()
    if not in_curve(pub_key):
        raise CryptographicFailure("Status encryption key is not on the curve")

    m = encode_status(is_odd, random_val, bound)
    c1 = mul_point_escalar(BASE8, random_val)
    c2 = add_point(mul_point_escalar(BASE8, m), mul_point_escalar(pub_key, random_val))
    return StatusCiphertext(c1=c1, c2=c2)


def decrypt_point(formatted_priv_key: int, ciphertext: StatusCiphertext) -> Point:
    """m*B8 = c2 - k*c1"""
    c1 = to_point(ciphertext.c1)
    c2 = to_point(ciphertext.c2)
    return sub_point(c2, mul_point_escalar(c1, formatted_priv_key))


def decrypt(formatted_priv_key: int, ciphertext: StatusCiphertext,
            bound: int = STATUS_PLAINTEXT_BOUND) -> int:
    """Recover the plaintext scalar; DecryptionError when it is outside the table"""
    _check_bound(bound)
    point = decrypt_point(formatted_priv_key, ciphertext)
    m = _plaintext_table(bound).get(point)
    if m is None:
        raise DecryptionError(f"Status plaintext outside [0, {bound})")
    return m


def is_deactivated(formatted_priv_key: int, ciphertext: StatusCiphertext,
                   bound: int = STATUS_PLAINTEXT_BOUND) -> bool:
    return decrypt(formatted_priv_key, ciphertext, bound) % 2 == 1


def rerandomize(pub_key: Sequence[int], ciphertext: StatusCiphertext,
                random_val: Optional[int] = None) -> StatusCiphertext:
    """Fresh-looking ciphertext of the same plaintext"""
    if random_val is None:
        random_val = gen_random_babyjub_value()
    c1 = to_point(ciphertext.c1)
    c2 = to_point(ciphertext.c2)
    d1 = add_point(c1, mul_point_escalar(BASE8, random_val))
    d2 = add_point(c2, mul_point_escalar(pub_key, random_val))
    return StatusCiphertext(c1=d1, c2=d2)


def gen_static_random_key(priv_key: int, salt: int, index: int) -> int:
    """Deterministic encryption randomness for the index-th deactivation"""
    return hash3([priv_key, salt, index])
