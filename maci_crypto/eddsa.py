"""
EdDSA over Baby Jubjub with Poseidon as the challenge hash.

Key derivation and nonce generation use BLAKE2b-512; the message digest
is hash5(R8.x, R8.y, A.x, A.y, msg).
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from .babyjub import (BASE8, SUBGROUP_ORDER, Point, add_point, in_curve,
                      mul_point_escalar, pack_point, unpack_point)
from .errors import CryptographicFailure, RangeError
from .field import SNARK_FIELD_SIZE, gen_random_babyjub_value
from .poseidon import hash5

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signature:
    """EdDSA signature (R8, S)"""
    R8: Point
    S: int

    def to_list(self) -> Tuple[int, int, int]:
        return (self.R8[0], self.R8[1], self.S)


@dataclass
class Keypair:
    """Baby Jubjub keypair with the pruned secret scalar cached"""
    priv_key: int
    pub_key: Point = field(init=False)
    formatted_priv_key: int = field(init=False)

    def __post_init__(self):
        self.formatted_priv_key = format_priv_key_for_babyjub(self.priv_key)
        self.pub_key = mul_point_escalar(BASE8, self.formatted_priv_key)

    def sign(self, message: int) -> Signature:
        return sign_message(self.priv_key, message)

    def ecdh(self, pub_key: Sequence[int]) -> Point:
        return mul_point_escalar(pub_key, self.formatted_priv_key)


def _blake512(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=64).digest()


def _priv_key_bytes(priv_key: int) -> bytes:
    if priv_key < 0 or priv_key >= 1 << 256:
        raise RangeError(f"Private key {priv_key} does not fit in 32 bytes")
    return priv_key.to_bytes(32, 'big')


def _prune_buffer(buff: bytes) -> bytes:
    pruned = bytearray(buff[:32])
    pruned[0] &= 0xF8
    pruned[31] &= 0x7F
    pruned[31] |= 0x40
    return bytes(pruned)


def derive_secret_scalar(priv_key: int) -> int:
    """Pruned BLAKE2b scalar s >> 3"""
    h = _blake512(_priv_key_bytes(priv_key))
    s = int.from_bytes(_prune_buffer(h), 'little')
    return s >> 3


def format_priv_key_for_babyjub(priv_key: int) -> int:
    """Secret scalar reduced into the Base8 subgroup"""
    return derive_secret_scalar(priv_key) % SUBGROUP_ORDER


def gen_priv_key() -> int:
    return gen_random_babyjub_value()


def gen_pub_key(priv_key: int) -> Point:
    return mul_point_escalar(BASE8, format_priv_key_for_babyjub(priv_key))


def gen_keypair(priv_key: Optional[int] = None) -> Keypair:
    if priv_key is None:
        priv_key = gen_priv_key()
    return Keypair(priv_key)


def sign_message(priv_key: int, message: int) -> Signature:
    """Deterministic EdDSA-Poseidon signature of a field element"""
    if message < 0 or message >= SNARK_FIELD_SIZE:
        raise RangeError(f"Message {message} outside field bounds")

    h = _blake512(_priv_key_bytes(priv_key))
    s = int.from_bytes(_prune_buffer(h), 'little')
    pub_key = mul_point_escalar(BASE8, s >> 3)

    r_buff = _blake512(h[32:64] + message.to_bytes(32, 'little'))
    r = int.from_bytes(r_buff, 'little') % SUBGROUP_ORDER
    r8 = mul_point_escalar(BASE8, r)

    hm = hash5([r8[0], r8[1], pub_key[0], pub_key[1], message])
    S = (r + hm * s) % SUBGROUP_ORDER
    return Signature(R8=r8, S=S)


def verify_signature(message: int, signature: Signature, pub_key: Sequence[int]) -> bool:
    """Check Base8*S == R8 + A*(8*hm); malformed inputs verify false"""
    if not (in_curve(signature.R8) and in_curve(pub_key)):
        return False
    if signature.S >= SUBGROUP_ORDER or signature.S < 0:
        return False
    if message < 0 or message >= SNARK_FIELD_SIZE:
        return False

    hm = hash5([signature.R8[0], signature.R8[1], pub_key[0], pub_key[1], message])
    left = mul_point_escalar(BASE8, signature.S)
    right = add_point(signature.R8, mul_point_escalar(pub_key, 8 * hm))
    return left == right


def pack_pub_key(pub_key: Sequence[int]) -> int:
    return pack_point(pub_key)


def unpack_pub_key(packed: int) -> Point:
    return unpack_point(packed)


def pack_signature(signature: Signature) -> bytes:
    """packed R8 (32 bytes LE) followed by S (32 bytes LE)"""
    return (pack_point(signature.R8).to_bytes(32, 'little') +
            signature.S.to_bytes(32, 'little'))


def unpack_signature(packed: bytes) -> Signature:
    if len(packed) != 64:
        raise CryptographicFailure("Packed signature must be 64 bytes")
    r8 = unpack_point(int.from_bytes(packed[:32], 'little'))
    s = int.from_bytes(packed[32:], 'little')
    return Signature(R8=r8, S=s)
