"""
Field constants and helpers over the BN254 scalar field.
"""

import hashlib
import secrets
from typing import Any, Iterable, List

from .errors import RangeError

# BN254 scalar field prime
SNARK_FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

UINT32 = 1 << 32
UINT96 = 1 << 96
UINT128 = 1 << 128


def field_add(a: int, b: int) -> int:
    """Field addition modulo prime"""
    return (a + b) % SNARK_FIELD_SIZE


def field_sub(a: int, b: int) -> int:
    """Field subtraction modulo prime"""
    return (a - b) % SNARK_FIELD_SIZE


def field_mult(a: int, b: int) -> int:
    """Field multiplication modulo prime"""
    return (a * b) % SNARK_FIELD_SIZE


def field_inv(a: int) -> int:
    """Multiplicative inverse modulo prime"""
    if a % SNARK_FIELD_SIZE == 0:
        raise ZeroDivisionError("Zero has no inverse in the field")
    return pow(a, -1, SNARK_FIELD_SIZE)


def is_field_element(value: Any) -> bool:
    return isinstance(value, int) and 0 <= value < SNARK_FIELD_SIZE


def check_field_element(value: Any, name: str = "value") -> int:
    """Reject anything that is not an integer in [0, P)"""
    if not is_field_element(value):
        raise RangeError(f"{name} {value!r} outside field bounds")
    return value


def gen_random_babyjub_value() -> int:
    """Random field element usable as a Baby Jubjub scalar or salt"""
    return secrets.randbelow(SNARK_FIELD_SIZE)


def gen_random_salt() -> int:
    return gen_random_babyjub_value()


def sha256_hash(values: Iterable[int]) -> int:
    """EVM packed sha256 over uint256 values, reduced into the field"""
    packed = bytearray()
    for value in values:
        if value < 0 or value >= 1 << 256:
            raise RangeError(f"Value {value} does not fit in uint256")
        packed += int(value).to_bytes(32, 'big')
    digest = hashlib.sha256(bytes(packed)).digest()
    return int.from_bytes(digest, 'big') % SNARK_FIELD_SIZE


def compute_input_hash(values: List[int]) -> int:
    """Public input hash binding every public value of a circuit"""
    return sha256_hash(values)


def stringify(obj: Any) -> Any:
    """Render nested integers as decimal strings for JSON witnesses"""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: stringify(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify(item) for item in obj]
    return obj
