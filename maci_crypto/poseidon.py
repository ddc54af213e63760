"""
Circom-style Poseidon permutation and the fixed-arity hash helpers built on it.

Round constants and MDS matrices are derived per state width with the Grain
LFSR procedure of the Poseidon reference parameter generator (prime field,
x^5 S-box, 254-bit elements) and cached the first time a width is used.
"""

import logging
from functools import lru_cache
from typing import List, Sequence, Tuple

from .errors import RangeError
from .field import SNARK_FIELD_SIZE, field_inv

logger = logging.getLogger(__name__)

# ============================================================================
# PARAMETER GENERATION
# ============================================================================


class GrainLFSR:
    """80-bit Grain LFSR used to sample Poseidon parameters"""

    STATE_BITS = 80
    WARMUP_ROUNDS = 160

    def __init__(self, field: int, sbox: int, n: int, t: int, r_f: int, r_p: int):
        bits = (
            format(field, '02b') + format(sbox, '04b') + format(n, '012b') +
            format(t, '012b') + format(r_f, '010b') + format(r_p, '010b') +
            '1' * 30
        )
        # bit i of the register is element i of the reference bit list
        self._state = 0
        for i, bit in enumerate(bits):
            if bit == '1':
                self._state |= 1 << i

        for _ in range(self.WARMUP_ROUNDS):
            self._update()

    def _update(self) -> int:
        s = self._state
        new_bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self._state = (s >> 1) | (new_bit << (self.STATE_BITS - 1))
        return new_bit

    def random_bits(self, num_bits: int) -> int:
        """Self-shrinking output, read big-endian"""
        value = 0
        for _ in range(num_bits):
            new_bit = self._update()
            while new_bit == 0:
                self._update()
                new_bit = self._update()
            value = (value << 1) | self._update()
        return value

    def field_element(self, n: int, prime: int) -> int:
        """Rejection-sample an n-bit integer below prime"""
        value = self.random_bits(n)
        while value >= prime:
            value = self.random_bits(n)
        return value

# ============================================================================
# PERMUTATION
# ============================================================================


class CircomPoseidon:
    """Poseidon hash over the BN254 scalar field for 1 to 12 inputs"""

    PRIME = SNARK_FIELD_SIZE
    FIELD_BITS = 254

    FULL_ROUNDS = 8
    # Partial rounds indexed by width - 2
    PARTIAL_ROUNDS = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]

    MAX_INPUTS = 12

    @staticmethod
    @lru_cache(maxsize=None)
    def load_poseidon_constants(width: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
        """Round constants and MDS matrix for a state of the given width"""
        if width < 2 or width - 2 >= len(CircomPoseidon.PARTIAL_ROUNDS):
            raise RangeError(f"Unsupported Poseidon width {width}")

        prime = CircomPoseidon.PRIME
        n = CircomPoseidon.FIELD_BITS
        r_f = CircomPoseidon.FULL_ROUNDS
        r_p = CircomPoseidon.PARTIAL_ROUNDS[width - 2]

        grain = GrainLFSR(1, 0, n, width, r_f, r_p)
        round_constants = tuple(
            grain.field_element(n, prime) for _ in range((r_f + r_p) * width))

        # Cauchy matrix over distinct sampled points
        while True:
            points = [grain.random_bits(n) % prime for _ in range(2 * width)]
            if len(set(points)) != len(points):
                continue
            xs, ys = points[:width], points[width:]
            if any((x + y) % prime == 0 for x in xs for y in ys):
                continue
            mds = tuple(
                tuple(field_inv(x + y) for y in ys) for x in xs)
            break

        logger.debug(f"Derived Poseidon parameters for width {width}")
        return round_constants, mds

    @staticmethod
    def ark(state: List[int], constants: Sequence[int], constant_idx: int) -> List[int]:
        """Add round constants"""
        prime = CircomPoseidon.PRIME
        return [(s + constants[constant_idx + i]) % prime for i, s in enumerate(state)]

    @staticmethod
    def sbox(state: List[int], full_round: bool) -> List[int]:
        """Apply S-box (x^5 mod p)"""
        prime = CircomPoseidon.PRIME
        if full_round:
            return [pow(x, 5, prime) for x in state]
        return [pow(state[0], 5, prime)] + state[1:]

    @staticmethod
    def mix(state: List[int], mds: Sequence[Sequence[int]]) -> List[int]:
        """Apply MDS matrix multiplication"""
        prime = CircomPoseidon.PRIME
        return [sum(m * s for m, s in zip(row, state)) % prime for row in mds]

    @staticmethod
    def permute(state: Sequence[int]) -> List[int]:
        """Full Poseidon permutation of a state vector"""
        width = len(state)
        constants, mds = CircomPoseidon.load_poseidon_constants(width)
        half_full = CircomPoseidon.FULL_ROUNDS // 2
        partial = CircomPoseidon.PARTIAL_ROUNDS[width - 2]

        current = [s % CircomPoseidon.PRIME for s in state]
        constant_idx = 0
        for r in range(CircomPoseidon.FULL_ROUNDS + partial):
            current = CircomPoseidon.ark(current, constants, constant_idx)
            constant_idx += width
            full_round = r < half_full or r >= half_full + partial
            current = CircomPoseidon.sbox(current, full_round)
            current = CircomPoseidon.mix(current, mds)
        return current

    @staticmethod
    def hash(inputs: Sequence[int]) -> int:
        """Poseidon hash matching the circom template for len(inputs) inputs"""
        if not 1 <= len(inputs) <= CircomPoseidon.MAX_INPUTS:
            raise RangeError(
                f"Poseidon takes 1 to {CircomPoseidon.MAX_INPUTS} inputs, got {len(inputs)}")
        for x in inputs:
            if x < 0 or x >= CircomPoseidon.PRIME:
                raise RangeError(f"Poseidon input {x} outside field bounds")
        return CircomPoseidon.permute([0, *inputs])[0]


poseidon = CircomPoseidon.hash
poseidon_perm = CircomPoseidon.permute

# ============================================================================
# FIXED-ARITY HELPERS
# ============================================================================


def hash_n(num_elements: int, elements: Sequence[int]) -> int:
    """Hash exactly num_elements values, zero-padding shorter input"""
    if len(elements) > num_elements:
        raise RangeError(
            f"the length of the elements array should be at most {num_elements}; got {len(elements)}")
    padded = list(elements) + [0] * (num_elements - len(elements))
    return poseidon(padded)


def hash2(elements: Sequence[int]) -> int:
    return hash_n(2, elements)


def hash3(elements: Sequence[int]) -> int:
    return hash_n(3, elements)


def hash4(elements: Sequence[int]) -> int:
    return hash_n(4, elements)


def hash5(elements: Sequence[int]) -> int:
    return hash_n(5, elements)


def hash_left_right(left: int, right: int) -> int:
    return hash2([left, right])


def hash_one(pre_image: int) -> int:
    return hash2([pre_image, 0])


def hash10(elements: Sequence[int]) -> int:
    """hash2(hash5(first five), hash5(last five))"""
    if len(elements) > 10:
        raise RangeError(
            f"the length of the elements array should be at most 10; got {len(elements)}")
    padded = list(elements) + [0] * (10 - len(elements))
    return hash2([hash5(padded[0:5]), hash5(padded[5:10])])


def hash12(elements: Sequence[int]) -> int:
    """hash4(hash5(0..5), hash5(5..10), e10, e11)"""
    if len(elements) > 12:
        raise RangeError(
            f"the length of the elements array should be at most 12; got {len(elements)}")
    padded = list(elements) + [0] * (12 - len(elements))
    return hash4([
        hash5(padded[0:5]),
        hash5(padded[5:10]),
        padded[10],
        padded[11],
    ])
