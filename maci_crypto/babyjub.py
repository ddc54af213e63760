"""
Baby Jubjub twisted Edwards curve over the BN254 scalar field.
"""

from typing import Optional, Sequence, Tuple

from .errors import CryptographicFailure
from .field import SNARK_FIELD_SIZE, field_inv

Point = Tuple[int, int]

# Curve parameters a*x^2 + y^2 = 1 + d*x^2*y^2
A = 168700
D = 168696

GENERATOR: Point = (
    995203441582195749578291179787384436505546430278305826713579947235728471134,
    5472060717959818805561601436314318772137091100104008585924551046643952123905,
)

BASE8: Point = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

# Order of the prime subgroup generated by BASE8
SUBGROUP_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041

IDENTITY: Point = (0, 1)


def to_point(value: Sequence[int]) -> Point:
    """Normalise a wire point; (0, 0) is read as the identity"""
    x, y = int(value[0]), int(value[1])
    if x == 0 and y == 0:
        return IDENTITY
    return (x, y)


def in_curve(point: Sequence[int]) -> bool:
    p = SNARK_FIELD_SIZE
    x, y = point[0] % p, point[1] % p
    x2 = x * x % p
    y2 = y * y % p
    return (A * x2 + y2) % p == (1 + D * x2 % p * y2) % p


def add_point(a: Sequence[int], b: Sequence[int]) -> Point:
    """Twisted Edwards addition"""
    p = SNARK_FIELD_SIZE
    x1, y1 = a[0], a[1]
    x2, y2 = b[0], b[1]

    beta = x1 * y2 % p
    gamma = y1 * x2 % p
    delta = (-A * x1 + y1) * (x2 + y2) % p
    tau = beta * gamma % p

    x3 = (beta + gamma) * field_inv(1 + D * tau) % p
    y3 = (delta + A * beta - gamma) * field_inv(1 - D * tau) % p
    return (x3, y3)


def neg_point(point: Sequence[int]) -> Point:
    return ((-point[0]) % SNARK_FIELD_SIZE, point[1] % SNARK_FIELD_SIZE)


def sub_point(a: Sequence[int], b: Sequence[int]) -> Point:
    return add_point(a, neg_point(b))


def mul_point_escalar(base: Sequence[int], scalar: int) -> Point:
    """Double-and-add scalar multiplication"""
    result: Point = IDENTITY
    exp: Point = (base[0], base[1])
    rem = scalar
    while rem > 0:
        if rem & 1:
            result = add_point(result, exp)
        exp = add_point(exp, exp)
        rem >>= 1
    return result


def pack_point(point: Sequence[int]) -> int:
    """Little-endian y with the sign of x in bit 255"""
    packed = point[1]
    if point[0] > SNARK_FIELD_SIZE // 2:
        packed |= 1 << 255
    return packed


def _sqrt(n: int) -> Optional[int]:
    """Tonelli-Shanks square root modulo the field prime"""
    p = SNARK_FIELD_SIZE
    n %= p
    if n == 0:
        return 0
    if pow(n, (p - 1) // 2, p) != 1:
        return None

    q, s = p - 1, 0
    while q % 2 == 0:
        q //= 2
        s += 1

    z = 2
    while pow(z, (p - 1) // 2, p) != p - 1:
        z += 1

    m, c, t, r = s, pow(z, q, p), pow(n, q, p), pow(n, (q + 1) // 2, p)
    while t != 1:
        i, t2 = 0, t
        while t2 != 1:
            t2 = t2 * t2 % p
            i += 1
        b = pow(c, 1 << (m - i - 1), p)
        m, c = i, b * b % p
        t, r = t * c % p, r * b % p
    return r


def unpack_point(packed: int) -> Point:
    """Inverse of pack_point; raises CryptographicFailure if no curve point matches"""
    p = SNARK_FIELD_SIZE
    sign = bool(packed >> 255)
    y = packed & ((1 << 255) - 1)
    if y >= p:
        raise CryptographicFailure(f"Packed y coordinate {y} outside field")

    y2 = y * y % p
    x2 = (1 - y2) * field_inv(A - D * y2) % p
    x = _sqrt(x2)
    if x is None:
        raise CryptographicFailure("Packed point is not on Baby Jubjub")
    if sign != (x > p // 2):
        x = (p - x) % p
    return (x, y)
