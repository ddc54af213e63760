"""
Cryptographic core for anonymous MACI rounds
Poseidon hashing, Baby Jubjub keys, status ciphertexts, Merkle trees and nullifiers
"""

from .babyjub import BASE8, IDENTITY, SUBGROUP_ORDER, Point
from .eddsa import (
    Keypair,
    Signature,
    format_priv_key_for_babyjub,
    gen_keypair,
    gen_priv_key,
    gen_pub_key,
    sign_message,
    verify_signature,
)
from .errors import (
    CryptographicFailure,
    DecryptionError,
    MaciError,
    NullifierReusedError,
    PhaseError,
    RangeError,
    StructuralMismatch,
    TreeIndexError,
)
from .field import SNARK_FIELD_SIZE, gen_random_salt, sha256_hash, stringify
from .key_exchange import gen_ecdh_shared_key, poseidon_decrypt, poseidon_encrypt
from .lean_tree import LeanTree, MerkleProof
from .nullifier import ADD_NEW_KEY_DOMAIN, NullifierRegistry, nullifier
from .poseidon import hash2, hash3, hash4, hash5, hash10, hash12, poseidon
from .status_cipher import StatusCiphertext, encrypt_odevity, rerandomize
from .tree import Tree

__version__ = "1.0.0"
__author__ = "AMACI Engine Team"

__all__ = [
    # Curve and keys
    'BASE8',
    'IDENTITY',
    'SUBGROUP_ORDER',
    'Point',
    'Keypair',
    'Signature',
    'format_priv_key_for_babyjub',
    'gen_keypair',
    'gen_priv_key',
    'gen_pub_key',
    'sign_message',
    'verify_signature',

    # Hashing
    'SNARK_FIELD_SIZE',
    'poseidon',
    'hash2',
    'hash3',
    'hash4',
    'hash5',
    'hash10',
    'hash12',
    'sha256_hash',
    'gen_random_salt',
    'stringify',

    # Ciphers
    'gen_ecdh_shared_key',
    'poseidon_encrypt',
    'poseidon_decrypt',
    'StatusCiphertext',
    'encrypt_odevity',
    'rerandomize',

    # Trees and nullifiers
    'LeanTree',
    'MerkleProof',
    'Tree',
    'ADD_NEW_KEY_DOMAIN',
    'NullifierRegistry',
    'nullifier',

    # Exceptions
    'MaciError',
    'RangeError',
    'TreeIndexError',
    'StructuralMismatch',
    'DecryptionError',
    'CryptographicFailure',
    'NullifierReusedError',
    'PhaseError',
]
