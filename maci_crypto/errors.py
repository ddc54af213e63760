"""
Exception hierarchy shared by the cryptographic core and the coordinator.
"""


class MaciError(Exception):
    """Base exception for MACI operations"""
    pass


class RangeError(MaciError, ValueError):
    """Value outside its declared bit-width, field or index bounds"""
    pass


class TreeIndexError(MaciError, IndexError):
    """Tree access or proof generation on a missing index"""
    pass


class StructuralMismatch(MaciError):
    """Batch configuration does not match the data; rejects the whole batch"""
    pass


class DecryptionError(MaciError):
    """Ciphertext failed authentication or decodes outside the lookup table"""
    pass


class CryptographicFailure(MaciError):
    """Invalid curve point or malformed signature passed to a primitive"""
    pass


class NullifierReusedError(MaciError):
    """Nullifier already consumed for this domain"""
    pass


class PhaseError(MaciError):
    """Coordinator operation called outside its round phase"""
    pass
