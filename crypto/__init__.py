"""
Deferred Reveal Asset Protocol - Cryptographic Operations Module

This module provides the cryptographic primitives used by DRAP:
- Provenance commitments binding minted assets to future content
- Content locator encoding for 256-bit content identifiers

Dependencies:
- hashlib: Cryptographic hash functions
- hmac: Constant-time digest comparison
- base64: Locator text encoding
"""

from .exceptions import (
    CryptoError,
    CommitmentError,
    LocatorError,
)

from .commitments import (
    AttributeOrder,
    CommitmentScheme,
    DEFAULT_SCHEME,
    HashAlgorithm,
    NumberEncoding,
    commit_to_attributes,
    compute_provenance_digest,
    serialize_provenance_data,
    verify_provenance,
)

from .locator import (
    LOCATOR_BYTES,
    decode_locator,
    encode_locator,
    is_valid_locator,
    normalize_locator,
)

__all__ = [
    # Exceptions
    "CryptoError",
    "CommitmentError",
    "LocatorError",

    # Commitments
    "AttributeOrder",
    "CommitmentScheme",
    "DEFAULT_SCHEME",
    "HashAlgorithm",
    "NumberEncoding",
    "commit_to_attributes",
    "compute_provenance_digest",
    "serialize_provenance_data",
    "verify_provenance",

    # Locators
    "LOCATOR_BYTES",
    "decode_locator",
    "encode_locator",
    "is_valid_locator",
    "normalize_locator",
]
