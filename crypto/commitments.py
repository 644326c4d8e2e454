"""
Provenance Commitment Generation for DRAP

This module computes the provenance commitments that bind a minted asset to
the content it will later reveal.

A commitment is a 256-bit digest over the asset's sequence number, its
attribute pairs and the content locator. The minting party computes it
off-system and publishes it at mint time; at reveal time the registry
recomputes it from the disclosed content and accepts the reveal only on an
exact match.

Several byte layouts for the same logical input are in circulation and they
are not interchangeable. A `CommitmentScheme` pins one layout, and the same
scheme must be used to build the commitment and to verify it.
"""

import hashlib
import hmac
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import CommitmentError


class NumberEncoding(str, Enum):
    """Encoding of the sequence number in the commitment preimage."""
    U64_LE = "u64le"
    DECIMAL = "decimal"


class AttributeOrder(str, Enum):
    """Layout of attribute pairs in the commitment preimage."""
    INTERLEAVED = "interleaved"  # k0 v0 k1 v1 ...
    GROUPED = "grouped"          # k0 k1 ... v0 v1 ...


class HashAlgorithm(str, Enum):
    """Supported 256-bit hash algorithms."""
    SHA256 = "sha256"
    SHA3_256 = "sha3_256"
    BLAKE2B_256 = "blake2b_256"


@dataclass(frozen=True)
class CommitmentScheme:
    """
    Canonical form of a provenance commitment.
    """
    number_encoding: NumberEncoding = NumberEncoding.U64_LE
    attribute_order: AttributeOrder = AttributeOrder.INTERLEAVED
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary format."""
        return {
            "number_encoding": self.number_encoding.value,
            "attribute_order": self.attribute_order.value,
            "hash_algorithm": self.hash_algorithm.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommitmentScheme':
        """Create scheme from dictionary, falling back to defaults for missing keys."""
        try:
            return cls(
                number_encoding=NumberEncoding(data.get("number_encoding", NumberEncoding.U64_LE.value)),
                attribute_order=AttributeOrder(data.get("attribute_order", AttributeOrder.INTERLEAVED.value)),
                hash_algorithm=HashAlgorithm(data.get("hash_algorithm", HashAlgorithm.SHA256.value)),
            )
        except ValueError as e:
            raise CommitmentError(f"Invalid commitment scheme: {e}")


DEFAULT_SCHEME = CommitmentScheme()

_U64_MAX = (1 << 64) - 1


def _encode_number(number: int, encoding: NumberEncoding) -> bytes:
    if isinstance(number, bool) or not isinstance(number, int):
        raise CommitmentError(f"Sequence number must be an integer, got {type(number).__name__}")

    if number < 1:
        raise CommitmentError("Sequence number must be >= 1")

    if encoding == NumberEncoding.U64_LE:
        if number > _U64_MAX:
            raise CommitmentError("Sequence number does not fit in 64 bits")
        return struct.pack('<Q', number)
    elif encoding == NumberEncoding.DECIMAL:
        return str(number).encode('ascii')
    else:
        raise CommitmentError(f"Unknown number encoding: {encoding}")


def _encode_text(value: str, field_name: str) -> bytes:
    if not isinstance(value, str):
        raise CommitmentError(f"{field_name} must be a string, got {type(value).__name__}")
    return value.encode('utf-8')


def serialize_provenance_data(number: int, keys: Sequence[str], values: Sequence[str],
                              locator: str,
                              scheme: Optional[CommitmentScheme] = None) -> bytes:
    """
    Serialize commitment inputs into the canonical preimage.

    Args:
        number: 1-based sequence number of the asset
        keys: Attribute keys, paired with values by index
        values: Attribute values
        locator: Textual content locator
        scheme: Canonical form to use (default: u64le, interleaved)

    Returns:
        Preimage bytes
    """
    scheme = scheme or DEFAULT_SCHEME

    if len(keys) != len(values):
        raise CommitmentError(
            f"Attribute keys and values differ in length ({len(keys)} != {len(values)})"
        )

    data = _encode_number(number, scheme.number_encoding)

    encoded_keys = [_encode_text(k, "Attribute key") for k in keys]
    encoded_values = [_encode_text(v, "Attribute value") for v in values]

    if scheme.attribute_order == AttributeOrder.INTERLEAVED:
        for key, value in zip(encoded_keys, encoded_values):
            data += key
            data += value
    elif scheme.attribute_order == AttributeOrder.GROUPED:
        data += b"".join(encoded_keys)
        data += b"".join(encoded_values)
    else:
        raise CommitmentError(f"Unknown attribute order: {scheme.attribute_order}")

    data += _encode_text(locator, "Locator")

    return data


def hash_preimage(data: bytes, algorithm: HashAlgorithm = HashAlgorithm.SHA256) -> bytes:
    """Hash a preimage with a 256-bit hash function."""
    if algorithm == HashAlgorithm.SHA256:
        return hashlib.sha256(data).digest()
    elif algorithm == HashAlgorithm.SHA3_256:
        return hashlib.sha3_256(data).digest()
    elif algorithm == HashAlgorithm.BLAKE2B_256:
        return hashlib.blake2b(data, digest_size=32).digest()
    else:
        raise CommitmentError(f"Unknown hash algorithm: {algorithm}")


def compute_provenance_digest(number: int, keys: Sequence[str], values: Sequence[str],
                              locator: str,
                              scheme: Optional[CommitmentScheme] = None) -> str:
    """
    Compute the provenance commitment for an asset.

    Args:
        number: 1-based sequence number of the asset
        keys: Attribute keys, paired with values by index
        values: Attribute values
        locator: Textual content locator
        scheme: Canonical form to use

    Returns:
        Lowercase hex digest (64 characters)
    """
    scheme = scheme or DEFAULT_SCHEME
    preimage = serialize_provenance_data(number, keys, values, locator, scheme)
    return hash_preimage(preimage, scheme.hash_algorithm).hex()


def verify_provenance(commitment: str, number: int, keys: Sequence[str],
                      values: Sequence[str], locator: str,
                      scheme: Optional[CommitmentScheme] = None) -> bool:
    """
    Check disclosed content against a published commitment.

    The stored commitment is compared verbatim; a commitment published in
    upper case does not match.
    """
    if not isinstance(commitment, str):
        return False

    expected = compute_provenance_digest(number, keys, values, locator, scheme)
    return hmac.compare_digest(expected.encode('ascii'), commitment.encode('utf-8'))


def commit_to_attributes(number: int, attributes: Dict[str, str], locator: str,
                         scheme: Optional[CommitmentScheme] = None) -> str:
    """
    Compute a commitment from an attribute mapping.

    Pairs are taken in the mapping's insertion order, which is the order the
    revealing party must later disclose them in.
    """
    keys: List[str] = list(attributes.keys())
    values: List[str] = [attributes[k] for k in keys]
    return compute_provenance_digest(number, keys, values, locator, scheme)
