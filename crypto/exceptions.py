"""
Cryptographic Exceptions for DRAP

This module defines custom exceptions for provenance commitments and
content locator encoding.
"""


class CryptoError(Exception):
    """Base exception for all cryptographic errors."""
    pass


class CommitmentError(CryptoError):
    """Raised when provenance commitment inputs are malformed."""
    pass


class LocatorError(CryptoError):
    """Raised when a content locator cannot be encoded or decoded."""
    pass
