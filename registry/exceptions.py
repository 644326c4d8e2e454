"""
Deferred Reveal Asset Protocol - Registry Exceptions

This module defines the error taxonomy for mint, reveal and authority
operations. Every error is terminal for the operation that raised it and
carries a stable `code` callers can switch on.
"""

from typing import List, Optional


class RegistryError(Exception):
    """Base registry exception."""

    code = "registry_error"

    def __init__(self, message: Optional[str] = None, collection_id: Optional[str] = None):
        self.collection_id = collection_id
        super().__init__(message or self.__class__.__doc__)


class AuthorityError(RegistryError):
    """Capacity authority operation failed."""
    code = "authority_error"


class SupplyExhaustedError(AuthorityError):
    """Authority has no remaining capacity."""
    code = "supply_exhausted"


class RevealTargetExceededError(SupplyExhaustedError):
    """Reveal authority has already revealed its full target."""
    code = "reveal_target_exceeded"


class SupplyNotExhaustedError(AuthorityError):
    """Mint authority cannot be destroyed before its target is minted."""
    code = "supply_not_exhausted"


class RevealIncompleteError(AuthorityError):
    """Reveal authority cannot be destroyed before its target is revealed."""
    code = "reveal_incomplete"


class AuthorityDestroyedError(AuthorityError):
    """Authority has been destroyed and can never be used again."""
    code = "authority_destroyed"


class CapabilityMismatchError(AuthorityError):
    """Capability does not authorise this operation."""
    code = "capability_mismatch"


class AlreadyInitializedError(RegistryError):
    """Collection has already been initialised."""
    code = "already_initialized"


class CollectionNotFoundError(RegistryError):
    """Collection not found."""
    code = "collection_not_found"


class AssetNotFoundError(RegistryError):
    """Asset not found."""
    code = "asset_not_found"


class ProvenanceMismatchError(RegistryError):
    """Revealed content does not match the provenance commitment."""
    code = "provenance_mismatch"


class ContentNotFoundError(RegistryError):
    """Referenced content is not available in the content store."""
    code = "content_not_found"


class InvalidLengthError(RegistryError):
    """Parallel input sequences differ in length."""
    code = "invalid_length"

    def __init__(self, message: Optional[str] = None, lengths: Optional[dict] = None,
                 collection_id: Optional[str] = None):
        self.lengths = lengths or {}
        if message is None and self.lengths:
            detail = ", ".join(f"{name}={size}" for name, size in self.lengths.items())
            message = f"Input sequences differ in length ({detail})"
        super().__init__(message, collection_id=collection_id)


class AlreadyRevealedError(RegistryError):
    """Asset has already been revealed."""
    code = "already_revealed"


class LookupMissError(RegistryError):
    """No asset has been minted with this sequence number."""
    code = "lookup_miss"


class DuplicateAttributeKeyError(RegistryError):
    """Attribute keys must be unique."""
    code = "duplicate_attribute_key"

    def __init__(self, key: str, collection_id: Optional[str] = None):
        self.key = key
        super().__init__(f"Duplicate attribute key: {key!r}", collection_id=collection_id)


class RestoreRejectedError(RegistryError):
    """Backup would roll back mints, reveals or authority destruction."""
    code = "restore_rejected"

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("Backup rejected: " + "; ".join(self.violations))
