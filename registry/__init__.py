"""
Deferred Reveal Asset Protocol - Asset Registry

This package provides the capacity authorities, asset records and the
registry manager that mints and reveals assets under them.
"""

from .authority import (
    AuthorityKind,
    AuthorityPhase,
    Capability,
    CapacityAuthority,
)

from .exceptions import (
    AlreadyInitializedError,
    AlreadyRevealedError,
    AssetNotFoundError,
    AuthorityDestroyedError,
    AuthorityError,
    CapabilityMismatchError,
    CollectionNotFoundError,
    ContentNotFoundError,
    DuplicateAttributeKeyError,
    InvalidLengthError,
    LookupMissError,
    ProvenanceMismatchError,
    RegistryError,
    RestoreRejectedError,
    RevealIncompleteError,
    RevealTargetExceededError,
    SupplyExhaustedError,
    SupplyNotExhaustedError,
)

from .schema import AssetRecord, CollectionState, Registry
from .events import (
    AssetCreated,
    AssetRevealed,
    AuthorityDestroyed,
    CollectionCreated,
    EventEmitter,
    JsonLinesEventSink,
)
from .manager import RegistryManager
from .storage import MemoryRegistryStorage, RegistryStorage, StorageError

__all__ = [
    "AuthorityKind",
    "AuthorityPhase",
    "Capability",
    "CapacityAuthority",
    "AlreadyInitializedError",
    "AlreadyRevealedError",
    "AssetNotFoundError",
    "AuthorityDestroyedError",
    "AuthorityError",
    "CapabilityMismatchError",
    "CollectionNotFoundError",
    "ContentNotFoundError",
    "DuplicateAttributeKeyError",
    "InvalidLengthError",
    "LookupMissError",
    "ProvenanceMismatchError",
    "RegistryError",
    "RestoreRejectedError",
    "RevealIncompleteError",
    "RevealTargetExceededError",
    "SupplyExhaustedError",
    "SupplyNotExhaustedError",
    "AssetRecord",
    "CollectionState",
    "Registry",
    "AssetCreated",
    "AssetRevealed",
    "AuthorityDestroyed",
    "CollectionCreated",
    "EventEmitter",
    "JsonLinesEventSink",
    "RegistryManager",
    "MemoryRegistryStorage",
    "RegistryStorage",
    "StorageError",
]
