"""
Deferred Reveal Asset Protocol - Registry Schema Models

This module defines the Pydantic models for asset records, collections and
the persisted registry.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from crypto.commitments import (
    AttributeOrder,
    CommitmentScheme,
    HashAlgorithm,
    NumberEncoding,
)

from .authority import AuthorityKind, CapacityAuthority
from .exceptions import (
    CollectionNotFoundError,
    DuplicateAttributeKeyError,
    LookupMissError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_attribute_map(keys: Sequence[str], values: Sequence[str]) -> Dict[str, str]:
    """Pair keys with values by index, rejecting duplicate keys."""
    attributes: Dict[str, str] = {}
    for key, value in zip(keys, values):
        if key in attributes:
            raise DuplicateAttributeKeyError(key)
        attributes[key] = value
    return attributes


class AssetRecord(BaseModel):
    """Minted asset with its commitment and, once revealed, its content."""

    asset_id: str = Field(..., description="32-byte SHA-256 asset identifier (hex)")
    collection_id: str = Field(..., min_length=1)
    number: int = Field(..., ge=1, description="1-based sequence number within the collection")
    name: str = Field(default="")
    description: str = Field(default="")
    external_url: str = Field(default="")
    provenance_commitment: str = Field(..., description="Commitment published at mint time")
    attributes: Dict[str, str] = Field(default_factory=dict)
    content_locator: str = Field(default="")
    minted_at: datetime = Field(default_factory=_utcnow)
    revealed_at: Optional[datetime] = Field(None)

    @field_validator('asset_id')
    @classmethod
    def validate_asset_id(cls, v):
        """Validate asset ID format (32-byte SHA-256)."""
        if not re.match(r'^[a-fA-F0-9]{64}$', v):
            raise ValueError('Asset ID must be 64-character hex string (32 bytes)')
        return v.lower()

    @property
    def is_revealed(self) -> bool:
        return bool(self.content_locator)

    def apply_reveal(self, attributes: Dict[str, str], locator: str) -> None:
        """Populate revealed content. Callers verify the commitment first."""
        self.attributes = dict(attributes)
        self.content_locator = locator
        self.revealed_at = _utcnow()


class CollectionState(BaseModel):
    """Per-collection capacity and index state."""

    collection_id: str = Field(..., min_length=1)
    target_supply: int = Field(..., gt=0)
    number_encoding: NumberEncoding = Field(default=NumberEncoding.U64_LE)
    attribute_order: AttributeOrder = Field(default=AttributeOrder.INTERLEAVED)
    hash_algorithm: HashAlgorithm = Field(default=HashAlgorithm.SHA256)
    mint_authority: Optional[CapacityAuthority] = Field(None)
    reveal_authority: Optional[CapacityAuthority] = Field(None)
    retired_authorities: Dict[str, AuthorityKind] = Field(default_factory=dict)
    minted_count: int = Field(default=0, ge=0)
    revealed_count: int = Field(default=0, ge=0)
    number_index: Dict[int, str] = Field(default_factory=dict, description="Sequence number -> asset ID")
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode='after')
    def validate_authorities(self):
        """Validate authority scoping and counters."""
        for authority in (self.mint_authority, self.reveal_authority):
            if authority is None:
                continue
            if authority.collection_id != self.collection_id:
                raise ValueError('Authority belongs to a different collection')
            if authority.target != self.target_supply:
                raise ValueError('Authority target must equal collection target supply')

        if self.revealed_count > self.minted_count:
            raise ValueError('Revealed count cannot exceed minted count')

        return self

    @classmethod
    def bootstrap(cls, collection_id: str, target_supply: int,
                  scheme: Optional[CommitmentScheme] = None) -> 'CollectionState':
        """Create a collection with fresh mint and reveal authorities."""
        scheme = scheme or CommitmentScheme()
        return cls(
            collection_id=collection_id,
            target_supply=target_supply,
            number_encoding=scheme.number_encoding,
            attribute_order=scheme.attribute_order,
            hash_algorithm=scheme.hash_algorithm,
            mint_authority=CapacityAuthority(
                collection_id=collection_id, kind=AuthorityKind.MINT, target=target_supply
            ),
            reveal_authority=CapacityAuthority(
                collection_id=collection_id, kind=AuthorityKind.REVEAL, target=target_supply
            ),
        )

    @property
    def scheme(self) -> CommitmentScheme:
        """Commitment scheme pinned for this collection."""
        return CommitmentScheme(
            number_encoding=self.number_encoding,
            attribute_order=self.attribute_order,
            hash_algorithm=self.hash_algorithm,
        )

    def get_authority(self, kind: AuthorityKind) -> Optional[CapacityAuthority]:
        if kind == AuthorityKind.MINT:
            return self.mint_authority
        return self.reveal_authority

    def retire_authority(self, kind: AuthorityKind) -> CapacityAuthority:
        """Remove a completed authority; its ID is remembered so it can never be reused."""
        authority = self.get_authority(kind)
        if authority is None:
            raise ValueError(f"No live {kind.value} authority")

        authority.ensure_destroyable()

        self.retired_authorities[authority.authority_id] = kind
        if kind == AuthorityKind.MINT:
            self.mint_authority = None
        else:
            self.reveal_authority = None

        return authority

    def index_asset(self, number: int, asset_id: str) -> None:
        if number in self.number_index:
            raise ValueError(f"Sequence number {number} already indexed")
        self.number_index[number] = asset_id

    def lookup(self, number: int) -> str:
        """Resolve a sequence number to its asset ID."""
        asset_id = self.number_index.get(number)
        if asset_id is None:
            raise LookupMissError(
                f"No asset with number {number} in collection {self.collection_id}",
                collection_id=self.collection_id,
            )
        return asset_id


class RegistryMetadata(BaseModel):
    """Registry metadata model."""

    version: str = Field(default="1.0.0", description="Registry schema version")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    description: str = Field(default="Deferred Reveal Asset Protocol Registry")

    def update_timestamp(self) -> None:
        """Update the last modified timestamp."""
        self.updated_at = _utcnow()


class Registry(BaseModel):
    """Complete registry model."""

    metadata: RegistryMetadata = Field(default_factory=RegistryMetadata)
    collections: Dict[str, CollectionState] = Field(default_factory=dict)
    assets: Dict[str, AssetRecord] = Field(default_factory=dict)

    def get_collection(self, collection_id: str) -> CollectionState:
        """Get a collection by ID, raising if absent."""
        collection = self.collections.get(collection_id)
        if collection is None:
            raise CollectionNotFoundError(
                f"Collection {collection_id} not found", collection_id=collection_id
            )
        return collection

    def add_collection(self, collection: CollectionState) -> None:
        if collection.collection_id in self.collections:
            raise ValueError(f"Collection {collection.collection_id} already exists")

        self.collections[collection.collection_id] = collection
        self.metadata.update_timestamp()

    def add_asset(self, asset: AssetRecord) -> None:
        """Add an asset and index it under its collection."""
        if asset.asset_id in self.assets:
            raise ValueError(f"Asset {asset.asset_id} already exists")

        collection = self.get_collection(asset.collection_id)
        collection.index_asset(asset.number, asset.asset_id)
        collection.minted_count += 1

        self.assets[asset.asset_id] = asset
        self.metadata.update_timestamp()

    def get_asset(self, asset_id: str) -> Optional[AssetRecord]:
        """Get an asset by ID."""
        return self.assets.get(asset_id)

    def list_assets(self, collection_id: Optional[str] = None) -> List[AssetRecord]:
        """List assets ordered by collection and sequence number."""
        assets = list(self.assets.values())

        if collection_id:
            assets = [a for a in assets if a.collection_id == collection_id]

        assets.sort(key=lambda a: (a.collection_id, a.number))
        return assets

    def generate_asset_id(self, collection_id: str, number: int, nonce: Optional[str] = None) -> str:
        """Generate a unique asset ID."""
        if nonce is None:
            nonce = str(uuid4())

        data = f"{collection_id}:{number}:{nonce}".encode('utf-8')
        asset_id = hashlib.sha256(data).hexdigest()

        if asset_id in self.assets:
            return self.generate_asset_id(collection_id, number)

        return asset_id
