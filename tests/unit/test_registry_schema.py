"""
Unit tests for registry schema models.
"""

import pytest
from pydantic import ValidationError

from crypto.commitments import AttributeOrder, CommitmentScheme, HashAlgorithm
from registry.authority import AuthorityKind, CapacityAuthority
from registry.exceptions import (
    CollectionNotFoundError,
    DuplicateAttributeKeyError,
    LookupMissError,
    SupplyNotExhaustedError,
)
from registry.schema import AssetRecord, CollectionState, Registry, build_attribute_map


class TestAssetRecord:
    """Test asset record model."""

    def test_valid_asset(self):
        """Test asset creation."""
        asset = AssetRecord(
            asset_id="A" * 64,
            collection_id="c1",
            number=1,
            provenance_commitment="ab" * 32,
        )

        assert asset.asset_id == "a" * 64
        assert not asset.is_revealed
        assert asset.attributes == {}
        assert asset.revealed_at is None

    def test_invalid_asset_id(self):
        """Test asset ID format validation."""
        with pytest.raises(ValidationError):
            AssetRecord(asset_id="xyz", collection_id="c1", number=1, provenance_commitment="")

    def test_number_starts_at_one(self):
        """Test sequence number lower bound."""
        with pytest.raises(ValidationError):
            AssetRecord(asset_id="a" * 64, collection_id="c1", number=0, provenance_commitment="")

    def test_commitment_stored_verbatim(self):
        """Test that commitments are not normalised."""
        asset = AssetRecord(asset_id="a" * 64, collection_id="c1", number=1,
                            provenance_commitment="NOT-HEX")
        assert asset.provenance_commitment == "NOT-HEX"

    def test_apply_reveal(self):
        """Test reveal population."""
        asset = AssetRecord(asset_id="a" * 64, collection_id="c1", number=1,
                            provenance_commitment="ab" * 32)
        asset.apply_reveal({"skin": "gold"}, "AQAA")

        assert asset.is_revealed
        assert asset.attributes == {"skin": "gold"}
        assert asset.content_locator == "AQAA"
        assert asset.revealed_at is not None


class TestAttributeMap:
    """Test attribute pairing."""

    def test_pairs_in_order(self):
        """Test insertion order is kept."""
        attributes = build_attribute_map(["b", "a"], ["2", "1"])
        assert list(attributes.items()) == [("b", "2"), ("a", "1")]

    def test_duplicate_key(self):
        """Test duplicate keys are rejected."""
        with pytest.raises(DuplicateAttributeKeyError) as exc_info:
            build_attribute_map(["a", "a"], ["1", "2"])

        assert exc_info.value.key == "a"
        assert exc_info.value.code == "duplicate_attribute_key"


class TestCollectionState:
    """Test collection state model."""

    def test_bootstrap(self):
        """Test collection creation with fresh authorities."""
        scheme = CommitmentScheme(attribute_order=AttributeOrder.GROUPED,
                                  hash_algorithm=HashAlgorithm.SHA3_256)
        collection = CollectionState.bootstrap("c1", 5, scheme)

        assert collection.mint_authority.target == 5
        assert collection.reveal_authority.target == 5
        assert collection.mint_authority.kind == AuthorityKind.MINT
        assert collection.reveal_authority.kind == AuthorityKind.REVEAL
        assert collection.mint_authority.authority_id != collection.reveal_authority.authority_id
        assert collection.scheme == scheme

    def test_authority_target_must_match(self):
        """Test authority target validation."""
        with pytest.raises(ValidationError):
            CollectionState(
                collection_id="c1",
                target_supply=5,
                mint_authority=CapacityAuthority(collection_id="c1", kind=AuthorityKind.MINT, target=4),
            )

    def test_authority_collection_must_match(self):
        """Test authority scoping validation."""
        with pytest.raises(ValidationError):
            CollectionState(
                collection_id="c1",
                target_supply=5,
                mint_authority=CapacityAuthority(collection_id="c2", kind=AuthorityKind.MINT, target=5),
            )

    def test_revealed_cannot_exceed_minted(self):
        """Test counter consistency validation."""
        with pytest.raises(ValidationError):
            CollectionState(collection_id="c1", target_supply=5, minted_count=1, revealed_count=2)

    def test_lookup(self):
        """Test sequence number index."""
        collection = CollectionState.bootstrap("c1", 5)
        collection.index_asset(1, "a" * 64)

        assert collection.lookup(1) == "a" * 64

        with pytest.raises(LookupMissError):
            collection.lookup(2)

    def test_index_rejects_duplicates(self):
        """Test that a number is indexed once."""
        collection = CollectionState.bootstrap("c1", 5)
        collection.index_asset(1, "a" * 64)

        with pytest.raises(ValueError):
            collection.index_asset(1, "b" * 64)

    def test_retire_authority(self):
        """Test retiring a complete authority."""
        collection = CollectionState.bootstrap("c1", 1)
        authority_id = collection.mint_authority.authority_id

        with pytest.raises(SupplyNotExhaustedError):
            collection.retire_authority(AuthorityKind.MINT)
        assert collection.mint_authority is not None

        collection.mint_authority.admit()
        retired = collection.retire_authority(AuthorityKind.MINT)

        assert retired.authority_id == authority_id
        assert collection.mint_authority is None
        assert collection.retired_authorities == {authority_id: AuthorityKind.MINT}

    def test_round_trip_with_index(self):
        """Test that integer index keys survive JSON persistence."""
        collection = CollectionState.bootstrap("c1", 5)
        collection.index_asset(3, "a" * 64)

        restored = CollectionState.model_validate(collection.model_dump(mode='json'))
        assert restored.lookup(3) == "a" * 64


class TestRegistry:
    """Test registry container."""

    @pytest.fixture
    def registry(self):
        registry = Registry()
        registry.add_collection(CollectionState.bootstrap("c1", 3))
        return registry

    def test_get_collection(self, registry):
        """Test collection retrieval."""
        assert registry.get_collection("c1").collection_id == "c1"

        with pytest.raises(CollectionNotFoundError):
            registry.get_collection("missing")

    def test_add_duplicate_collection(self, registry):
        """Test duplicate collection rejection."""
        with pytest.raises(ValueError):
            registry.add_collection(CollectionState.bootstrap("c1", 3))

    def test_add_asset_indexes(self, registry):
        """Test that adding an asset updates the collection."""
        asset = AssetRecord(asset_id=registry.generate_asset_id("c1", 1), collection_id="c1",
                            number=1, provenance_commitment="ab" * 32)
        registry.add_asset(asset)

        collection = registry.get_collection("c1")
        assert collection.minted_count == 1
        assert collection.lookup(1) == asset.asset_id
        assert registry.get_asset(asset.asset_id) is asset

    def test_list_assets_sorted(self, registry):
        """Test listing order."""
        for number in (2, 1, 3):
            registry.add_asset(AssetRecord(
                asset_id=registry.generate_asset_id("c1", number), collection_id="c1",
                number=number, provenance_commitment="",
            ))

        assert [a.number for a in registry.list_assets("c1")] == [1, 2, 3]
        assert registry.list_assets("other") == []

    def test_generate_asset_id(self, registry):
        """Test asset ID generation."""
        first = registry.generate_asset_id("c1", 1, nonce="n")
        second = registry.generate_asset_id("c1", 1, nonce="n")

        assert first == second
        assert len(first) == 64
        assert registry.generate_asset_id("c1", 1) != registry.generate_asset_id("c1", 1)
