"""
Integration tests for complete registry workflows.
"""

import tempfile
import threading
from pathlib import Path

import pytest

from crypto.commitments import (
    AttributeOrder,
    CommitmentScheme,
    HashAlgorithm,
    NumberEncoding,
    compute_provenance_digest,
)
from nft.content import LocalContentGate
from registry.events import EventEmitter, JsonLinesEventSink
from registry.exceptions import (
    AlreadyRevealedError,
    AuthorityDestroyedError,
    ProvenanceMismatchError,
    RestoreRejectedError,
    RevealIncompleteError,
    SupplyExhaustedError,
)
from registry.manager import RegistryManager


class TestRegistryIntegration:
    """Test complete registry workflows and integration scenarios."""

    @pytest.fixture
    def temp_storage_dir(self):
        """Create temporary storage directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            yield temp_dir

    @pytest.fixture
    def registry_manager(self, temp_storage_dir):
        """Create registry manager with temporary storage."""
        return RegistryManager(storage_dir=temp_storage_dir, enable_cache=True)

    @pytest.fixture
    def content_gate(self, temp_storage_dir):
        """Directory-backed content gate next to the registry."""
        return LocalContentGate(Path(temp_storage_dir) / "content")

    def _plans(self, content_gate, count, scheme=None):
        """Publish content and compute commitments for sequence numbers 1..count."""
        plans = []
        for number in range(1, count + 1):
            locator = content_gate.publish(f"artwork-{number}".encode())
            keys = ["background", "eyes"]
            values = [f"bg-{number % 2}", f"eyes-{number}"]
            commitment = compute_provenance_digest(number, keys, values, locator, scheme)
            plans.append((keys, values, locator, commitment))
        return plans

    def test_complete_collection_lifecycle(self, registry_manager, content_gate):
        """Test create, mint, reveal and retire of a whole collection."""
        # 1. Create collection
        mint_cap, reveal_cap = registry_manager.create_collection(4, collection_id="lifecycle")
        plans = self._plans(content_gate, 4)

        # 2. Mint the full supply in one batch
        assets = registry_manager.bulk_mint(
            names=[f"Item #{n}" for n in range(1, 5)],
            descriptions=[""] * 4,
            provenance_commitments=[p[3] for p in plans],
            mint_authority=mint_cap,
        )
        assert [a.number for a in assets] == [1, 2, 3, 4]
        assert registry_manager.size(mint_cap) == 4

        with pytest.raises(SupplyExhaustedError):
            registry_manager.mint("", "", "", plans[0][3], mint_cap, "lifecycle")

        # 3. Reveal authority cannot retire before every asset is revealed
        with pytest.raises(RevealIncompleteError):
            registry_manager.destroy_reveal_authority(reveal_cap)

        # 4. Reveal out of order
        for index in (2, 0, 3, 1):
            keys, values, locator, _ = plans[index]
            asset_id = registry_manager.lookup("lifecycle", index + 1)
            revealed = registry_manager.reveal(asset_id, keys, values, locator,
                                               reveal_cap, content_gate)
            assert revealed.attributes == dict(zip(keys, values))

        stats = registry_manager.get_collection_stats("lifecycle")
        assert stats['revealed'] == 4
        assert stats['reveal_completion_percentage'] == 100.0
        assert stats['reveal_authority']['status'] == 'complete'

        # 5. Retire both authorities
        registry_manager.destroy_mint_authority(mint_cap)
        registry_manager.destroy_reveal_authority(reveal_cap)

        with pytest.raises(AuthorityDestroyedError):
            registry_manager.size(mint_cap)

        stats = registry_manager.get_collection_stats("lifecycle")
        assert stats['mint_authority'] == {'status': 'destroyed'}
        assert stats['reveal_authority'] == {'status': 'destroyed'}

        # Revealed data remains queryable after retirement
        asset = registry_manager.get_asset(registry_manager.lookup("lifecycle", 3))
        assert asset.content_locator == plans[2][2]

    def test_persistence_across_managers(self, temp_storage_dir, content_gate):
        """Test that a second manager on the same directory sees all state."""
        first = RegistryManager(storage_dir=temp_storage_dir)
        mint_cap, reveal_cap = first.create_collection(2, collection_id="persisted")
        plans = self._plans(content_gate, 2)

        asset = first.mint("One", "first", "https://example.com/1", plans[0][3],
                           mint_cap, "persisted")
        keys, values, locator, _ = plans[0]
        first.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)

        second = RegistryManager(storage_dir=temp_storage_dir)

        loaded = second.get_asset(asset.asset_id)
        assert loaded.name == "One"
        assert loaded.external_url == "https://example.com/1"
        assert loaded.is_revealed
        assert second.size(mint_cap) == 1
        assert second.size(reveal_cap) == 1

        # Capabilities issued by the first manager work on the second
        follow_up = second.mint("Two", "", "", plans[1][3], mint_cap, "persisted")
        assert follow_up.number == 2

        with pytest.raises(AlreadyRevealedError):
            second.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)

    def test_scheme_pinned_per_collection(self, temp_storage_dir, content_gate):
        """Test that a collection keeps its scheme after reload."""
        scheme = CommitmentScheme(NumberEncoding.DECIMAL, AttributeOrder.GROUPED,
                                  HashAlgorithm.SHA3_256)
        manager = RegistryManager(storage_dir=temp_storage_dir)
        mint_cap, reveal_cap = manager.create_collection(1, scheme=scheme)
        keys, values, locator, commitment = self._plans(content_gate, 1, scheme)[0]
        asset = manager.mint("", "", "", commitment, mint_cap, mint_cap.collection_id)

        reloaded = RegistryManager(storage_dir=temp_storage_dir)
        assert reloaded.get_collection(mint_cap.collection_id).scheme == scheme

        assert reloaded.verify_reveal(asset.asset_id, keys, values, locator)
        assert compute_provenance_digest(1, keys, values, locator) != commitment

        revealed = reloaded.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)
        assert revealed.is_revealed

    def test_failed_reveal_changes_nothing(self, registry_manager, content_gate):
        """Test that a rejected reveal leaves file state untouched."""
        mint_cap, reveal_cap = registry_manager.create_collection(1)
        keys, values, locator, commitment = self._plans(content_gate, 1)[0]
        asset = registry_manager.mint("", "", "", commitment, mint_cap, mint_cap.collection_id)

        with pytest.raises(ProvenanceMismatchError):
            registry_manager.reveal(asset.asset_id, keys, ["tampered", values[1]], locator,
                                    reveal_cap, content_gate)

        registry_manager.reload_registry()
        assert not registry_manager.get_asset(asset.asset_id).is_revealed
        assert registry_manager.size(reveal_cap) == 0

    def test_backup_and_restore(self, registry_manager):
        """Test that only backups holding the current state can be restored."""
        mint_cap, _ = registry_manager.create_collection(3, collection_id="backed-up")
        asset = registry_manager.mint("", "", "", "aa" * 32, mint_cap, "backed-up")

        # Newest backup was taken just before the mint was written
        backups = registry_manager.list_backups()
        assert backups

        with pytest.raises(RestoreRejectedError) as exc_info:
            registry_manager.restore_backup(backups[0])
        assert any(asset.asset_id in v for v in exc_info.value.violations)

        registry_manager.reload_registry()
        assert registry_manager.size(mint_cap) == 1
        assert registry_manager.lookup("backed-up", 1) == asset.asset_id

        # A backup of the current state restores cleanly
        assert registry_manager.backup_registry()
        assert registry_manager.restore_backup(registry_manager.list_backups()[0])
        assert registry_manager.size(mint_cap) == 1

        assert not registry_manager.restore_backup("19700101_000000_000000")

    def test_restore_cannot_resurrect_destroyed_authority(self, registry_manager):
        """Test that a destroyed mint authority stays destroyed across restores."""
        mint_cap, _ = registry_manager.create_collection(1, collection_id="one-of-one")
        registry_manager.mint("", "", "", "aa" * 32, mint_cap, "one-of-one")
        registry_manager.destroy_mint_authority(mint_cap)

        backups = registry_manager.list_backups()
        assert len(backups) >= 2

        # backups[0] predates the destruction, backups[1] predates the mint
        for timestamp in backups[:2]:
            with pytest.raises(RestoreRejectedError) as exc_info:
                registry_manager.restore_backup(timestamp)
            assert any(mint_cap.authority_id in v for v in exc_info.value.violations)

        with pytest.raises(AuthorityDestroyedError):
            registry_manager.size(mint_cap)
        with pytest.raises(AuthorityDestroyedError):
            registry_manager.mint("", "", "", "bb" * 32, mint_cap, "one-of-one")

        fresh = RegistryManager(storage_dir=registry_manager.storage.storage_dir)
        assert len(fresh.list_assets("one-of-one")) == 1

    def test_managers_share_one_store(self, temp_storage_dir, content_gate):
        """Test that a long-lived manager sees writes made by another one."""
        observer = RegistryManager(storage_dir=temp_storage_dir, enable_cache=True)
        writer = RegistryManager(storage_dir=temp_storage_dir, enable_cache=True)

        mint_cap, reveal_cap = writer.create_collection(2, collection_id="shared")
        keys, values, locator, commitment = self._plans(content_gate, 1)[0]
        asset = writer.mint("Shared", "", "", commitment, mint_cap, "shared")

        assert observer.size(mint_cap) == 1
        assert observer.lookup("shared", 1) == asset.asset_id
        assert observer.verify_reveal(asset.asset_id, keys, values, locator)
        assert observer.get_collection_stats("shared")['minted'] == 1

        # Cache the unrevealed record on the writer, then reveal through the observer
        assert not writer.get_asset(asset.asset_id).is_revealed
        revealed = observer.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)
        assert revealed.is_revealed

        assert writer.get_asset(asset.asset_id).is_revealed
        assert writer.size(reveal_cap) == 1
        with pytest.raises(AlreadyRevealedError):
            writer.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)

    def test_events_logged_to_file(self, temp_storage_dir, content_gate):
        """Test the configured event log across a short lifecycle."""
        log_file = Path(temp_storage_dir) / "events.jsonl"
        manager = RegistryManager.from_config({
            'registry': {'storage_dir': str(Path(temp_storage_dir) / "registry")},
            'events': {'log_file': str(log_file)},
        })

        mint_cap, reveal_cap = manager.create_collection(1)
        keys, values, locator, commitment = self._plans(content_gate, 1)[0]
        asset = manager.mint("", "", "", commitment, mint_cap, mint_cap.collection_id)
        manager.reveal(asset.asset_id, keys, values, locator, reveal_cap, content_gate)
        manager.destroy_mint_authority(mint_cap)

        event_types = [e['event_type'] for e in JsonLinesEventSink(log_file).read_events()]
        assert event_types == ["CollectionCreated", "AssetCreated", "AssetRevealed",
                               "AuthorityDestroyed"]

    def test_concurrent_mint_and_reveal(self, temp_storage_dir):
        """Test concurrent writers across two collections sharing one file."""
        events = EventEmitter()
        manager = RegistryManager(storage_dir=temp_storage_dir, events=events)
        caps = [manager.create_collection(5)[0] for _ in range(2)]
        errors = []

        def worker(capability):
            for _ in range(6):
                try:
                    manager.mint("", "", "", "bb" * 32, capability, capability.collection_id)
                except SupplyExhaustedError:
                    pass
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=worker, args=(cap,)) for cap in caps for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []

        reloaded = RegistryManager(storage_dir=temp_storage_dir)
        for capability in caps:
            assert reloaded.size(capability) == 5
            numbers = [a.number for a in reloaded.list_assets(capability.collection_id)]
            assert numbers == [1, 2, 3, 4, 5]

        assert reloaded.get_registry_stats()['total_assets'] == 10
