"""
Deferred Reveal Asset Protocol - Registry Manager

This module provides the main registry interface: collection bootstrap,
capability-gated mint, bulk mint, reveal and authority destruction, plus
cached queries over the persisted registry.

Every write runs as one atomic unit. It takes the collection's exclusive
lock, applies the mutation to a freshly loaded copy of the registry, persists
it, and only then swaps it in. A mutation that raises leaves storage and the
in-memory registry untouched. Notifications are emitted after the write
commits.

Reads reload the registry whenever the stored document changed underneath,
so several managers can share one store. Restoring a backup is refused when
it would undo a mint, a reveal or an authority destruction.
"""

import logging
import time
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union
from uuid import uuid4

from crypto.commitments import DEFAULT_SCHEME, CommitmentScheme, verify_provenance
from crypto.locator import decode_locator
from nft.content import ContentGate

from .authority import AuthorityKind, Capability, CapacityAuthority
from .concurrency import CollectionLockTable
from .events import (
    AssetCreated,
    AssetRevealed,
    AuthorityDestroyed,
    CollectionCreated,
    EventEmitter,
    JsonLinesEventSink,
)
from .exceptions import (
    AlreadyInitializedError,
    AlreadyRevealedError,
    AssetNotFoundError,
    AuthorityDestroyedError,
    CapabilityMismatchError,
    ContentNotFoundError,
    InvalidLengthError,
    ProvenanceMismatchError,
    RegistryError,
    RestoreRejectedError,
)
from .schema import AssetRecord, CollectionState, Registry, build_attribute_map
from .storage import MemoryRegistryStorage, RegistryStorage


T = TypeVar('T')

StorageBackend = Union[RegistryStorage, MemoryRegistryStorage]


class CacheEntry:
    """Cache entry with TTL support."""

    def __init__(self, value: Any, ttl_seconds: float = 300.0):
        self.value = value
        self.created_at = time.time()
        self.ttl_seconds = ttl_seconds

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return time.time() - self.created_at > self.ttl_seconds


class RegistryCache:
    """Thread-safe caching layer with TTL support."""

    def __init__(self, default_ttl: float = 300.0):
        self.default_ttl = default_ttl
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = RLock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry and not entry.is_expired():
                return entry.value
            elif entry:
                del self._cache[key]
            return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache with TTL."""
        with self._lock:
            ttl = ttl or self.default_ttl
            self._cache[key] = CacheEntry(value, ttl)

    def invalidate(self, key: str) -> None:
        """Remove specific key from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> None:
        """Remove keys containing pattern from cache."""
        with self._lock:
            keys_to_remove = [k for k in self._cache.keys() if pattern in k]
            for key in keys_to_remove:
                del self._cache[key]

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def find_rollbacks(current: Registry, backup: Registry) -> List[str]:
    """
    List what restoring ``backup`` over ``current`` would undo.

    Counters only grow and destruction is permanent, so a backup is safe only
    if it holds every collection, asset, reveal and retired authority of the
    current registry and no live authority counts less than it does now.
    """
    violations = []

    for asset_id, asset in current.assets.items():
        restored = backup.assets.get(asset_id)
        if restored is None:
            violations.append(f"asset {asset_id} would be removed")
        elif asset.is_revealed and not restored.is_revealed:
            violations.append(f"asset {asset_id} would be unrevealed")

    for collection_id, state in current.collections.items():
        restored = backup.collections.get(collection_id)
        if restored is None:
            violations.append(f"collection {collection_id} would be removed")
            continue

        for authority_id in state.retired_authorities:
            if authority_id not in restored.retired_authorities:
                violations.append(f"retired authority {authority_id} would be resurrected")

        for kind in AuthorityKind:
            authority = state.get_authority(kind)
            if authority is None:
                continue
            old = restored.get_authority(kind)
            if old is None or old.authority_id != authority.authority_id:
                violations.append(f"{kind.value} authority of {collection_id} would be replaced")
            elif old.count < authority.count:
                violations.append(
                    f"{kind.value} count of {collection_id} would drop from {authority.count} to {old.count}"
                )

    return violations


class RegistryManager:
    """Main registry manager with mint, reveal and authority operations."""

    def __init__(
        self,
        storage_dir: Optional[str] = "registry_data",
        cache_ttl: float = 300.0,
        enable_cache: bool = True,
        default_scheme: Optional[CommitmentScheme] = None,
        events: Optional[EventEmitter] = None,
        storage: Optional[StorageBackend] = None,
        lock_timeout: float = 30.0
    ):
        """
        Initialize the registry manager.

        Args:
            storage_dir: Directory for the registry file; None keeps the registry in memory
            cache_ttl: Cache time-to-live in seconds
            enable_cache: Whether to cache query results
            default_scheme: Commitment scheme for collections created without one
            events: Event emitter for notifications
            storage: Explicit storage backend, overrides storage_dir
            lock_timeout: Seconds to wait for a collection lock
        """
        if storage is None:
            storage = RegistryStorage(storage_dir) if storage_dir is not None else MemoryRegistryStorage()

        self.storage = storage
        self.cache = RegistryCache(cache_ttl) if enable_cache else None
        self.default_scheme = default_scheme or DEFAULT_SCHEME
        self.events = events or EventEmitter()
        self.locks = CollectionLockTable(timeout=lock_timeout)
        self.logger = logging.getLogger(__name__)
        self._lock = RLock()

        self._checksum = self.storage.checksum()
        self._registry = self.storage.load_registry()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'RegistryManager':
        """Build a manager from a loaded configuration mapping."""
        registry_config = config.get('registry', {})
        storage_dir = registry_config.get('storage_dir', 'registry_data')

        if storage_dir in (None, '', ':memory:'):
            storage = MemoryRegistryStorage()
        else:
            storage = RegistryStorage(
                storage_dir,
                compressed=registry_config.get('compressed', False),
                backup_count=registry_config.get('backup_count', 5),
                backup_on_write=registry_config.get('backup_on_write', True),
                lock_timeout=registry_config.get('lock_timeout', 30.0),
            )

        events = EventEmitter()
        log_file = config.get('events', {}).get('log_file')
        if log_file:
            events.subscribe(JsonLinesEventSink(log_file))

        return cls(
            storage=storage,
            cache_ttl=registry_config.get('cache_ttl', 300.0),
            enable_cache=registry_config.get('cache_enabled', True),
            default_scheme=CommitmentScheme.from_dict(config.get('provenance', {})),
            events=events,
            lock_timeout=registry_config.get('lock_timeout', 30.0),
        )

    # Cache helpers

    def _invalidate_cache(self, collection_id: Optional[str] = None) -> None:
        """Invalidate relevant cache entries."""
        if not self.cache:
            return

        if collection_id:
            self.cache.invalidate_pattern(f":{collection_id}")

        self.cache.invalidate_pattern("asset:")
        self.cache.invalidate_pattern("list:")

    def _cache_get(self, key: str) -> Optional[Any]:
        return self.cache.get(key) if self.cache else None

    def _cache_set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if self.cache:
            self.cache.set(key, value, ttl)

    def _snapshot(self) -> Registry:
        """
        Registry as currently stored.

        The store may be shared with other managers or processes, so the
        cached registry is replaced whenever the stored document's checksum
        differs from the one last loaded or written here.
        """
        checksum = self.storage.checksum()
        if checksum != self._checksum:
            with self._lock:
                self.logger.debug(f"Registry changed in storage, reloading ({checksum})")
                self._registry = self.storage.load_registry()
                self._checksum = checksum
                if self.cache:
                    self.cache.clear()

        return self._registry

    # Write path

    def _commit(self, collection_id: str, mutation: Callable[[Registry], T]) -> T:
        """Apply a mutation atomically under the collection's lock."""
        outcome: Dict[str, Any] = {}

        def updater(registry: Registry) -> Registry:
            outcome['value'] = mutation(registry)
            registry.metadata.update_timestamp()
            return registry

        with self.locks.exclusive(collection_id):
            with self._lock:
                registry, checksum = self.storage.update_registry(updater)
                self._registry = registry
                self._checksum = checksum
                self._invalidate_cache(collection_id)

        self.logger.debug(f"Committed update to {collection_id} (checksum {checksum[:12]})")
        return outcome['value']

    def _resolve_authority(
        self,
        registry: Registry,
        capability: Capability,
        kind: AuthorityKind,
        collection_id: Optional[str] = None
    ) -> Tuple[CollectionState, CapacityAuthority]:
        """Check a capability against the live authority it names."""
        if not isinstance(capability, Capability):
            raise CapabilityMismatchError("A capability is required for this operation")

        if capability.kind != kind:
            raise CapabilityMismatchError(
                f"Expected a {kind.value} capability, got {capability.kind.value}",
                collection_id=capability.collection_id,
            )

        if collection_id is not None and capability.collection_id != collection_id:
            raise CapabilityMismatchError(
                f"Capability for {capability.collection_id} cannot act on {collection_id}",
                collection_id=collection_id,
            )

        collection = registry.get_collection(capability.collection_id)

        if capability.authority_id in collection.retired_authorities:
            raise AuthorityDestroyedError(
                f"{kind.value.capitalize()} authority {capability.authority_id} has been destroyed",
                collection_id=collection.collection_id,
            )

        authority = collection.get_authority(kind)
        if authority is None or not authority.matches(capability):
            raise CapabilityMismatchError(
                "Capability does not name a live authority",
                collection_id=collection.collection_id,
            )

        return collection, authority

    def _new_asset(self, registry: Registry, collection_id: str, number: int,
                   name: str, description: str, external_url: str,
                   provenance_commitment: str) -> AssetRecord:
        return AssetRecord(
            asset_id=registry.generate_asset_id(collection_id, number),
            collection_id=collection_id,
            number=number,
            name=name,
            description=description,
            external_url=external_url,
            provenance_commitment=provenance_commitment,
        )

    # Collection bootstrap

    def create_collection(
        self,
        target_supply: int,
        collection_id: Optional[str] = None,
        scheme: Optional[CommitmentScheme] = None
    ) -> Tuple[Capability, Capability]:
        """
        Create a collection with fresh mint and reveal authorities.

        Returns:
            (mint capability, reveal capability)
        """
        if isinstance(target_supply, bool) or not isinstance(target_supply, int) or target_supply <= 0:
            raise ValueError("Target supply must be a positive integer")

        collection_id = collection_id or uuid4().hex
        scheme = scheme or self.default_scheme

        def mutation(registry: Registry) -> Tuple[Capability, Capability]:
            if collection_id in registry.collections:
                raise AlreadyInitializedError(
                    f"Collection {collection_id} already exists", collection_id=collection_id
                )

            collection = CollectionState.bootstrap(collection_id, target_supply, scheme)
            registry.add_collection(collection)
            return collection.mint_authority.capability(), collection.reveal_authority.capability()

        try:
            capabilities = self._commit(collection_id, mutation)
        except RegistryError as e:
            self.logger.warning(f"Collection creation rejected ({e.code}): {e}")
            raise

        self.logger.info(f"Created collection {collection_id} with target supply {target_supply}")
        self.events.emit(CollectionCreated(collection_id=collection_id, target_supply=target_supply))

        return capabilities

    # Mint

    def mint(
        self,
        name: str,
        description: str,
        external_url: str,
        provenance_commitment: str,
        mint_authority: Capability,
        collection_id: str
    ) -> AssetRecord:
        """
        Mint one asset bound to a provenance commitment.

        The commitment is stored verbatim. On failure no asset is created and
        the mint counter is unchanged.
        """
        def mutation(registry: Registry) -> AssetRecord:
            _, authority = self._resolve_authority(
                registry, mint_authority, AuthorityKind.MINT, collection_id
            )
            number = authority.admit()
            asset = self._new_asset(
                registry, collection_id, number, name, description,
                external_url, provenance_commitment
            )
            registry.add_asset(asset)
            return asset

        try:
            asset = self._commit(collection_id, mutation)
        except RegistryError as e:
            self.logger.warning(f"Mint rejected for {collection_id} ({e.code}): {e}")
            raise

        self.logger.info(f"Minted #{asset.number} in {collection_id} as {asset.asset_id}")
        self.events.emit(AssetCreated(
            collection_id=collection_id,
            asset_id=asset.asset_id,
            number=asset.number,
            provenance_commitment=asset.provenance_commitment,
        ))

        return asset

    def bulk_mint(
        self,
        names: Sequence[str],
        descriptions: Sequence[str],
        provenance_commitments: Sequence[str],
        mint_authority: Capability,
        external_urls: Optional[Sequence[str]] = None
    ) -> List[AssetRecord]:
        """
        Mint several assets in one atomic operation.

        Inputs are parallel sequences. Capacity for every element is reserved
        up front; sequence numbers ascend in input order.
        """
        lengths = {
            'names': len(names),
            'descriptions': len(descriptions),
            'provenance_commitments': len(provenance_commitments),
        }
        if external_urls is not None:
            lengths['external_urls'] = len(external_urls)

        collection_id = mint_authority.collection_id if isinstance(mint_authority, Capability) else ""

        if len(set(lengths.values())) > 1:
            self.logger.warning(f"Bulk mint rejected for {collection_id}: {lengths}")
            raise InvalidLengthError(lengths=lengths, collection_id=collection_id)

        urls = list(external_urls) if external_urls is not None else [""] * len(names)

        def mutation(registry: Registry) -> List[AssetRecord]:
            _, authority = self._resolve_authority(registry, mint_authority, AuthorityKind.MINT)
            numbers = authority.admit_many(len(names))

            assets = []
            for number, name, description, url, commitment in zip(
                numbers, names, descriptions, urls, provenance_commitments
            ):
                asset = self._new_asset(
                    registry, collection_id, number, name, description, url, commitment
                )
                registry.add_asset(asset)
                assets.append(asset)
            return assets

        try:
            assets = self._commit(collection_id, mutation)
        except RegistryError as e:
            self.logger.warning(f"Bulk mint rejected for {collection_id} ({e.code}): {e}")
            raise

        self.logger.info(f"Bulk minted {len(assets)} assets in {collection_id}")
        for asset in assets:
            self.events.emit(AssetCreated(
                collection_id=collection_id,
                asset_id=asset.asset_id,
                number=asset.number,
                provenance_commitment=asset.provenance_commitment,
            ))

        return assets

    # Reveal

    def _check_reveal(
        self,
        registry: Registry,
        asset_id: str,
        keys: List[str],
        values: List[str],
        reveal_authority: Capability
    ) -> Tuple[AssetRecord, CollectionState, CapacityAuthority]:
        asset = registry.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

        collection, authority = self._resolve_authority(
            registry, reveal_authority, AuthorityKind.REVEAL, asset.collection_id
        )

        if len(keys) != len(values):
            raise InvalidLengthError(
                lengths={'keys': len(keys), 'values': len(values)},
                collection_id=asset.collection_id,
            )

        if asset.is_revealed:
            raise AlreadyRevealedError(
                f"Asset {asset_id} was already revealed", collection_id=asset.collection_id
            )

        return asset, collection, authority

    def reveal(
        self,
        asset_id: str,
        keys: Sequence[str],
        values: Sequence[str],
        locator: str,
        reveal_authority: Capability,
        content_gate: ContentGate
    ) -> AssetRecord:
        """
        Reveal an asset's attributes and content.

        The content must exist in the content store and the disclosed inputs
        must hash to the commitment stored at mint time. Reveal is one-shot.
        """
        keys = list(keys)
        values = list(values)

        try:
            asset, _, _ = self._check_reveal(self._snapshot(), asset_id, keys, values, reveal_authority)
            collection_id = asset.collection_id

            content_id = decode_locator(locator)
            if not content_gate.exists(content_id):
                raise ContentNotFoundError(
                    f"Content {locator} not found", collection_id=collection_id
                )

            def mutation(registry: Registry) -> AssetRecord:
                asset, collection, authority = self._check_reveal(
                    registry, asset_id, keys, values, reveal_authority
                )

                if not verify_provenance(asset.provenance_commitment, asset.number,
                                         keys, values, locator, collection.scheme):
                    raise ProvenanceMismatchError(
                        f"Revealed content does not match commitment of asset #{asset.number}",
                        collection_id=collection.collection_id,
                    )

                attributes = build_attribute_map(keys, values)
                authority.admit()
                asset.apply_reveal(attributes, locator)
                collection.revealed_count += 1
                return asset

            asset = self._commit(collection_id, mutation)

        except RegistryError as e:
            self.logger.warning(f"Reveal rejected for {asset_id} ({e.code}): {e}")
            raise

        self.logger.info(f"Revealed #{asset.number} in {asset.collection_id}")
        self.events.emit(AssetRevealed(collection_id=asset.collection_id, asset_id=asset.asset_id))

        return asset

    def verify_reveal(self, asset_id: str, keys: Sequence[str], values: Sequence[str],
                      locator: str) -> bool:
        """Check reveal inputs against an asset's commitment without changing anything."""
        registry = self._snapshot()
        asset = registry.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

        if len(keys) != len(values):
            raise InvalidLengthError(lengths={'keys': len(keys), 'values': len(values)})

        collection = registry.get_collection(asset.collection_id)
        return verify_provenance(
            asset.provenance_commitment, asset.number, list(keys), list(values),
            locator, collection.scheme
        )

    # Authority destruction

    def _destroy(self, capability: Capability, kind: AuthorityKind) -> None:
        collection_id = capability.collection_id if isinstance(capability, Capability) else ""

        def mutation(registry: Registry) -> CapacityAuthority:
            collection, _ = self._resolve_authority(registry, capability, kind)
            return collection.retire_authority(kind)

        try:
            authority = self._commit(collection_id, mutation)
        except RegistryError as e:
            self.logger.warning(f"Destroy of {kind.value} authority rejected ({e.code}): {e}")
            raise

        self.logger.info(f"Destroyed {kind.value} authority {authority.authority_id} of {collection_id}")
        self.events.emit(AuthorityDestroyed(
            collection_id=collection_id,
            authority_id=authority.authority_id,
            kind=kind.value,
        ))

    def destroy_mint_authority(self, mint_authority: Capability) -> None:
        """Destroy a mint authority whose full supply has been minted."""
        self._destroy(mint_authority, AuthorityKind.MINT)

    def destroy_reveal_authority(self, reveal_authority: Capability) -> None:
        """Destroy a reveal authority whose full supply has been revealed."""
        self._destroy(reveal_authority, AuthorityKind.REVEAL)

    # Queries

    def size(self, capability: Capability) -> int:
        """Current counter of the authority a capability names."""
        if not isinstance(capability, Capability):
            raise CapabilityMismatchError("A capability is required for this operation")

        _, authority = self._resolve_authority(self._snapshot(), capability, capability.kind)
        return authority.size()

    def lookup(self, collection_id: str, number: int) -> str:
        """Resolve a sequence number to the asset ID minted with it."""
        registry = self._snapshot()
        cache_key = f"lookup:{number}:{collection_id}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        asset_id = registry.get_collection(collection_id).lookup(number)
        self._cache_set(cache_key, asset_id)

        return asset_id

    def get_asset(self, asset_id: str) -> Optional[AssetRecord]:
        """Get asset by ID with caching."""
        registry = self._snapshot()
        cache_key = f"asset:{asset_id}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        asset = registry.get_asset(asset_id)
        if asset is not None:
            self._cache_set(cache_key, asset)

        return asset

    def get_collection(self, collection_id: str) -> Optional[CollectionState]:
        """Get collection state by ID."""
        return self._snapshot().collections.get(collection_id)

    def list_assets(
        self,
        collection_id: Optional[str] = None,
        revealed: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[AssetRecord]:
        """List assets with optional filtering and pagination."""
        registry = self._snapshot()
        cache_key = f"list:assets:{revealed}:{limit}:{offset}:{collection_id}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        assets = registry.list_assets(collection_id)

        if revealed is not None:
            assets = [a for a in assets if a.is_revealed == revealed]

        if offset > 0:
            assets = assets[offset:]
        if limit:
            assets = assets[:limit]

        self._cache_set(cache_key, assets)

        return assets

    def get_collection_stats(self, collection_id: str) -> Dict[str, Any]:
        """Get supply and reveal progress for a collection."""
        registry = self._snapshot()
        cache_key = f"stats:{collection_id}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        collection = registry.get_collection(collection_id)
        target = collection.target_supply

        def authority_info(authority: Optional[CapacityAuthority]) -> Dict[str, Any]:
            if authority is None:
                return {'status': 'destroyed'}
            return {
                'status': authority.phase.value,
                'authority_id': authority.authority_id,
                'count': authority.count,
                'remaining': authority.remaining(),
            }

        stats = {
            'collection_id': collection_id,
            'target_supply': target,
            'minted': collection.minted_count,
            'revealed': collection.revealed_count,
            'remaining_supply': target - collection.minted_count,
            'pending_reveal': collection.minted_count - collection.revealed_count,
            'mint_completion_percentage': (collection.minted_count / target) * 100,
            'reveal_completion_percentage': (collection.revealed_count / target) * 100,
            'mint_authority': authority_info(collection.mint_authority),
            'reveal_authority': authority_info(collection.reveal_authority),
            'commitment_scheme': collection.scheme.to_dict(),
        }

        self._cache_set(cache_key, stats)

        return stats

    def get_registry_stats(self) -> Dict[str, Any]:
        """Get registry-wide statistics."""
        registry = self._snapshot()
        revealed = len([a for a in registry.assets.values() if a.is_revealed])

        return {
            'total_collections': len(registry.collections),
            'total_assets': len(registry.assets),
            'revealed_assets': revealed,
            'unrevealed_assets': len(registry.assets) - revealed,
            'registry_version': registry.metadata.version,
            'created_at': registry.metadata.created_at,
            'updated_at': registry.metadata.updated_at,
            'storage_info': self.storage.get_storage_info(),
            'lock_metrics': self.locks.get_metrics(),
            'cache_info': {
                'enabled': self.cache is not None,
                'entries': len(self.cache) if self.cache else 0,
            }
        }

    # Maintenance

    def reload_registry(self) -> None:
        """Reload registry from storage."""
        with self._lock:
            self._checksum = self.storage.checksum()
            self._registry = self.storage.load_registry()
            if self.cache:
                self.cache.clear()

    def backup_registry(self) -> bool:
        """Create a backup of the registry."""
        return self.storage.backup_registry()

    def restore_backup(self, timestamp: str) -> bool:
        """
        Restore registry from backup.

        Only backups that keep every mint, reveal and authority destruction
        of the current registry are accepted. Anything older raises
        RestoreRejectedError and storage is left unchanged.
        """
        def guard(current: Registry, backup: Registry) -> None:
            violations = find_rollbacks(current, backup)
            if violations:
                self.logger.warning(f"Restore of backup {timestamp} rejected: {violations}")
                raise RestoreRejectedError(violations)

        with self._lock:
            success = self.storage.restore_backup(timestamp, guard)
            if success:
                self.reload_registry()
            return success

    def list_backups(self) -> List[str]:
        """List available backup timestamps."""
        return self.storage.list_backups()
