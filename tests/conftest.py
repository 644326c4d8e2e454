"""
Pytest configuration and fixtures for DRAP tests.
"""

import tempfile
import threading
from typing import Dict, List, Optional

import pytest

from crypto.commitments import CommitmentScheme, compute_provenance_digest
from nft.content import InMemoryContentGate
from registry.events import EventEmitter
from registry.manager import RegistryManager


class RevealPlan:
    """Attributes and content for one asset, committed before mint."""

    def __init__(self, number: int, attributes: Dict[str, str], locator: str,
                 scheme: Optional[CommitmentScheme] = None):
        self.number = number
        self.attributes = attributes
        self.locator = locator
        self.commitment = compute_provenance_digest(
            number, self.keys, self.values, locator, scheme
        )

    @property
    def keys(self) -> List[str]:
        return list(self.attributes.keys())

    @property
    def values(self) -> List[str]:
        return list(self.attributes.values())


@pytest.fixture
def temp_storage_dir():
    """Create temporary storage directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def events():
    """Event emitter that records every event it sees."""
    emitter = EventEmitter()
    emitter.received = []
    emitter.subscribe(emitter.received.append)
    return emitter


@pytest.fixture
def memory_manager(events):
    """Registry manager backed by in-memory storage."""
    return RegistryManager(storage_dir=None, events=events)


@pytest.fixture
def file_manager(temp_storage_dir, events):
    """Registry manager backed by a registry file."""
    return RegistryManager(storage_dir=temp_storage_dir, events=events)


@pytest.fixture
def content_gate():
    """In-memory content gate."""
    return InMemoryContentGate()


@pytest.fixture
def collection(memory_manager):
    """Collection of three assets: (collection_id, mint capability, reveal capability)."""
    mint_cap, reveal_cap = memory_manager.create_collection(3, collection_id="test-collection")
    return mint_cap.collection_id, mint_cap, reveal_cap


@pytest.fixture
def make_plan(content_gate):
    """Factory for reveal plans whose content is present in the content gate."""
    def factory(number: int, attributes: Optional[Dict[str, str]] = None,
                content: Optional[bytes] = None,
                scheme: Optional[CommitmentScheme] = None) -> RevealPlan:
        attributes = attributes if attributes is not None else {"skin": f"variant-{number}"}
        locator = content_gate.publish(content or f"content-{number}".encode())
        return RevealPlan(number, attributes, locator, scheme)

    return factory


@pytest.fixture
def minted_collection(memory_manager, collection, make_plan):
    """Fully minted three-asset collection with its reveal plans."""
    collection_id, mint_cap, reveal_cap = collection
    plans = [make_plan(n) for n in range(1, 4)]

    assets = [
        memory_manager.mint(f"Item #{p.number}", "", "", p.commitment, mint_cap, collection_id)
        for p in plans
    ]

    return {
        'collection_id': collection_id,
        'mint_cap': mint_cap,
        'reveal_cap': reveal_cap,
        'plans': plans,
        'assets': assets,
    }


class ThreadSafeCounter:
    """Thread-safe counter for testing."""

    def __init__(self, initial_value: int = 0):
        self._value = initial_value
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def get_value(self) -> int:
        with self._lock:
            return self._value


@pytest.fixture
def thread_counter():
    """Create thread-safe counter for testing."""
    return ThreadSafeCounter()


# Test markers for different test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as a concurrency test"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test paths and names."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "concurrent" in item.name or "thread" in item.name:
            item.add_marker(pytest.mark.concurrency)
