"""
Deferred Reveal Asset Protocol - Registry Notifications

Structured notifications emitted after registry writes commit. Delivery is
best-effort: a failing subscriber is logged and skipped, and nothing in the
registry depends on an event having been delivered.
"""

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Union


@dataclass
class RegistryEvent:
    """Base notification."""
    collection_id: str
    timestamp: float = field(default_factory=time.time, init=False)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data


@dataclass
class CollectionCreated(RegistryEvent):
    target_supply: int = 0


@dataclass
class AssetCreated(RegistryEvent):
    asset_id: str = ""
    number: int = 0
    provenance_commitment: str = ""


@dataclass
class AssetRevealed(RegistryEvent):
    asset_id: str = ""


@dataclass
class AuthorityDestroyed(RegistryEvent):
    authority_id: str = ""
    kind: str = ""


EventCallback = Callable[[RegistryEvent], None]


class EventEmitter:
    """Dispatches registry events to subscribed callbacks."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._callbacks: List[EventCallback] = []
        self._lock = threading.Lock()
        self.emitted_count = 0
        self.failed_deliveries = 0

    def subscribe(self, callback: EventCallback) -> None:
        """Add callback for registry events."""
        with self._lock:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        with self._lock:
            try:
                self._callbacks.remove(callback)
                return True
            except ValueError:
                return False

    def emit(self, event: RegistryEvent) -> None:
        """Emit event to registered callbacks."""
        with self._lock:
            callbacks = list(self._callbacks)
            self.emitted_count += 1

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                self.failed_deliveries += 1
                self.logger.warning(f"Event callback failed for {event.event_type}: {e}")


class JsonLinesEventSink:
    """Appends events to a JSON-lines file."""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path).expanduser()
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, event: RegistryEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True)
        with self._lock:
            with open(self.file_path, 'a', encoding='utf-8') as f:
                f.write(line + "\n")

    def read_events(self) -> List[Dict[str, Any]]:
        """Read back all recorded events."""
        if not self.file_path.exists():
            return []

        with open(self.file_path, 'r', encoding='utf-8') as f:
            return [json.loads(line) for line in f if line.strip()]
