"""
Deferred Reveal Asset Protocol - Content Gates

This module provides the existence checks consulted before a reveal is
accepted. A content gate answers one question: is the content with this
256-bit identifier available in the content store? Gates never fetch or
interpret content.
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from crypto.locator import MAX_CONTENT_ID, encode_locator


class GateType(str, Enum):
    """Content gate backends."""
    MEMORY = "memory"
    LOCAL = "local"
    HTTP = "http"


class ContentGateError(Exception):
    """Content store could not answer an existence check."""
    pass


def content_id_for(content: bytes) -> int:
    """Derive the content identifier of a blob from its SHA-256 digest."""
    return int.from_bytes(hashlib.sha256(content).digest(), 'little')


def _check_content_id(content_id: int) -> None:
    if isinstance(content_id, bool) or not isinstance(content_id, int):
        raise ContentGateError(f"Content ID must be an integer, got {type(content_id).__name__}")
    if content_id < 0 or content_id > MAX_CONTENT_ID:
        raise ContentGateError("Content ID must fit in 256 bits")


class ContentGate(ABC):
    """Abstract base class for content existence checks."""

    @abstractmethod
    def exists(self, content_id: int) -> bool:
        """Check if content with this identifier is available."""
        pass

    @abstractmethod
    def get_gate_type(self) -> GateType:
        """Get gate type identifier."""
        pass


class InMemoryContentGate(ContentGate):
    """Gate backed by an in-process set of identifiers."""

    def __init__(self, content_ids: Optional[Iterable[int]] = None):
        self._lock = threading.Lock()
        self._content_ids: Set[int] = set(content_ids or [])

    def register(self, content_id: int) -> str:
        """Mark an identifier as available and return its locator."""
        _check_content_id(content_id)
        with self._lock:
            self._content_ids.add(content_id)
        return encode_locator(content_id)

    def publish(self, content: bytes) -> str:
        """Store content by its digest and return its locator."""
        return self.register(content_id_for(content))

    def remove(self, content_id: int) -> None:
        with self._lock:
            self._content_ids.discard(content_id)

    def exists(self, content_id: int) -> bool:
        _check_content_id(content_id)
        with self._lock:
            return content_id in self._content_ids

    def get_gate_type(self) -> GateType:
        return GateType.MEMORY


class LocalContentGate(ContentGate):
    """Gate backed by a directory of blobs named by their hex identifier."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).expanduser()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)

    def _blob_path(self, content_id: int) -> Path:
        return self.base_path / f"{content_id:064x}"

    def publish(self, content: bytes) -> str:
        """Store content by its digest and return its locator."""
        content_id = content_id_for(content)
        blob_path = self._blob_path(content_id)

        if not blob_path.exists():
            temp_path = blob_path.with_suffix('.tmp')
            with open(temp_path, 'wb') as f:
                f.write(content)
            temp_path.replace(blob_path)
            self.logger.debug(f"Stored blob {blob_path.name} ({len(content)} bytes)")

        return encode_locator(content_id)

    def exists(self, content_id: int) -> bool:
        _check_content_id(content_id)
        return self._blob_path(content_id).is_file()

    def get_gate_type(self) -> GateType:
        return GateType.LOCAL


class HTTPContentGate(ContentGate):
    """
    Gate backed by an HTTP aggregator.

    Issues `HEAD {endpoint}/v1/blobs/{locator}` with the URL-safe unpadded
    locator. 200 means present, 404 means absent; any other status or a
    transport failure raises `ContentGateError`.
    """

    def __init__(self, endpoint: str, timeout: float = 10.0, max_retries: int = 0):
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["HEAD"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def blob_url(self, content_id: int) -> str:
        return f"{self.endpoint}/v1/blobs/{encode_locator(content_id, url_safe=True, padded=False)}"

    def exists(self, content_id: int) -> bool:
        _check_content_id(content_id)
        url = self.blob_url(content_id)

        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise ContentGateError(f"Content store unreachable: {e}")

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False

        self.logger.warning(f"Unexpected status {response.status_code} from {url}")
        raise ContentGateError(f"Content store returned HTTP {response.status_code}")

    def get_gate_type(self) -> GateType:
        return GateType.HTTP

    def close(self) -> None:
        self.session.close()


def create_content_gate(config: Dict[str, Any]) -> ContentGate:
    """
    Build a content gate from the `content` configuration section.

    Args:
        config: Mapping with `gate` and backend-specific keys

    Returns:
        Configured content gate
    """
    gate_type = GateType(config.get('gate', GateType.LOCAL.value))

    if gate_type == GateType.MEMORY:
        return InMemoryContentGate()
    elif gate_type == GateType.LOCAL:
        return LocalContentGate(config.get('local_dir', 'content_data'))
    elif gate_type == GateType.HTTP:
        endpoint = config.get('http_endpoint')
        if not endpoint:
            raise ContentGateError("HTTP content gate requires content.http_endpoint")
        return HTTPContentGate(
            endpoint,
            timeout=float(config.get('timeout', 10.0)),
            max_retries=int(config.get('max_retries', 0)),
        )

    raise ContentGateError(f"Unsupported content gate: {gate_type}")
