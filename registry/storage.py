"""
Deferred Reveal Asset Protocol - Registry Storage Backend

This module provides JSON-based persistence with thread-safe file operations,
atomic updates, compression, and backup mechanisms, plus an in-memory backend
with the same interface.

Updates are applied to a freshly loaded copy of the registry; if the updater
raises, nothing is written and the exception propagates unchanged.
"""

import fcntl
import gzip
import hashlib
import json
import logging
import os
import shutil
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .schema import Registry


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base storage exception."""
    pass


class LockTimeoutError(StorageError):
    """Lock acquisition timeout exception."""
    pass


class IntegrityError(StorageError):
    """File integrity check failure exception."""
    pass


RegistryUpdater = Callable[[Registry], Registry]


def _checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _serialize(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, indent=2, default=str).encode('utf-8')


class FileLock:
    """
    Inter-process lock on a sibling `.lock` file.

    Mutual exclusion comes from flock on the open file, which the kernel drops
    when the holder exits. A lock file left behind by a crashed process is
    therefore reusable. The file is unlinked on release, so after locking the
    inode is compared with the path to make sure the lock is not held on a
    file another holder has already removed.
    """

    def __init__(self, file_path: Union[str, Path], timeout: float = 30.0,
                 poll_interval: float = 0.01):
        self.file_path = Path(file_path)
        self.lock_file_path = self.file_path.with_suffix(self.file_path.suffix + '.lock')
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_fd: Optional[int] = None
        self._thread_lock = RLock()

    def is_locked(self) -> bool:
        return self.lock_fd is not None

    def _try_lock(self) -> Optional[int]:
        """One non-blocking attempt; returns the locked descriptor or None."""
        try:
            fd = os.open(str(self.lock_file_path), os.O_CREAT | os.O_RDWR, 0o644)
        except OSError as e:
            raise StorageError(f"Failed to open lock file {self.lock_file_path}: {e}")

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None

        try:
            on_disk = os.stat(self.lock_file_path)
        except FileNotFoundError:
            on_disk = None

        if on_disk is None or on_disk.st_ino != os.fstat(fd).st_ino:
            # Previous holder unlinked it between our open and flock
            os.close(fd)
            return None

        return fd

    def _claim(self, fd: int) -> None:
        """Record our pid, reporting a holder that died without releasing."""
        previous = os.read(fd, 64).decode('ascii', 'replace').strip()
        if previous and previous != str(os.getpid()):
            logger.warning(f"Recovered lock {self.lock_file_path} left by pid {previous}")

        os.lseek(fd, 0, os.SEEK_SET)
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode('ascii'))

    def acquire(self) -> bool:
        """Acquire file lock, polling until the timeout."""
        with self._thread_lock:
            if self.lock_fd is not None:
                return True

            deadline = time.monotonic() + self.timeout
            while True:
                fd = self._try_lock()
                if fd is not None:
                    self._claim(fd)
                    self.lock_fd = fd
                    return True

                if time.monotonic() >= deadline:
                    raise LockTimeoutError(
                        f"Failed to acquire {self.lock_file_path} within {self.timeout} seconds"
                    )
                time.sleep(self.poll_interval)

    def release(self) -> None:
        """Remove the lock file, then drop the flock."""
        with self._thread_lock:
            if self.lock_fd is None:
                return

            try:
                os.unlink(self.lock_file_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove lock file {self.lock_file_path}: {e}")

            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
            except OSError as e:
                logger.warning(f"Failed to release lock: {e}")
            finally:
                self.lock_fd = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class JSONStorage:
    """Thread-safe JSON storage with atomic operations and compression."""

    def __init__(
        self,
        file_path: Union[str, Path],
        compressed: bool = False,
        backup_count: int = 5,
        lock_timeout: float = 30.0
    ):
        self.file_path = Path(file_path)
        self.compressed = compressed
        self.backup_count = backup_count
        self.lock_timeout = lock_timeout
        self._thread_lock = RLock()

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        if not self.file_path.exists():
            self._write_file(_serialize({}))

    def _read_file(self, path: Optional[Path] = None) -> bytes:
        """Read raw file data."""
        path = path or self.file_path
        if self.compressed:
            with gzip.open(path, 'rb') as f:
                return f.read()
        else:
            with open(path, 'rb') as f:
                return f.read()

    def _write_file(self, json_data: bytes) -> None:
        """Write data to file atomically."""
        temp_file = self.file_path.with_suffix(self.file_path.suffix + '.tmp')

        try:
            if self.compressed:
                with gzip.open(temp_file, 'wb') as f:
                    f.write(json_data)
            else:
                with open(temp_file, 'wb') as f:
                    f.write(json_data)

            # Atomic move (rename)
            os.replace(temp_file, self.file_path)

        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StorageError(f"Failed to write file: {e}")

    def _create_backup(self) -> None:
        """Create timestamped backup of current file."""
        if not self.file_path.exists():
            return

        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')
        backup_path = self._backup_path(timestamp)
        backup_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.file_path, backup_path)

        self._cleanup_old_backups()

    def _cleanup_old_backups(self) -> None:
        """Remove old backup files beyond backup_count."""
        for backup_file in self.list_backups()[self.backup_count:]:
            try:
                backup_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove old backup {backup_file}: {e}")

    @contextmanager
    def _lock_context(self):
        """Hold both the in-process and the inter-process lock."""
        with self._thread_lock:
            lock = FileLock(self.file_path, timeout=self.lock_timeout)
            with lock:
                yield

    def _read_unlocked(self, path: Optional[Path] = None) -> Dict[str, Any]:
        try:
            data = self._read_file(path)
        except OSError as e:
            raise StorageError(f"Failed to read storage: {e}")

        if not data:
            return {}

        try:
            return json.loads(data.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise IntegrityError(f"Invalid JSON data: {e}")

    def _write_unlocked(self, data: Dict[str, Any], create_backup: bool) -> str:
        if create_backup:
            self._create_backup()

        json_data = _serialize(data)
        self._write_file(json_data)
        return _checksum(json_data)

    def read(self) -> Dict[str, Any]:
        """Read and deserialize data from storage."""
        with self._lock_context():
            return self._read_unlocked()

    def write(self, data: Dict[str, Any], create_backup: bool = True) -> str:
        """Write data to storage atomically and return its checksum."""
        with self._lock_context():
            return self._write_unlocked(data, create_backup)

    def update(self, updater_func: Callable[[Dict[str, Any]], Dict[str, Any]],
               create_backup: bool = True) -> str:
        """Read, transform and write back under one lock."""
        with self._lock_context():
            current_data = self._read_unlocked()
            updated_data = updater_func(current_data)
            return self._write_unlocked(updated_data, create_backup)

    def exists(self) -> bool:
        """Check if storage file exists."""
        return self.file_path.exists()

    def size(self) -> int:
        """Get storage file size in bytes."""
        if not self.file_path.exists():
            return 0
        return self.file_path.stat().st_size

    def verify(self, expected_checksum: Optional[str] = None) -> bool:
        """Verify file is readable and, if given, matches the checksum."""
        if not self.file_path.exists():
            return False

        try:
            data = self._read_file()
        except OSError:
            return False

        if expected_checksum:
            return _checksum(data) == expected_checksum
        return True

    def list_backups(self) -> List[Path]:
        """List available backup files, newest first."""
        backup_dir = self.file_path.parent / 'backups'
        if not backup_dir.exists():
            return []

        pattern = f"{self.file_path.stem}_*{self.file_path.suffix}"
        backup_files = list(backup_dir.glob(pattern))
        backup_files.sort(key=lambda p: p.name, reverse=True)

        return backup_files

    def checksum(self) -> Optional[str]:
        """Checksum of the stored document, or None when the file is gone."""
        try:
            return _checksum(self._read_file())
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read storage: {e}")

    def _backup_path(self, backup_timestamp: str) -> Path:
        backup_name = f"{self.file_path.stem}_{backup_timestamp}{self.file_path.suffix}"
        return self.file_path.parent / 'backups' / backup_name

    def restore_backup(
        self,
        backup_timestamp: str,
        guard: Optional[Callable[[Dict[str, Any], Dict[str, Any]], None]] = None
    ) -> bool:
        """
        Restore from a specific backup.

        `guard(current, backup)` runs under the lock before anything is
        copied; if it raises, the current file is left as it is.
        """
        backup_path = self._backup_path(backup_timestamp)

        if not backup_path.exists():
            return False

        with self._lock_context():
            if guard is not None:
                guard(self._read_unlocked(), self._read_unlocked(backup_path))

            self._create_backup()
            shutil.copy2(backup_path, self.file_path)
            return True


class RegistryStorage:
    """High-level registry storage interface."""

    def __init__(
        self,
        storage_dir: Union[str, Path] = "registry_data",
        compressed: bool = False,
        backup_count: int = 5,
        backup_on_write: bool = True,
        lock_timeout: float = 30.0
    ):
        self.storage_dir = Path(storage_dir).expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.backup_on_write = backup_on_write

        file_name = "registry.json.gz" if compressed else "registry.json"
        self.json_storage = JSONStorage(
            self.storage_dir / file_name,
            compressed=compressed,
            backup_count=backup_count,
            lock_timeout=lock_timeout
        )

    def load_registry(self) -> Registry:
        """Load registry from storage."""
        data = self.json_storage.read()

        if not data:
            return Registry()

        try:
            return Registry.model_validate(data)
        except ValueError as e:
            raise IntegrityError(f"Failed to load registry: {e}")

    def save_registry(self, registry: Registry) -> str:
        """Save registry to storage."""
        return self.json_storage.write(
            registry.model_dump(mode='json'), create_backup=self.backup_on_write
        )

    def update_registry(self, updater_func: RegistryUpdater) -> Tuple[Registry, str]:
        """
        Update registry atomically.

        Returns:
            (updated registry, checksum of the written file)
        """
        result: Dict[str, Registry] = {}

        def registry_updater(data):
            registry = Registry.model_validate(data) if data else Registry()
            updated_registry = updater_func(registry)
            result['registry'] = updated_registry
            return updated_registry.model_dump(mode='json')

        checksum = self.json_storage.update(registry_updater, create_backup=self.backup_on_write)
        return result['registry'], checksum

    def backup_registry(self) -> bool:
        """Create manual backup of registry."""
        try:
            registry = self.load_registry()
            self.json_storage.write(registry.model_dump(mode='json'), create_backup=True)
            return True
        except StorageError as e:
            logger.error(f"Registry backup failed: {e}")
            return False

    def list_backups(self) -> List[str]:
        """List available backup timestamps."""
        stem = self.json_storage.file_path.stem
        suffix = self.json_storage.file_path.suffix
        timestamps = []

        for backup in self.json_storage.list_backups():
            timestamps.append(backup.name[len(stem) + 1:-len(suffix)])

        return timestamps

    def checksum(self) -> Optional[str]:
        """Checksum of the registry document as currently stored."""
        return self.json_storage.checksum()

    def restore_backup(self, timestamp: str,
                       guard: Optional[Callable[[Registry, Registry], None]] = None) -> bool:
        """
        Restore registry from backup.

        `guard(current, backup)` receives both registries under the storage
        lock and can veto the restore by raising.
        """
        if guard is None:
            return self.json_storage.restore_backup(timestamp)

        def check(current_data: Dict[str, Any], backup_data: Dict[str, Any]) -> None:
            try:
                current = Registry.model_validate(current_data) if current_data else Registry()
                backup = Registry.model_validate(backup_data) if backup_data else Registry()
            except ValueError as e:
                raise IntegrityError(f"Failed to load registry for restore: {e}")
            guard(current, backup)

        return self.json_storage.restore_backup(timestamp, check)

    def get_storage_info(self) -> Dict[str, Any]:
        """Get storage information."""
        return {
            'backend': 'file',
            'file_path': str(self.json_storage.file_path),
            'compressed': self.json_storage.compressed,
            'size_bytes': self.json_storage.size(),
            'exists': self.json_storage.exists(),
            'backup_count': len(self.json_storage.list_backups())
        }


class MemoryRegistryStorage:
    """In-process registry storage with the same update semantics as the file backend."""

    def __init__(self):
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._checksum = _checksum(_serialize({}))

    def load_registry(self) -> Registry:
        with self._lock:
            return Registry.model_validate(self._data) if self._data else Registry()

    def save_registry(self, registry: Registry) -> str:
        with self._lock:
            self._data = registry.model_dump(mode='json')
            self._checksum = _checksum(_serialize(self._data))
            return self._checksum

    def update_registry(self, updater_func: RegistryUpdater) -> Tuple[Registry, str]:
        with self._lock:
            updated = updater_func(self.load_registry())
            return updated, self.save_registry(updated)

    def backup_registry(self) -> bool:
        return False

    def checksum(self) -> Optional[str]:
        with self._lock:
            return self._checksum

    def list_backups(self) -> List[str]:
        return []

    def restore_backup(self, timestamp: str,
                       guard: Optional[Callable[[Registry, Registry], None]] = None) -> bool:
        return False

    def get_storage_info(self) -> Dict[str, Any]:
        return {
            'backend': 'memory',
            'size_bytes': len(_serialize(self._data)),
            'checksum': self._checksum,
        }
