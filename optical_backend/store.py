"""
JSON collection store backed by flat files, plus an in-memory test implementation.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)

FRAMES = "frames"
SUNGLASSES = "sunglasses"
COMPANY = "company"
INQUIRIES = "inquiries"
CONTACTS = "contacts"

COLLECTIONS = (FRAMES, SUNGLASSES, COMPANY, INQUIRIES, CONTACTS)

# Collections that start out as empty arrays instead of being absent.
SEEDED_COLLECTIONS = (INQUIRIES, CONTACTS)


class JsonStore(Protocol):
    """Interface for whole-collection reads and writes."""

    def read(self, collection: str) -> Optional[Any]:
        ...

    def write(self, collection: str, data: Any) -> bool:
        ...

    def exists(self, collection: str) -> bool:
        ...

    def lock(self, collection: str):
        ...

    def ensure_directories(self) -> None:
        ...


class _LockRegistry:
    """One re-entrant lock per collection name."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, collection: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(collection, threading.RLock())
        with lock:
            yield


class JsonFileStore:
    """
    Stores each collection as ``<data_dir>/<collection>.json``.

    Reads never raise: a missing file, malformed JSON or an I/O error is
    logged and reported as ``None``. Writes go through a temp file in the
    same directory and are renamed over the target, so a failed write leaves
    the previous file untouched.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._locks = _LockRegistry()

    def path_for(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    def ensure_directories(self) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        for collection in SEEDED_COLLECTIONS:
            if not self.exists(collection):
                self.write(collection, [])

    def exists(self, collection: str) -> bool:
        return os.path.exists(self.path_for(collection))

    def read(self, collection: str) -> Optional[Any]:
        path = self.path_for(collection)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Error reading %s: %s", path, exc)
            return None

    def write(self, collection: str, data: Any) -> bool:
        path = self.path_for(collection)
        tmp_path = None
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            content = json.dumps(data, indent=2, ensure_ascii=False)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{collection}.", suffix=".tmp", dir=self.data_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error writing %s: %s", path, exc)
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return False
        logger.info("Successfully updated %s", os.path.basename(path))
        return True

    def lock(self, collection: str):
        return self._locks.hold(collection)


class InMemoryJsonStore:
    """Simple in-memory store for development and tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.collections: Dict[str, Any] = {}
        self.fail_writes = False
        self._locks = _LockRegistry()
        for name, data in (initial or {}).items():
            self.collections[name] = copy.deepcopy(data)

    def ensure_directories(self) -> None:
        for collection in SEEDED_COLLECTIONS:
            self.collections.setdefault(collection, [])

    def exists(self, collection: str) -> bool:
        return collection in self.collections

    def read(self, collection: str) -> Optional[Any]:
        if collection not in self.collections:
            return None
        # Hand out copies so callers cannot mutate stored state in place.
        return copy.deepcopy(self.collections[collection])

    def write(self, collection: str, data: Any) -> bool:
        if self.fail_writes:
            return False
        self.collections[collection] = json.loads(json.dumps(data))
        return True

    def lock(self, collection: str):
        return self._locks.hold(collection)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()
        self.fail_writes = False
