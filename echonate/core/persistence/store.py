#!/usr/bin/env python3
"""
EchoNate Core Persistence — Key-Value Store
=============================================
Flat key-value persistence for the control plane's durable state:
configuration snapshot, mode, credential map, audit log, terms flag.

Any backend with ``get(keys) -> {key: value}`` and ``set(key, value)``
works. Two are provided:
- JsonFileStore: one JSON document on disk, rewritten atomically
- MemoryStore: process-local dict (tests, ephemeral sessions)

Values must be JSON-serializable. Both stores are thread-safe.

Import from: echonate.core.persistence.store
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable

__all__ = ['KeyValueStore', 'JsonFileStore', 'MemoryStore']

logger = logging.getLogger("echonate.core.persistence.store")


class KeyValueStore:
    """Interface for durable key-value backends."""

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return {key: value} for the keys that exist. Missing keys are omitted."""
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        """Durably store ``value`` under ``key``. Returns once written."""
        raise NotImplementedError


class MemoryStore(KeyValueStore):

    def __init__(self, initial: Dict[str, Any] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})
        self.write_count = 0

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self.write_count += 1


class JsonFileStore(KeyValueStore):
    """Single JSON document store with atomic replace on every write.

    The file is read once at construction. Writes go to a temp file that
    replaces the original, so a crash mid-write leaves the previous version.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Cannot read state file %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            logger.error("State file %s is not a JSON object; ignoring", self.path)
            return
        self._data = data
        logger.info("Loaded %d persisted keys from %s", len(self._data), self.path)

    def _save(self):
        """Atomically write the whole document. Caller holds the lock."""
        tmp = self.path.with_suffix('.tmp')
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding='utf-8')
        tmp.replace(self.path)

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self._save()
