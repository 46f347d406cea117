"""
Persistent State Store
======================

Key-value store for the quota and health records.

Both records are small JSON blobs under fixed keys. The file store re-reads
the file on every get so that writes from other processes sharing the file
are visible; individual gets and sets are serialized with a lock, but
read-modify-write sequences in the trackers are not.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


QUOTA_STORAGE_KEY = "socialai_llm_quota"
HEALTH_STORAGE_KEY = "socialai_llm_health"


@runtime_checkable
class StateStore(Protocol):
    """Minimal persistent key-value interface."""
    
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if missing or unreadable."""
        ...
    
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value."""
        ...


class MemoryStore:
    """In-process store. Values are deep-copied so callers can't alias state."""
    
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()
    
    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value)
    
    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
    
    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(keys={sorted(self._data)})"


class JsonFileStore:
    """
    Store backed by a single JSON file.
    
    Storage errors are logged and swallowed: a failed read looks like an
    empty store, a failed write leaves the previous file in place.
    
    Example:
        store = JsonFileStore(Path.home() / ".marketmi" / "llm_state.json")
        store.set("socialai_llm_quota", {"date": "...", "usage": {}})
    """
    
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
    
    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load LLM state from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring LLM state in {self.path}: expected object, got {type(data).__name__}")
            return {}
        return data
    
    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".llm_state.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    
    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read_all().get(key)
    
    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            try:
                self._write_all(data)
            except (OSError, TypeError, ValueError) as e:
                logger.warning(f"Failed to save LLM state to {self.path}: {e}")
    
    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={str(self.path)!r})"


def read_state(store: StateStore, key: str) -> Optional[Any]:
    """get() that never raises; failures read as missing state."""
    try:
        return store.get(key)
    except Exception as e:
        logger.warning(f"State store read failed for {key!r}: {e}")
        return None


def write_state(store: StateStore, key: str, value: Any) -> None:
    """set() that never raises; failures are logged and dropped."""
    try:
        store.set(key, value)
    except Exception as e:
        logger.warning(f"State store write failed for {key!r}: {e}")
