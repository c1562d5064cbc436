import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CART_KEY = "restaurant-cart"
PENDING_PAYMENT_KEY = "pending_payment_id"
PENDING_ORDER_KEY = "pending_order_id"


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    written_at: float  # epoch milliseconds


def is_expired(entry: CacheEntry, now: float, ttl: float) -> bool:
    """``now`` and ``ttl`` in the same unit as ``written_at`` (milliseconds)."""
    return now - entry.written_at > ttl


class Storage:
    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def pop(self, key: str) -> Optional[Any]:
        value = self.get(key)
        if value is not None:
            self.remove(key)
        return value


class MemoryStorage(Storage):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStorage(Storage):
    def __init__(self, directory: str, namespace: str):
        self.path = Path(directory) / f"{namespace}.json"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("unreadable storage file %s, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        tmp = self.path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def delete(self) -> None:
        """Removes the whole namespace file."""
        with self._lock:
            self.path.unlink(missing_ok=True)
