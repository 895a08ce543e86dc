import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

class KeyValueStore(Protocol):
    def read(self, key: str) -> Optional[Any]: ...
    def write(self, key: str, value: Any) -> None: ...
    def clear(self, key: Optional[str] = None) -> None: ...

class MemoryStore:
    """Process-local store; ``ttl_seconds`` of 0 keeps entries forever."""

    def __init__(self, ttl_seconds: float = 0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Dict[str, Tuple[float, Any]] = {}

    def read(self, key: str) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self.ttl_seconds and self._clock() - stored_at > self.ttl_seconds:
            del self._data[key]
            return None
        return value

    def write(self, key: str, value: Any) -> None:
        self._data[key] = (self._clock(), value)

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)

def cached(store: KeyValueStore, key: str, loader: Callable[[], Any]) -> Any:
    value = store.read(key)
    if value is None:
        value = loader()
        store.write(key, value)
    return value

class PendingSyncQueue:
    """Guide records captured offline and not yet written to Firestore."""

    def __init__(self, store: KeyValueStore, owner: str):
        self.store = store
        self.storage_key = f"guideRecords:{owner}"

    def _records(self) -> List[Dict[str, Any]]:
        return list(self.store.read(self.storage_key) or [])

    def enqueue(self, record: Dict[str, Any]) -> Dict[str, Any]:
        entry = {**record, "localId": record.get("localId") or str(uuid.uuid4()), "synced": False}
        records = self._records()
        records.append(entry)
        self.store.write(self.storage_key, records)
        return entry

    def pending(self) -> List[Dict[str, Any]]:
        return [r for r in self._records() if not r.get("synced")]

    def mark_synced(self, local_ids: Optional[List[str]] = None) -> int:
        """Flag records as synced (all of them when ``local_ids`` is None)."""
        ids = set(local_ids) if local_ids is not None else None
        records = self._records()
        changed = 0
        for record in records:
            if record.get("synced"):
                continue
            if ids is None or record.get("localId") in ids:
                record["synced"] = True
                changed += 1
        self.store.write(self.storage_key, records)
        return changed

    def clear(self) -> None:
        self.store.clear(self.storage_key)
