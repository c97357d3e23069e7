"""
Device identity and the per-device persistent key-value state.

The device id scopes the order subscription and table rebinds to one
customer. It is created once per storage and never rotated.
"""

import json
import logging
import re
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = "device_id"
TABLE_NUMBER_KEY = "table_number"

# fits OrderRecord.device_id (String(64)); uuid4 strings always match
_DEVICE_ID_RE = re.compile(r"[A-Za-z0-9_-]{8,64}")


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage:
    """Flat JSON object on disk, rewritten after every set.

    Reads are served from memory. Writes go to a single background thread so
    request handlers never block on the disk; ``close`` waits for the last one.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="state-writer")
        self._data: dict[str, str] = {}
        if self._path.exists():
            try:
                self._data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning(
                    "Local state unreadable, starting empty",
                    extra={"path": str(self._path), "error": str(exc)},
                )

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
        self._writer.submit(self._flush)

    def close(self) -> None:
        self._writer.shutdown(wait=True)

    def _flush(self) -> None:
        with self._lock:
            payload = json.dumps(self._data, sort_keys=True)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            logger.error("Failed to write local state", extra={"path": str(self._path), "error": str(exc)})


class NamespacedStorage:
    """View of a shared storage with every key prefixed by ``namespace:``."""

    def __init__(self, backend: KeyValueStorage, namespace: str) -> None:
        self._backend = backend
        self._prefix = f"{namespace}:"

    def get(self, key: str) -> str | None:
        return self._backend.get(self._prefix + key)

    def set(self, key: str, value: str) -> None:
        self._backend.set(self._prefix + key, value)


def is_valid_device_id(value: str | None) -> bool:
    return bool(value) and _DEVICE_ID_RE.fullmatch(value) is not None


def load_or_create_device_id(storage: KeyValueStorage) -> str:
    device_id = storage.get(DEVICE_ID_KEY)
    if not device_id:
        device_id = str(uuid.uuid4())
        storage.set(DEVICE_ID_KEY, device_id)
        logger.info("Created device id", extra={"device_id": device_id})
    return device_id


@dataclass(frozen=True)
class SessionContext:
    device_id: str
    storage: KeyValueStorage

    @classmethod
    def load(cls, storage: KeyValueStorage) -> "SessionContext":
        return cls(device_id=load_or_create_device_id(storage), storage=storage)
