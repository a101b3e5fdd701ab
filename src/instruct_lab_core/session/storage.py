"""
Session Storage

Session-scoped key/value storage for the persisted part of a session
(encrypted credential, current test, history). Nothing here touches disk.
"""

import json
from typing import Any, Protocol

from instruct_lab_core.domain.constants import MAX_STORAGE_BYTES
from instruct_lab_core.domain.errors import StorageError


class SessionStorage(Protocol):
    """Storage keyed by session id"""

    def get(self, session_id: str) -> dict[str, Any] | None: ...

    def set(self, session_id: str, payload: dict[str, Any]) -> None: ...

    def remove(self, session_id: str) -> None: ...


class InMemorySessionStorage:
    """Dict-backed storage that serializes payloads to JSON and enforces a total size bound"""

    def __init__(self, max_bytes: int = MAX_STORAGE_BYTES):
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.max_bytes = max_bytes
        self._items: dict[str, str] = {}

    @property
    def used_bytes(self) -> int:
        return sum(len(value.encode("utf-8")) for value in self._items.values())

    def get(self, session_id: str) -> dict[str, Any] | None:
        raw = self._items.get(session_id)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._items.pop(session_id, None)
            raise StorageError("Stored session data is corrupt", context={"session_id": session_id}) from e

    def set(self, session_id: str, payload: dict[str, Any]) -> None:
        """
        Raises:
            StorageError: If writing payload would exceed max_bytes
        """
        serialized = json.dumps(payload, ensure_ascii=False)
        size = len(serialized.encode("utf-8"))
        current = self._items.get(session_id)
        other = self.used_bytes - (len(current.encode("utf-8")) if current is not None else 0)
        if other + size > self.max_bytes:
            raise StorageError(
                f"Session storage limit exceeded ({other + size} > {self.max_bytes} bytes)",
                context={"session_id": session_id},
            )
        self._items[session_id] = serialized

    def remove(self, session_id: str) -> None:
        self._items.pop(session_id, None)

    def clear(self) -> None:
        self._items.clear()
