"""Tests for in-memory session storage"""

import pytest

from instruct_lab_core.domain.errors import StorageError
from instruct_lab_core.session.storage import InMemorySessionStorage


class TestInMemorySessionStorage:
    def test_set_and_get(self):
        storage = InMemorySessionStorage()
        storage.set("s1", {"history": [1, 2]})
        assert storage.get("s1") == {"history": [1, 2]}

    def test_get_missing(self):
        assert InMemorySessionStorage().get("nope") is None

    def test_returns_copy(self):
        storage = InMemorySessionStorage()
        storage.set("s1", {"history": []})
        storage.get("s1")["history"].append("x")
        assert storage.get("s1") == {"history": []}

    def test_remove(self):
        storage = InMemorySessionStorage()
        storage.set("s1", {"a": 1})
        storage.remove("s1")
        storage.remove("s1")
        assert storage.get("s1") is None

    def test_size_bound(self):
        storage = InMemorySessionStorage(max_bytes=20)
        with pytest.raises(StorageError, match="limit exceeded"):
            storage.set("s1", {"data": "x" * 50})
        assert storage.get("s1") is None

    def test_overwrite_does_not_double_count(self):
        storage = InMemorySessionStorage(max_bytes=30)
        storage.set("s1", {"data": "x" * 10})
        storage.set("s1", {"data": "y" * 10})
        assert storage.used_bytes == len('{"data": "yyyyyyyyyy"}')

    def test_corrupt_payload(self):
        storage = InMemorySessionStorage()
        storage._items["s1"] = "{not json"
        with pytest.raises(StorageError, match="corrupt"):
            storage.get("s1")
        assert storage.get("s1") is None

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            InMemorySessionStorage(max_bytes=0)
