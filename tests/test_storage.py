"""
Tests for the key-value storage backends.
"""

import json

import pytest

from valuation_desk.services.storage import JsonFileStorage, MemoryStorage, create_storage, version_key


@pytest.fixture(params=["memory", "json"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    return JsonFileStorage(str(tmp_path / "nested" / "storage.json"))


def test_set_json_bumps_version(backend):
    assert backend.get_version("files") == 0
    assert backend.set_json("files", [{"id": "file_1"}]) is True
    assert backend.set_json("files", [{"id": "file_1"}, {"id": "file_2"}]) is True
    assert backend.get_version("files") == 2
    assert backend.get_parsed("files") == [{"id": "file_1"}, {"id": "file_2"}]


def test_missing_key_returns_fallback(backend):
    assert backend.get_parsed("invoices") == []
    assert backend.get_parsed("currentUser", fallback={}) == {}


def test_malformed_json_falls_back(backend):
    backend.set_item("banks", "{not json")
    assert backend.get_parsed("banks") == []


def test_bad_version_counter_reads_as_zero(backend):
    backend.set_item(version_key("users"), "abc")
    assert backend.get_version("users") == 0


def test_remove_drops_key_and_version(backend):
    backend.set_json("currentUser", {"id": "user_1"})
    assert backend.remove("currentUser") is True
    assert backend.get_item("currentUser") is None
    assert backend.get_version("currentUser") == 0


def test_health_check(backend):
    assert backend.health_check() is True


def test_json_file_is_shared_between_instances(tmp_path):
    path = str(tmp_path / "storage.json")
    first = JsonFileStorage(path)
    second = JsonFileStorage(path)
    first.set_json("files", [{"id": "file_1"}])
    assert second.get_parsed("files") == [{"id": "file_1"}]
    assert second.get_version("files") == 1


def test_corrupt_storage_file_reads_as_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    storage = JsonFileStorage(str(path))
    assert storage.keys() == []

    storage.set_json("files", [])
    assert json.loads(path.read_text(encoding="utf-8"))["filesVersion"] == "1"


def test_create_storage_selects_backend(tmp_path):
    class MemoryConfig:
        STORAGE_BACKEND = "memory"

    class JsonConfig:
        STORAGE_BACKEND = "json"
        STORAGE_PATH = str(tmp_path / "storage.json")

    assert isinstance(create_storage(MemoryConfig), MemoryStorage)
    storage = create_storage(JsonConfig)
    assert isinstance(storage, JsonFileStorage)
    assert storage.backend_name == "json"
