"""
Tests for the record store and cross-process sync.
"""

from decimal import Decimal

import pytest

from valuation_desk.models.entities import FILES_KEY, INVOICES_KEY, USERS_KEY, Invoice, User, ValuationFile
from valuation_desk.services.record_store import (
    ConfirmationRequiredError,
    DuplicateRecordError,
    RecordNotFoundError,
    RecordStore,
    StorageWriteError,
)
from valuation_desk.services.storage import MemoryStorage


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def make_file(record_id="file_1", number="FILE/001/25-26"):
    return ValuationFile(id=record_id, file_number=number, property_value=Decimal("1500000.50"))


def test_add_persists_camel_case_documents(store, storage):
    store.add(FILES_KEY, make_file())
    stored = storage.get_parsed(FILES_KEY)
    assert stored[0]["fileNumber"] == "FILE/001/25-26"
    assert stored[0]["propertyValue"] == "1500000.50"
    assert storage.get_version(FILES_KEY) == 1


def test_records_round_trip_through_storage(storage):
    first = RecordStore(storage, poll_interval=0)
    first.add(INVOICES_KEY, Invoice(id="invoice_1", invoice_number="01/25-26", professional_fees=Decimal("5000")))

    second = RecordStore(storage, poll_interval=0)
    invoice = second.get(INVOICES_KEY, "invoice_1")
    assert invoice.professional_fees == Decimal("5000")
    assert isinstance(invoice.professional_fees, Decimal)


def test_returned_records_are_copies(store):
    store.add(FILES_KEY, make_file())
    record = store.get(FILES_KEY, "file_1")
    record.status = "completed"
    assert store.get(FILES_KEY, "file_1").status == "pending"


def test_duplicate_and_missing_records(store):
    store.add(FILES_KEY, make_file())
    with pytest.raises(DuplicateRecordError):
        store.add(FILES_KEY, make_file())
    with pytest.raises(RecordNotFoundError):
        store.update(FILES_KEY, make_file("file_9"))
    with pytest.raises(RecordNotFoundError):
        store.get(FILES_KEY, "file_9")
    assert store.find(FILES_KEY, "file_9") is None


def test_remove_requires_confirmation(store):
    store.add(FILES_KEY, make_file())
    with pytest.raises(ConfirmationRequiredError):
        store.remove(FILES_KEY, "file_1")
    assert store.count(FILES_KEY) == 1

    removed = store.remove(FILES_KEY, "file_1", confirmed=True)
    assert removed.id == "file_1"
    assert store.count(FILES_KEY) == 0


def test_replace_all_is_a_single_write(store, storage):
    store.replace_all(FILES_KEY, [make_file("file_1"), make_file("file_2", "FILE/002/25-26")])
    assert storage.get_version(FILES_KEY) == 1
    assert [record.id for record in store.list(FILES_KEY)] == ["file_1", "file_2"]


def test_newer_stored_version_replaces_collection(storage):
    clock = FakeClock()
    local = RecordStore(storage, poll_interval=5, clock=clock)
    other = RecordStore(storage, poll_interval=0)

    other.add(FILES_KEY, make_file())

    # within the poll interval the stale copy is served
    assert local.count(FILES_KEY) == 0

    clock.now += 5
    assert local.count(FILES_KEY) == 1
    assert local.version(FILES_KEY) == 1


def test_sync_reports_reloaded_collections(storage):
    local = RecordStore(storage, poll_interval=0)
    other = RecordStore(storage, poll_interval=0)
    other.add(USERS_KEY, User(id="user_1", username="ravi"))
    assert local.sync(force=True) == [USERS_KEY]
    assert local.sync(force=True) == []


def test_own_writes_do_not_trigger_reload(store):
    store.add(FILES_KEY, make_file())
    assert store.sync(force=True) == []


def test_malformed_collection_loads_empty():
    storage = MemoryStorage({FILES_KEY: "{broken", INVOICES_KEY: '{"not": "a list"}'})
    store = RecordStore(storage, poll_interval=0)
    assert store.list(FILES_KEY) == []
    assert store.list(INVOICES_KEY) == []


def test_current_user_profile(store):
    user = User(id="user_1", username="ravi", full_name="Ravi Kumar", password_hash="x", password_salt="y")
    assert store.get_current_user() is None

    store.set_current_user(user)
    profile = store.get_current_user()
    assert profile["username"] == "ravi"
    assert "passwordHash" not in profile

    store.clear_current_user()
    assert store.get_current_user() is None


class ReadOnlyStorage(MemoryStorage):
    """Memory storage whose writes start failing once ``read_only`` is set"""

    read_only = False

    def set_item(self, key, value):
        if self.read_only:
            raise OSError("disk full")
        super().set_item(key, value)


def test_failed_write_keeps_previous_snapshot():
    storage = ReadOnlyStorage()
    store = RecordStore(storage, poll_interval=0)
    store.add(FILES_KEY, make_file())

    storage.read_only = True
    with pytest.raises(StorageWriteError):
        store.add(FILES_KEY, make_file("file_2", "FILE/002/25-26"))
    updated = make_file()
    updated.status = "completed"
    with pytest.raises(StorageWriteError):
        store.update(FILES_KEY, updated)

    assert [record.id for record in store.list(FILES_KEY)] == ["file_1"]
    assert store.get(FILES_KEY, "file_1").status == "pending"
    assert store.version(FILES_KEY) == storage.get_version(FILES_KEY) == 1
