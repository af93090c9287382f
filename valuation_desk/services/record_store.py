"""
In-memory record store for the Valuation Desk.

The store owns the File, Invoice, Bank and User collections. All mutation goes
through ``add``/``update``/``remove``/``replace_all``; each mutation produces a
new collection snapshot which is flushed to the storage backend immediately.
A failed write raises ``StorageWriteError`` and keeps the previous snapshot.

Reads poll the backend's version counters (at most once per
``poll_interval`` seconds) and reload a collection wholesale when another
process has written a newer version. There is no conflict detection: the last
writer wins.
"""

import copy
import time
from typing import Any, Callable, Dict, List, Optional, Type

from valuation_desk.models.entities import (
    BANKS_KEY,
    COLLECTION_KEYS,
    CURRENT_USER_KEY,
    FILES_KEY,
    INVOICES_KEY,
    USERS_KEY,
    Bank,
    Invoice,
    User,
    ValuationFile,
)
from valuation_desk.services.storage import KeyValueStorage
from valuation_desk.utils.logging_config import get_logger

ENTITY_TYPES: Dict[str, Type] = {
    FILES_KEY: ValuationFile,
    INVOICES_KEY: Invoice,
    BANKS_KEY: Bank,
    USERS_KEY: User,
}

ENTITY_LABELS = {FILES_KEY: "File", INVOICES_KEY: "Invoice", BANKS_KEY: "Bank", USERS_KEY: "User"}


class RecordNotFoundError(LookupError):
    """Raised when a record id is not present in its collection"""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        self.message = f"{ENTITY_LABELS.get(kind, kind)} '{record_id}' not found"
        super().__init__(self.message)


class DuplicateRecordError(ValueError):
    """Raised when adding a record whose id already exists"""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        self.message = f"{ENTITY_LABELS.get(kind, kind)} '{record_id}' already exists"
        super().__init__(self.message)


class ConfirmationRequiredError(Exception):
    """Raised when a destructive action is attempted without explicit confirmation"""

    code = "CONFIRMATION_REQUIRED"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        self.message = (
            f"Deleting {ENTITY_LABELS.get(kind, kind).lower()} '{record_id}' cannot be undone; confirmation required"
        )
        super().__init__(self.message)


class StorageWriteError(RuntimeError):
    """Raised when a collection could not be written to the storage backend"""

    code = "STORAGE_WRITE_FAILED"

    def __init__(self, kind: str):
        self.kind = kind
        self.message = f"{ENTITY_LABELS.get(kind, kind)} changes could not be saved"
        super().__init__(self.message)


class RecordStore:
    """Owns the record collections and mirrors them to a KeyValueStorage"""

    def __init__(
        self,
        storage: KeyValueStorage,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.storage = storage
        self.poll_interval = poll_interval
        self._clock = clock
        self._collections: Dict[str, List[Any]] = {key: [] for key in COLLECTION_KEYS}
        self._versions: Dict[str, int] = {key: 0 for key in COLLECTION_KEYS}
        self._last_poll: Optional[float] = None
        self.logger = get_logger("services.record_store")
        self.load()

    # Loading and sync
    def _load_collection(self, kind: str) -> None:
        entity_type = ENTITY_TYPES[kind]
        version = self.storage.get_version(kind)
        raw = self.storage.get_parsed(kind, [])
        if not isinstance(raw, list):
            self.logger.error(
                f"Stored {kind} is not a list, starting from an empty collection",
                extra={"category": "collection_invalid", "collection": kind, "stored_type": type(raw).__name__},
            )
            raw = []

        records = []
        for item in raw:
            try:
                records.append(entity_type.from_dict(item))
            except (TypeError, ValueError, AttributeError) as e:
                self.logger.error(
                    f"Skipping malformed {kind} record",
                    extra={"category": "record_invalid", "collection": kind, "error": str(e)},
                )

        self._collections[kind] = records
        self._versions[kind] = version

    def load(self) -> None:
        """(Re)load every collection from storage"""
        for kind in COLLECTION_KEYS:
            self._load_collection(kind)
        self._last_poll = self._clock()
        self.logger.info(
            "Record store loaded",
            extra={"category": "store_loaded", **{f"{k}_count": len(v) for k, v in self._collections.items()}},
        )

    def sync(self, force: bool = False) -> List[str]:
        """
        Reload collections whose stored version is newer than ours.

        Returns the keys that were replaced.
        """
        now = self._clock()
        if not force and self._last_poll is not None and now - self._last_poll < self.poll_interval:
            return []
        self._last_poll = now

        reloaded = []
        for kind in COLLECTION_KEYS:
            stored_version = self.storage.get_version(kind)
            if stored_version > self._versions[kind]:
                self._load_collection(kind)
                reloaded.append(kind)

        if reloaded:
            self.logger.info(
                "Collections replaced by newer stored versions",
                extra={"category": "store_synced", "collections": reloaded},
            )
        return reloaded

    def version(self, kind: str) -> int:
        return self._versions[kind]

    # Reads
    def list(self, kind: str) -> List[Any]:
        self.sync()
        return copy.deepcopy(self._collections[kind])

    def find(self, kind: str, record_id: str) -> Optional[Any]:
        self.sync()
        for record in self._collections[kind]:
            if record.id == str(record_id):
                return copy.deepcopy(record)
        return None

    def get(self, kind: str, record_id: str) -> Any:
        record = self.find(kind, record_id)
        if record is None:
            raise RecordNotFoundError(kind, str(record_id))
        return record

    def count(self, kind: str) -> int:
        self.sync()
        return len(self._collections[kind])

    # Mutations
    def _commit(self, kind: str, records: List[Any]) -> None:
        """Swap in a new snapshot; the old one is restored if the write fails"""
        previous = self._collections[kind]
        self._collections[kind] = records
        if not self.flush(kind):
            self._collections[kind] = previous
            raise StorageWriteError(kind)

    def flush(self, kind: str) -> bool:
        """Write one collection to storage and remember the new version"""
        saved = self.storage.set_json(kind, [record.to_dict() for record in self._collections[kind]])
        if saved:
            self._versions[kind] = self.storage.get_version(kind)
        return saved

    def add(self, kind: str, record: Any) -> Any:
        current = self._collections[kind]
        if any(existing.id == record.id for existing in current):
            raise DuplicateRecordError(kind, record.id)
        self._commit(kind, current + [copy.deepcopy(record)])
        return copy.deepcopy(record)

    def update(self, kind: str, record: Any) -> Any:
        current = self._collections[kind]
        if not any(existing.id == record.id for existing in current):
            raise RecordNotFoundError(kind, record.id)
        self._commit(kind, [copy.deepcopy(record) if existing.id == record.id else existing for existing in current])
        return copy.deepcopy(record)

    def remove(self, kind: str, record_id: str, confirmed: bool = False) -> Any:
        record_id = str(record_id)
        current = self._collections[kind]
        target = next((existing for existing in current if existing.id == record_id), None)
        if target is None:
            raise RecordNotFoundError(kind, record_id)
        if not confirmed:
            raise ConfirmationRequiredError(kind, record_id)
        self._commit(kind, [existing for existing in current if existing.id != record_id])
        return target

    def replace_all(self, kind: str, records: List[Any]) -> None:
        """Replace a whole collection in a single write"""
        self._commit(kind, [copy.deepcopy(record) for record in records])

    # Session
    def set_current_user(self, user: User) -> None:
        self.storage.set_json(CURRENT_USER_KEY, user.public_profile())

    def get_current_user(self) -> Optional[Dict[str, Any]]:
        profile = self.storage.get_parsed(CURRENT_USER_KEY, fallback={})
        if not isinstance(profile, dict) or not profile:
            return None
        return profile

    def clear_current_user(self) -> None:
        self.storage.clear_user_session()
