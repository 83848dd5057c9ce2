"""
Persistence for the budget ledger.

The ledger is stored as one JSON document per key. Only the records are
written (items, categories and the monthly budget); the aggregates are
rebuilt on load by replaying every item onto an empty base, so a stored
document can never disagree with the totals derived from it.

Blobs go through a small key/value interface with three backends: JSON files
in a data directory, a SQLAlchemy table, or memory. Payloads are optionally
encrypted with the application's Fernet key.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from database_ops import DatabaseManager
from encryption_utils import get_encryption_manager, is_ciphertext
from exceptions import BudgetAppError, PersistenceError, SnapshotFormatError
from ledger import LedgerStore
from ledger_models import DEFAULT_MONTHLY_BUDGET, BudgetCategory, BudgetItem, LedgerSnapshot
from utils import ensure_data_dir, resolve_connection_string

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_KEY = "ledger"


def encode_snapshot(snapshot: LedgerSnapshot) -> str:
    """
    Serialize a ledger snapshot to JSON.

    Aggregates are not written; they are recomputed on load.
    """
    document = {
        "schema_version": SCHEMA_VERSION,
        "items": [item.to_dict() for item in snapshot.items],
        "categories": [category.to_dict() for category in snapshot.categories],
        "monthly_budget": snapshot.monthly_budget,
    }
    return json.dumps(document, indent=2)


def decode_snapshot(payload: str, strict: bool = False) -> LedgerStore:
    """
    Rebuild a LedgerStore from a JSON document produced by encode_snapshot.

    A document without ``schema_version`` is read as version 1.

    Args:
        payload: JSON text
        strict: Strict amount mode for the rebuilt store

    Returns:
        A new LedgerStore whose aggregates were recomputed by replay

    Raises:
        SnapshotFormatError: If the document is malformed or of an unknown version
    """
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise SnapshotFormatError("Ledger payload is not valid JSON", original_error=e) from e

    if not isinstance(document, dict):
        raise SnapshotFormatError("Ledger payload must be a JSON object")

    version = document.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise SnapshotFormatError(
            "Unsupported ledger schema version",
            details={"schema_version": version, "supported": SCHEMA_VERSION}
        )

    raw_items = document.get("items", [])
    raw_categories = document.get("categories", [])
    if not isinstance(raw_items, list) or not isinstance(raw_categories, list):
        raise SnapshotFormatError("Ledger payload items and categories must be lists")

    try:
        items = [BudgetItem.from_dict(entry) for entry in raw_items]
        categories = [BudgetCategory.from_dict(entry) for entry in raw_categories]
        monthly_budget = float(document.get("monthly_budget", DEFAULT_MONTHLY_BUDGET))
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotFormatError("Ledger payload contains an invalid record", original_error=e) from e

    return LedgerStore.from_state(items, categories, monthly_budget=monthly_budget, strict=strict)


class MemoryBlobStore:
    """Key/value blob store held in a dictionary."""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._blobs.get(key)

    def put(self, key: str, payload: str) -> None:
        with self._lock:
            self._blobs[key] = payload

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def list_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._blobs)


class FileBlobStore:
    """
    Key/value blob store writing one ``<key>.json`` file per key.

    Writes go to a temporary file in the same directory followed by an atomic
    replace, so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read ledger file {path}: {e}")
            raise PersistenceError("Failed to read ledger file", details={"path": str(path)}, original_error=e) from e

    def put(self, key: str, payload: str) -> None:
        path = self.path_for(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, prefix=f".{key}.", suffix=".tmp", delete=False
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Failed to write ledger file {path}: {e}")
            raise PersistenceError("Failed to write ledger file", details={"path": str(path)}, original_error=e) from e

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError("Failed to delete ledger file", details={"path": str(path)}, original_error=e) from e

    def list_keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob("*.json"))


class DatabaseBlobStore:
    """Key/value blob store backed by the ledger_blobs table."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.db_manager = db_manager

    def get(self, key: str) -> Optional[str]:
        return self.db_manager.get_blob(key)

    def put(self, key: str, payload: str) -> None:
        self.db_manager.put_blob(key, payload)

    def delete(self, key: str) -> bool:
        return self.db_manager.delete_blob(key)

    def list_keys(self) -> List[str]:
        return self.db_manager.list_keys()


class LedgerPersistence:
    """
    Loads and saves a LedgerStore through a blob store.

    After ``attach(store)`` every ledger command triggers a save, either
    immediately or, with ``debounce_seconds > 0``, once the ledger has been
    quiet for that long. Save failures never propagate into ledger commands;
    they are logged and kept in ``last_error``.
    """

    def __init__(
        self,
        blob_store,
        key: str = DEFAULT_KEY,
        debounce_seconds: float = 0,
        encrypt: bool = False,
        strict: bool = False,
        monthly_budget: float = DEFAULT_MONTHLY_BUDGET,
        seed_default_categories: bool = True
    ):
        self.blob_store = blob_store
        self.key = key
        self.debounce_seconds = float(debounce_seconds or 0)
        self.encrypt = encrypt
        self.strict = strict
        self.monthly_budget = monthly_budget
        self.seed_default_categories = seed_default_categories

        self.last_error: Optional[str] = None
        self._store: Optional[LedgerStore] = None
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()

    def load(self) -> LedgerStore:
        """
        Load the ledger, or build a fresh one when nothing is stored yet.

        Raises:
            SnapshotFormatError: If the stored document cannot be decoded
            PersistenceError: If the backend cannot be read
            DecryptionError: If an encrypted document does not match the key
        """
        payload = self.blob_store.get(self.key)
        if payload is None:
            logger.info("No stored ledger under '%s'; starting fresh", self.key)
            categories = None if self.seed_default_categories else []
            return LedgerStore(categories=categories, monthly_budget=self.monthly_budget, strict=self.strict)

        if is_ciphertext(payload):
            payload = get_encryption_manager().decrypt_text(payload)

        store = decode_snapshot(payload, strict=self.strict)
        logger.info("Loaded ledger '%s' with %d items", self.key, len(store))
        return store

    def save(self, store: LedgerStore) -> bool:
        """
        Write the ledger's current snapshot.

        Returns:
            True on success. On failure the error is logged, recorded in
            ``last_error`` and False is returned.
        """
        try:
            payload = encode_snapshot(store.snapshot())
            if self.encrypt:
                payload = get_encryption_manager().encrypt_text(payload)
            self.blob_store.put(self.key, payload)
        except (BudgetAppError, OSError) as e:
            self.last_error = f"Failed to save ledger: {e}"
            logger.error(self.last_error, exc_info=True)
            return False

        self.last_error = None
        logger.info("Saved ledger '%s' (%d items)", self.key, len(store))
        return True

    def _on_ledger_event(self, event: str, store: LedgerStore) -> None:
        if self.debounce_seconds <= 0:
            self.save(store)
            return
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._save_pending)
            self._timer.daemon = True
            self._timer.start()
        logger.debug("Save of ledger '%s' scheduled after %s", self.key, event)

    def _save_pending(self) -> None:
        with self._timer_lock:
            self._timer = None
            store = self._store
        if store is not None:
            self.save(store)

    def attach(self, store: LedgerStore) -> None:
        """Save the ledger whenever it changes."""
        if self._store is not None and self._store is not store:
            self.detach()
        self._store = store
        store.subscribe(self._on_ledger_event)

    def flush(self) -> bool:
        """Run a pending debounced save now. Returns False if that save failed."""
        with self._timer_lock:
            timer = self._timer
            self._timer = None
        if timer is None:
            return True
        timer.cancel()
        if self._store is None:
            return True
        return self.save(self._store)

    def detach(self) -> None:
        """Flush pending work and stop listening to the attached ledger."""
        if self._store is None:
            return
        self.flush()
        self._store.unsubscribe(self._on_ledger_event)
        self._store = None


def create_persistence(config: Dict[str, Any]) -> LedgerPersistence:
    """
    Build a LedgerPersistence from the ``persistence`` and ``ledger`` config sections.

    Raises:
        PersistenceError: For an unknown backend or an unusable database
    """
    persistence_config = config.get("persistence", {}) or {}
    ledger_config = config.get("ledger", {}) or {}
    backend = str(persistence_config.get("backend", "file")).lower()

    if backend == "file":
        blob_store = FileBlobStore(ensure_data_dir(config))
    elif backend == "database":
        db_manager = DatabaseManager(resolve_connection_string(config))
        db_manager.create_tables()
        blob_store = DatabaseBlobStore(db_manager)
    elif backend == "memory":
        blob_store = MemoryBlobStore()
    else:
        raise PersistenceError("Unknown persistence backend", details={"backend": backend})

    logger.debug("Using %s persistence backend", backend)
    return LedgerPersistence(
        blob_store,
        key=persistence_config.get("key") or DEFAULT_KEY,
        debounce_seconds=persistence_config.get("debounce_seconds") or 0,
        encrypt=bool(persistence_config.get("encrypt", False)),
        strict=bool(ledger_config.get("strict_amounts", False)),
        monthly_budget=float(ledger_config.get("monthly_budget", DEFAULT_MONTHLY_BUDGET)),
        seed_default_categories=bool(ledger_config.get("seed_default_categories", True)),
    )
