# plates/catalog.py

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from .database import SessionLocal
from .models import KeyValueEntry
from .schemas import PlateRecord, ViewTransformState

logger = logging.getLogger(__name__)

RECORDS_KEY = "plate_records"
VIEW_STATES_KEY = "view_states"
MIGRATION_KEY = "cloud_migration_completed"


class KeyValueStore:
    """Durable string-keyed JSON values on top of the ``kv_entries`` table."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get(self, key: str, default: Any = None) -> Any:
        with self.session_factory() as db:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                return default
            try:
                return json.loads(entry.value)
            except ValueError as e:
                logger.error(f"Corrupt catalog entry {key!r}, ignoring it: {e}")
                return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, default=str)
        with self.session_factory() as db:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                db.add(KeyValueEntry(key=key, value=payload))
            else:
                entry.value = payload
            db.commit()


class CatalogStore:
    """
    Plate records, their view states and the migration flag.

    All three live under fixed keys of one key-value store: a serialized list
    of records, a mapping of record id to view state and a boolean.
    Mutations are expected to come from a single writer (see ``CatalogWriter``).
    """

    def __init__(self, kv: Optional[KeyValueStore] = None):
        self.kv = kv if kv is not None else KeyValueStore()

    # --- Kayıtlar ---

    def _load_records(self) -> List[PlateRecord]:
        raw = self.kv.get(RECORDS_KEY, [])
        if not isinstance(raw, list):
            logger.error(f"Catalog entry {RECORDS_KEY!r} is not a list, ignoring it")
            return []
        records = []
        for item in raw:
            try:
                records.append(PlateRecord.model_validate(item))
            except SchemaError as e:
                logger.warning(f"Skipping unreadable plate record: {e}")
        return records

    def _save_records(self, records: List[PlateRecord]) -> None:
        self.kv.set(RECORDS_KEY, [r.model_dump(mode="json") for r in records])

    def list(self) -> List[PlateRecord]:
        return self._load_records()

    def get(self, record_id: str) -> Optional[PlateRecord]:
        for record in self._load_records():
            if record.id == record_id:
                return record
        return None

    def upsert(self, record: PlateRecord) -> PlateRecord:
        records = self._load_records()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            records.append(record)
        self._save_records(records)
        return record

    def delete(self, record_id: str) -> bool:
        records = self._load_records()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        self._save_records(remaining)
        return True

    # --- Görüntüleme durumu ---

    def _load_view_states(self) -> Dict[str, Any]:
        raw = self.kv.get(VIEW_STATES_KEY, {})
        return raw if isinstance(raw, dict) else {}

    def get_view_state(self, record_id: str) -> Optional[ViewTransformState]:
        raw = self._load_view_states().get(record_id)
        if raw is None:
            return None
        try:
            return ViewTransformState.model_validate(raw)
        except SchemaError as e:
            logger.warning(f"Discarding unreadable view state for {record_id}: {e}")
            return None

    def set_view_state(self, record_id: str, state: ViewTransformState) -> ViewTransformState:
        states = self._load_view_states()
        states[record_id] = state.model_dump(mode="json")
        self.kv.set(VIEW_STATES_KEY, states)
        return state

    def delete_view_state(self, record_id: str) -> bool:
        states = self._load_view_states()
        if states.pop(record_id, None) is None:
            return False
        self.kv.set(VIEW_STATES_KEY, states)
        return True

    # --- Göç bayrağı ---

    def is_migration_completed(self) -> bool:
        return bool(self.kv.get(MIGRATION_KEY, False))

    def set_migration_completed(self, value: bool = True) -> None:
        self.kv.set(MIGRATION_KEY, bool(value))
