"""In-process record store used for local runs and tests."""

import copy
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .protocol import CREATE_ONLY, Record
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logger import get_logger


class InMemoryRecordStore:
    """Thread-safe dict-backed implementation of the RecordStore protocol."""

    def __init__(self, seed: Optional[Dict[str, List[Record]]] = None):
        self._collections: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("api")

        for collection, records in (seed or {}).items():
            for record in records:
                self.put(collection, record)

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryRecordStore":
        """Create a store seeded from a JSON file of ``{collection: [records]}``."""
        with open(Path(path), "r", encoding="utf-8") as f:
            return cls(seed=json.load(f))

    def get(self, collection: str, record_id: str) -> Record:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise NotFoundError(
                    f"{collection} record not found: {record_id}",
                    details={"collection": collection, "id": record_id}
                )
            return copy.deepcopy(record)

    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        filters = filters or {}
        with self._lock:
            records = self._collections.get(collection, {}).values()
            return [
                copy.deepcopy(record) for record in records
                if all(record.get(key) == value for key, value in filters.items())
            ]

    def put(self, collection: str, record: Record, expected_version: Optional[int] = None) -> Record:
        record_id = record.get("id")
        if not record_id:
            raise ValidationError("Record id is required", details={"collection": collection})

        with self._lock:
            records = self._collections.setdefault(collection, {})
            current = records.get(record_id)
            current_version = current["version"] if current else CREATE_ONLY

            if expected_version is not None and expected_version != current_version:
                self.logger.debug(
                    f"Version conflict on {collection}/{record_id}: "
                    f"expected {expected_version}, found {current_version}"
                )
                raise ConflictError(
                    f"{collection} record {record_id} was modified concurrently",
                    details={
                        "collection": collection,
                        "id": record_id,
                        "expected_version": expected_version,
                        "current_version": current_version
                    }
                )

            stored = copy.deepcopy(record)
            stored["version"] = current_version + 1
            records[record_id] = stored
            return copy.deepcopy(stored)

    def delete(self, collection: str, record_id: str, expected_version: Optional[int] = None) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            current = records.get(record_id)
            if current is None:
                raise NotFoundError(
                    f"{collection} record not found: {record_id}",
                    details={"collection": collection, "id": record_id}
                )
            if expected_version is not None and expected_version != current["version"]:
                raise ConflictError(
                    f"{collection} record {record_id} was modified concurrently",
                    details={"collection": collection, "id": record_id}
                )
            del records[record_id]
