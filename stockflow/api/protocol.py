"""Record store protocol (get/list/put with per-record conditional writes)."""

from typing import Any, Dict, List, Optional, Protocol

Record = Dict[str, Any]

# expected_version value meaning "the record must not exist yet"
CREATE_ONLY = 0


class RecordStore(Protocol):
    """Abstract interface to the hosted record store.

    Every stored record carries an integer ``version`` managed by the store.
    Writes given an ``expected_version`` only succeed when the stored
    version still matches; ``CREATE_ONLY`` succeeds only if the id is free.
    """

    def get(self, collection: str, record_id: str) -> Record:
        """Get one record. Raises NotFoundError when absent."""
        ...

    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        """List records whose fields equal every value in ``filters``."""
        ...

    def put(self, collection: str, record: Record, expected_version: Optional[int] = None) -> Record:
        """Write a record and return it with its new version. Raises ConflictError on a version mismatch."""
        ...

    def delete(self, collection: str, record_id: str, expected_version: Optional[int] = None) -> None:
        """Delete a record. Raises NotFoundError or ConflictError."""
        ...
