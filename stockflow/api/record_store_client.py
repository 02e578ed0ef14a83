"""Hosted record store API client."""

import urllib.parse
from typing import Any, Dict, List, Optional

import httpx

from .base_client import BaseClient
from .protocol import CREATE_ONLY, Record
from ..utils.config import get_config
from ..utils.logger import get_logger
from ..utils.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RecordStoreError,
)

PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error_message(response: httpx.Response) -> str:
    """Extract the error text from a record store response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)


def _records_path(collection: str, record_id: Optional[str] = None) -> str:
    path = f"/collections/{urllib.parse.quote(collection, safe='')}/records"
    if record_id is not None:
        path += f"/{urllib.parse.quote(str(record_id), safe='')}"
    return path


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class RecordStoreClient(BaseClient):
    """RecordStore implementation backed by the hosted record store HTTP API.

    Conditional writes use ``If-Match: <version>``; create-only writes use
    ``If-None-Match: *``. The store answers 409 or 412 when the condition
    fails.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """Initialize record store client from configuration."""
        config = get_config()
        base_url = base_url or config.env.record_store_url
        api_key = api_key if api_key is not None else config.env.record_store_api_key

        if not base_url.startswith("https://") and not base_url.startswith("http://"):
            base_url = f"https://{base_url}"

        headers = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        super().__init__(base_url=base_url, headers=headers, transport=transport)
        self.logger = get_logger("api")

    # ------------------------------------------------------------------
    # Request wrapper
    # ------------------------------------------------------------------

    def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Send a request and translate transport failures and common error
        statuses into application exceptions.

        404 and 409/412 are returned to the caller so it can attach the
        collection and id to the error.
        """
        try:
            response = self._make_request_with_retry(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            raise RecordStoreError(
                f"Network error calling record store ({method} {endpoint}): {str(e)}",
                details={"error": str(e)}
            )

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Record store rejected credentials (HTTP {response.status_code}): {_error_message(response)}",
                details={"status_code": response.status_code}
            )

        if response.status_code >= 500:
            raise RecordStoreError(
                f"Record store error (HTTP {response.status_code}): {_error_message(response)}",
                details={"status_code": response.status_code, "response": response.text}
            )

        return response

    def _raise_for_record(self, response: httpx.Response, collection: str, record_id: str):
        if response.status_code == 404:
            raise NotFoundError(
                f"{collection} record not found: {record_id}",
                details={"collection": collection, "id": record_id}
            )
        if response.status_code in (409, 412):
            raise ConflictError(
                f"{collection} record {record_id} was modified concurrently",
                details={"collection": collection, "id": record_id, "response": _error_message(response)}
            )
        if response.status_code >= 400:
            raise RecordStoreError(
                f"Unexpected HTTP {response.status_code} for {collection}/{record_id}",
                details={"collection": collection, "id": record_id, "response": response.text}
            )

    # ------------------------------------------------------------------
    # RecordStore protocol
    # ------------------------------------------------------------------

    def get(self, collection: str, record_id: str) -> Record:
        """Fetch one record by id."""
        response = self._request("GET", _records_path(collection, record_id))
        self._raise_for_record(response, collection, record_id)
        return response.json()["record"]

    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        """
        List records matching equality filters.

        The API returns at most ``PAGE_SIZE`` records per call, so this
        paginates until a short page comes back.
        """
        endpoint = _records_path(collection)
        offset = 0
        records: List[Record] = []

        while True:
            params = {key: str(value) for key, value in (filters or {}).items()}
            params.update({"limit": str(PAGE_SIZE), "offset": str(offset)})

            response = self._request("GET", endpoint, params=params)
            if response.status_code == 404:
                # Collection not created yet
                break
            if response.status_code != 200:
                raise RecordStoreError(
                    f"Unexpected HTTP {response.status_code} listing {collection}",
                    details={"collection": collection, "response": response.text}
                )

            page = response.json().get("records", [])
            records.extend(page)

            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        self.logger.debug(f"Listed {len(records)} {collection} records")
        return records

    def put(self, collection: str, record: Record, expected_version: Optional[int] = None) -> Record:
        """Write a record, conditioned on its version when one is given."""
        record_id = record["id"]
        headers = {}
        if expected_version == CREATE_ONLY:
            headers["If-None-Match"] = "*"
        elif expected_version is not None:
            headers["If-Match"] = str(expected_version)

        response = self._request(
            "PUT", _records_path(collection, record_id), json={"record": record}, headers=headers
        )
        self._raise_for_record(response, collection, record_id)

        stored = response.json()["record"]
        self.logger.debug(f"Stored {collection}/{record_id} at version {stored.get('version')}")
        return stored

    def delete(self, collection: str, record_id: str, expected_version: Optional[int] = None) -> None:
        """Delete a record, conditioned on its version when one is given."""
        headers = {}
        if expected_version is not None:
            headers["If-Match"] = str(expected_version)

        response = self._request("DELETE", _records_path(collection, record_id), headers=headers)
        self._raise_for_record(response, collection, record_id)
        self.logger.info(f"Deleted {collection}/{record_id}")

    def ping(self) -> bool:
        """Check that the record store answers and accepts our credentials."""
        response = self._request("GET", "/health")
        if response.status_code != 200:
            raise RecordStoreError(
                f"Record store health check failed (HTTP {response.status_code})",
                details={"response": response.text}
            )
        return True
