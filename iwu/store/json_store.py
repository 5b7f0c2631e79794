"""
JSON file store for alerts, cases, targets, scans and source snapshots.

Every collection is one JSON file under the data directory. Files are read
and written whole; there is no locking, so two processes writing the same
file race with last-write-wins.
"""

import hashlib
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

JsonData = Union[List[Any], Dict[str, Any]]


class PersistError(Exception):
    """Raised when a collection cannot be written to disk."""
    def __init__(self, key: str, message: str, original_error: Optional[Exception] = None):
        self.key = key
        self.message = message
        self.original_error = original_error
        super().__init__(f"{key}: {message}")


def generate_id() -> str:
    """Return a random UUID4 string."""
    return str(uuid.uuid4())


def generate_hash(data: Any) -> str:
    """
    Compute the SHA-256 hex digest of a JSON-serialisable value.

    Keys are sorted so the digest does not depend on dict insertion order.
    """
    payload = json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class JsonStore:
    """File-backed record storage rooted at a data directory."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        """Path of the JSON file backing ``key``."""
        filename = key if key.endswith(".json") else f"{key}.json"
        return self.data_dir / filename

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def read(self, key: str) -> Optional[JsonData]:
        """
        Load and parse one JSON file.

        Args:
            key: Collection name (file stem)

        Returns:
            Parsed JSON, or None if the file is missing or unreadable
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    def read_collection(self, key: str) -> List[Dict[str, Any]]:
        """Read a list collection, treating a missing or unreadable file as empty."""
        data = self.read(key)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning(f"Expected a list in {self.path_for(key)}, got {type(data).__name__}")
            return []
        return data

    def write(self, key: str, data: JsonData) -> None:
        """
        Serialise ``data`` and replace the file for ``key``.

        The payload is written to a temp file and renamed over the target so
        readers never see a half-written file.

        Raises:
            PersistError: If serialisation or the write fails
        """
        path = self.path_for(key)
        temp_path = path.with_suffix(".json.tmp")

        try:
            content = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistError(key, f"Failed to serialize: {e}", e) from e

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(temp_path, path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistError(key, f"Failed to write {path}: {e}", e) from e

    def create_record(
        self,
        collection: str,
        fields: Dict[str, Any],
        prepend: bool = False,
        cap: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Store a new record with a fresh id and creation timestamp.

        Args:
            collection: Collection name
            fields: Record fields; ``id`` and ``created_at`` are filled if absent
            prepend: Insert at the front (most-recent-first collections)
            cap: Keep at most this many records after insertion

        Returns:
            The stored record
        """
        records = self.read_collection(collection)

        record = dict(fields)
        record.setdefault("id", generate_id())
        record.setdefault("created_at", utc_now_iso())

        if prepend:
            records.insert(0, record)
        else:
            records.append(record)

        if cap is not None and len(records) > cap:
            records = records[:cap] if prepend else records[-cap:]

        self.write(collection, records)
        return record

    def find_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        for record in self.read_collection(collection):
            if record.get("id") == record_id:
                return record
        return None

    def update_record(
        self,
        collection: str,
        record_id: str,
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Merge ``patch`` into the record with ``record_id`` and persist.

        Returns:
            The updated record, or None if no record has that id
        """
        records = self.read_collection(collection)

        for index, record in enumerate(records):
            if record.get("id") == record_id:
                updated = {**record, **patch}
                updated["id"] = record_id
                records[index] = updated
                self.write(collection, records)
                return updated

        return None

    def filter_records(self, collection: str, **criteria: Any) -> List[Dict[str, Any]]:
        """Exact-match AND filter; criteria with a None value are ignored."""
        active = {k: v for k, v in criteria.items() if v is not None}
        return [
            record for record in self.read_collection(collection)
            if all(record.get(k) == v for k, v in active.items())
        ]
