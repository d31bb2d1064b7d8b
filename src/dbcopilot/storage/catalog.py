"""Saved-connection catalog stored as a JSON file.

Records hold the encrypted credential only; decryption happens in the
manager right before connecting.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from ..constants import CATALOG_FILENAME, DEFAULT_STORAGE_DIRNAME
from ..models import DatabaseRecord

logger = logging.getLogger(__name__)


class ConnectionCatalog:
    """File-backed store of saved database connections."""

    def __init__(self, storage_dir: Optional[Path] = None):
        """Initialize catalog.

        Args:
            storage_dir: Directory holding the catalog file.
                        Defaults to ~/.dbcopilot/
        """
        if storage_dir is None:
            storage_dir = Path.home() / DEFAULT_STORAGE_DIRNAME

        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.storage_dir / CATALOG_FILENAME
        self._lock = threading.Lock()

    def _read(self) -> dict[str, DatabaseRecord]:
        if not self.path.exists():
            return {}

        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        return {
            record["id"]: DatabaseRecord.from_dict(record)
            for record in data.get("databases", [])
        }

    def _write(self, records: dict[str, DatabaseRecord]) -> None:
        payload = {"databases": [record.to_dict(include_credential=True) for record in records.values()]}

        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp_path.chmod(0o600)  # Read/write for owner only
        os.replace(tmp_path, self.path)

    def add(self, record: DatabaseRecord) -> DatabaseRecord:
        """Persist a record, replacing any record with the same id."""
        with self._lock:
            records = self._read()
            records[record.id] = record
            self._write(records)

        logger.info(f"Saved database {record.db_name} ({record.source}) as {record.id}")
        return record

    def get(self, database_id: str) -> Optional[DatabaseRecord]:
        with self._lock:
            return self._read().get(database_id)

    def find(self, source: str, db_name: str) -> Optional[DatabaseRecord]:
        """Return the record saved under ``(source, db_name)``, if any."""
        with self._lock:
            for record in self._read().values():
                if record.source == source and record.db_name == db_name:
                    return record
        return None

    def list_records(self) -> list[DatabaseRecord]:
        """Return every record, oldest first."""
        with self._lock:
            records = list(self._read().values())
        return sorted(records, key=lambda record: record.created_at or 0.0)

    def delete(self, database_ids: list[str]) -> int:
        """Delete records by id.

        Args:
            database_ids: Ids to delete; unknown ids are ignored

        Returns:
            Number of records actually deleted
        """
        with self._lock:
            records = self._read()
            deleted = 0
            for database_id in database_ids:
                if records.pop(database_id, None) is not None:
                    deleted += 1
            if deleted:
                self._write(records)

        logger.info(f"Deleted {deleted} saved database(s)")
        return deleted
