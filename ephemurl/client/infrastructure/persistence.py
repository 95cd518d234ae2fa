"""
Data persistence utilities.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
from pathlib import Path  # noqa: TC003
from typing import Any

from ephemurl.common.models import BeaconRecord, CachedCredential

logger = logging.getLogger(__name__)


class DataPersistence:
    """Handles loading and saving persistent data."""

    @staticmethod
    def _serialize_record(record: BeaconRecord) -> dict[str, Any]:
        """Serialize BeaconRecord to JSON-serializable format."""
        data = record.model_dump(mode="json", exclude={"identity_key"})
        data["identity_key"] = (
            base64.b64encode(record.identity_key).decode("utf-8")
            if record.identity_key is not None
            else None
        )
        return data

    @staticmethod
    def _deserialize_record(data: dict[str, Any]) -> BeaconRecord:
        """Deserialize BeaconRecord from JSON format."""
        if data.get("identity_key") is not None:
            data["identity_key"] = base64.b64decode(data["identity_key"])
        return BeaconRecord.model_validate(data)

    @staticmethod
    def load_credential(file_path: Path) -> CachedCredential | None:
        """Load the cached credential from file."""
        try:
            with file_path.open() as f:
                return CachedCredential.model_validate_json(f.read())
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning("Ignoring unreadable credential file %s", file_path)
            return None

    @staticmethod
    def save_credential(file_path: Path, credential: CachedCredential) -> None:
        """Save the credential, replacing the file in one rename."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(".tmp")
        with tmp_path.open("w") as f:
            f.write(credential.model_dump_json())
        tmp_path.replace(file_path)

    @staticmethod
    def clear_credential(file_path: Path) -> None:
        file_path.unlink(missing_ok=True)

    @staticmethod
    def load_records(file_path: Path) -> dict[str, dict[str, BeaconRecord]]:
        """Load records grouped by kind tag."""
        try:
            with file_path.open() as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return {}
        return {
            kind: {
                rid: DataPersistence._deserialize_record(item)
                for rid, item in items.items()
            }
            for kind, items in data.items()
        }

    @staticmethod
    def save_records(
        file_path: Path, records: dict[str, dict[str, BeaconRecord]]
    ) -> None:
        """Save records grouped by kind tag."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(".tmp")
        with tmp_path.open("w") as f:
            json.dump(
                {
                    kind: {
                        rid: DataPersistence._serialize_record(rec)
                        for rid, rec in items.items()
                    }
                    for kind, items in records.items()
                },
                f,
            )
        tmp_path.replace(file_path)


class JsonRecordStore:
    """Beacon record store backed by a single JSON file."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self._lock = threading.Lock()
        self._records = DataPersistence.load_records(file_path)

    def insert(self, record: BeaconRecord) -> None:
        with self._lock:
            items = self._records.setdefault(str(record.kind), {})
            if record.record_id in items:
                msg = f"record {record.record_id} already exists"
                raise KeyError(msg)
            items[record.record_id] = record.model_copy(deep=True)
            self._save()
        logger.debug("Inserted record %s (kind %#x)", record.record_id, record.kind)

    def update(self, record: BeaconRecord, changed_fields: set[str]) -> None:
        """Write only ``changed_fields`` of ``record`` to the stored copy."""
        with self._lock:
            stored = self._records.get(str(record.kind), {}).get(record.record_id)
            if stored is None:
                msg = f"record {record.record_id} not found"
                raise KeyError(msg)
            changes = {name: getattr(record, name) for name in changed_fields}
            self._records[str(record.kind)][record.record_id] = stored.model_copy(
                update=changes, deep=True
            )
            self._save()

    def delete(self, record: BeaconRecord) -> None:
        with self._lock:
            items = self._records.get(str(record.kind), {})
            if items.pop(record.record_id, None) is None:
                return
            if not items:
                del self._records[str(record.kind)]
            self._save()
        logger.debug("Deleted record %s", record.record_id)

    def query(self, kind: int | None = None) -> list[BeaconRecord]:
        with self._lock:
            if kind is not None:
                items = list(self._records.get(str(kind), {}).values())
            else:
                items = [
                    rec for group in self._records.values() for rec in group.values()
                ]
            return [rec.model_copy(deep=True) for rec in items]

    def _save(self) -> None:
        DataPersistence.save_records(self.file_path, self._records)
