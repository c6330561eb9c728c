import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from taxlead.core.exceptions import SnapshotStorageError, StaleSnapshotError
from taxlead.core.reconciliation import refresh_days_since_change
from taxlead.core.snapshot import Snapshot, upload_filenames

logger = logging.getLogger(__name__)


def _write_json_atomic(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class JsonSnapshotRepository:
    """
        Snapshot kept in a single JSON document, replaced atomically on save.

        The latest comparison report and the upload history live in the same
        document, so a save either lands all three or none of them.
    """

    # One lock for all instances in this process.
    _lock = threading.Lock()

    def __init__(self, snapshot_path):
        self.snapshot_path = Path(snapshot_path)

    @classmethod
    def from_settings(cls, settings) -> "JsonSnapshotRepository":
        return cls(settings.SNAPSHOT_PATH)

    def _read_document(self) -> Optional[Dict]:
        if not self.snapshot_path.exists():
            return None
        try:
            return json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SnapshotStorageError(f"Failed to read snapshot {self.snapshot_path}") from exc

    def load(self, now: Optional[datetime] = None) -> Snapshot:
        data = self._read_document()
        if data is None:
            logger.info(f"No snapshot at {self.snapshot_path}")
            return Snapshot()

        properties = data.get("properties") or []
        logger.info(f"Loaded {len(properties)} properties (v{data.get('version', 0)}) from {self.snapshot_path}")
        return Snapshot(
            properties=refresh_days_since_change(properties, now),
            upload_date=data.get("uploadDate"),
            last_updated=data.get("lastUpdated"),
            version=data.get("version", 0),
            processed_files=upload_filenames(data.get("uploads")),
        )

    def save(
        self,
        snapshot: Snapshot,
        expected_version: int,
        report: Optional[Dict] = None,
        upload: Optional[Dict] = None,
    ) -> Snapshot:
        with self._lock:
            current = self._read_document() or {}
            current_version = current.get("version", 0)
            if current_version != expected_version:
                logger.warning(f"Snapshot v{expected_version} is stale (stored v{current_version}); save rejected")
                raise StaleSnapshotError(expected_version, current_version)

            uploads = list(current.get("uploads") or [])
            if upload is not None:
                uploads.append(dict(upload))

            new_version = expected_version + 1
            try:
                _write_json_atomic(self.snapshot_path, {
                    "properties": snapshot.properties,
                    "uploadDate": snapshot.upload_date,
                    "lastUpdated": snapshot.last_updated,
                    "version": new_version,
                    "report": report if report is not None else current.get("report"),
                    "uploads": uploads,
                })
            except OSError as exc:
                raise SnapshotStorageError(f"Failed to write snapshot {self.snapshot_path}") from exc

        logger.info(f"Saved {len(snapshot.properties)} properties as v{new_version} to {self.snapshot_path}")
        return snapshot.with_version(new_version)

    def load_report(self) -> Optional[Dict]:
        data = self._read_document()
        return data.get("report") if data else None

    def load_uploads(self) -> List[Dict]:
        data = self._read_document()
        return list(data.get("uploads") or []) if data else []
