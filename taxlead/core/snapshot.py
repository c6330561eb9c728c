"""The persisted property list and the storage contract around it."""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Protocol, Tuple


@dataclass(frozen=True)
class Snapshot:
    properties: List[Dict] = field(default_factory=list)
    upload_date: Optional[str] = None
    last_updated: Optional[str] = None
    # 0 means nothing has been saved yet.
    version: int = 0
    # Filenames of every upload already folded into this snapshot.
    processed_files: Tuple[str, ...] = ()

    def with_version(self, version: int) -> "Snapshot":
        return replace(self, version=version)


class SnapshotRepository(Protocol):
    def load(self) -> Snapshot:
        ...

    def save(
        self,
        snapshot: Snapshot,
        expected_version: int,
        report: Optional[Dict] = None,
        upload: Optional[Dict] = None,
    ) -> Snapshot:
        """Store the snapshot, its report and the upload record together or not at all."""
        ...

    def load_report(self) -> Optional[Dict]:
        ...

    def load_uploads(self) -> List[Dict]:
        ...


def upload_filenames(uploads) -> Tuple[str, ...]:
    return tuple(upload["filename"] for upload in uploads or [] if upload.get("filename"))
