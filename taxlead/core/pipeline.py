"""Load snapshot → reconcile → report → save snapshot, report and upload together."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from .reconciliation import Timestamp, parse_timestamp, reconcile, to_iso
from .report import CATEGORICAL_TRACKED_FIELD, NUMERIC_TRACKED_FIELD, build_comparison_report
from .snapshot import Snapshot, SnapshotRepository
from .status import PRIMARY_STATUS_FIELD

logger = logging.getLogger(__name__)


def process_upload(
    rows: Iterable[Mapping[str, Any]],
    repository: SnapshotRepository,
    upload_timestamp: Timestamp,
    now: Optional[datetime] = None,
    retain_absent: bool = False,
    primary_status_field: str = PRIMARY_STATUS_FIELD,
    numeric_field: str = NUMERIC_TRACKED_FIELD,
    categorical_field: str = CATEGORICAL_TRACKED_FIELD,
    upload_metadata: Optional[Dict] = None,
) -> Dict:
    """
        Reconcile one uploaded batch against the stored snapshot and persist it.

        The snapshot, its comparison report and the upload record are handed
        to a single save, conditional on the snapshot version read at the
        start. A failed save leaves storage as it was, so the call can be
        retried; a concurrent upload makes it raise StaleSnapshotError
        instead of overwriting the other writer's history.

        An upload whose filename is already recorded in the snapshot is not
        applied again; the result then has "skipped" set and no report.
    """
    now = parse_timestamp(now) if now else datetime.now(timezone.utc)
    upload_date = to_iso(upload_timestamp)

    previous = repository.load()
    logger.info(f"Loaded snapshot v{previous.version} with {len(previous.properties)} properties")

    filename = (upload_metadata or {}).get("filename")
    if filename and filename in previous.processed_files:
        logger.info(f"{filename} is already reconciled into snapshot v{previous.version}; skipping")
        return {
            "properties": previous.properties,
            "status_changes": [],
            "report": None,
            "version": previous.version,
            "skipped": True,
        }

    result = reconcile(
        rows,
        previous.properties,
        upload_date,
        now=now,
        retain_absent=retain_absent,
        primary_status_field=primary_status_field,
    )
    report = build_comparison_report(
        previous.properties,
        result["properties"],
        result["status_changes"],
        upload_timestamp=upload_date,
        now=now,
        numeric_field=numeric_field,
        categorical_field=categorical_field,
    )

    upload = None
    if upload_metadata is not None:
        upload = {
            **upload_metadata,
            "uploadDate": upload_date,
            "statusChangesCount": len(result["status_changes"]),
            "snapshotVersion": previous.version + 1,
        }

    saved = repository.save(
        Snapshot(
            properties=result["properties"],
            upload_date=upload_date,
            last_updated=now.isoformat(),
        ),
        expected_version=previous.version,
        report=report,
        upload=upload,
    )

    logger.info(
        f"Saved snapshot v{saved.version}: {len(saved.properties)} properties, "
        f"{len(result['status_changes'])} status changes, "
        f"{report['summary']['foreclosedPropertiesCount']} dead leads"
    )

    return {
        "properties": result["properties"],
        "status_changes": result["status_changes"],
        "report": report,
        "version": saved.version,
        "skipped": False,
    }
