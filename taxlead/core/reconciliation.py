"""Status-change reconciliation between an upload and the stored snapshot."""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .identity import resolve_property_id
from .status import FALLBACK_STATUS_FIELDS, PRIMARY_STATUS_FIELD, change_type, extract_status

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

Timestamp = Union[str, datetime]


def parse_timestamp(value: Timestamp) -> datetime:
    """Parse an ISO 8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Timestamp) -> str:
    if isinstance(value, datetime):
        return parse_timestamp(value).isoformat()
    return str(value)


def whole_days_between(start: Timestamp, now: datetime) -> int:
    """Whole days elapsed from start to now, never negative."""
    elapsed = (parse_timestamp(now) - parse_timestamp(start)).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def days_since_status_change(prop: Mapping[str, Any], now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    changed_at = prop.get("statusChangeDate")
    if not changed_at:
        return 0
    return whole_days_between(changed_at, now)


def refresh_days_since_change(properties: Iterable[Mapping[str, Any]], now: Optional[datetime] = None) -> List[Dict]:
    """Return copies of the properties with daysSinceStatusChange recomputed for now."""
    now = now or datetime.now(timezone.utc)
    refreshed = []
    for prop in properties:
        copy = dict(prop)
        copy["daysSinceStatusChange"] = days_since_status_change(prop, now)
        refreshed.append(copy)
    return refreshed


def collapse_rows(rows: Iterable[Mapping[str, Any]]) -> Dict:
    """Group raw rows by identifier, dropping rows without one.

    Repeated identifiers are merged in upload order, later values winning.
    """
    collapsed: Dict[str, Dict] = {}
    skipped = 0
    for row in rows:
        identifier = resolve_property_id(row)
        if not identifier:
            skipped += 1
            continue
        if identifier in collapsed:
            collapsed[identifier].update(row)
        else:
            collapsed[identifier] = dict(row)

    if skipped:
        logger.debug(f"Skipped {skipped} rows without a recognised identifier")

    return {"rows": collapsed, "skipped": skipped}


def _history_entry(status, status_date, previous_status, days_since_change) -> Dict:
    return {
        "status": status,
        "statusDate": status_date,
        "previousStatus": previous_status,
        "daysSinceStatusChange": days_since_change,
    }


def _copy_history(prop: Mapping[str, Any]) -> List[Dict]:
    return [dict(entry) for entry in prop.get("statusHistory") or []]


def reconcile(
    new_rows: Iterable[Mapping[str, Any]],
    existing_properties: Iterable[Mapping[str, Any]],
    upload_timestamp: Timestamp,
    now: Optional[datetime] = None,
    retain_absent: bool = False,
    primary_status_field: str = PRIMARY_STATUS_FIELD,
) -> Dict:
    """Merge an uploaded batch into the known properties.

    Pure function of its inputs: existing property mappings are copied, never
    mutated. Returns {"properties", "status_changes", "rows_in",
    "skipped_rows"}.
    """
    now = parse_timestamp(now) if now else datetime.now(timezone.utc)
    upload_date = to_iso(upload_timestamp)

    existing_map: Dict[str, Mapping[str, Any]] = {}
    for prop in existing_properties:
        if prop.get("id"):
            existing_map[prop["id"]] = prop

    new_rows = list(new_rows)
    collapsed = collapse_rows(new_rows)

    properties: List[Dict] = []
    status_changes: List[Dict] = []

    for identifier, row in collapsed["rows"].items():
        new_status = extract_status(row, primary_status_field, FALLBACK_STATUS_FIELDS)
        existing = existing_map.get(identifier)

        if existing is not None:
            old_status = existing.get("currentStatus") or None
            history = _copy_history(existing)

            if old_status != new_status:
                days_since_change = whole_days_between(upload_date, now)
                history.append(_history_entry(new_status, upload_date, old_status, days_since_change))
                prop = {
                    **existing,
                    **row,
                    "id": identifier,
                    "currentStatus": new_status,
                    "previousStatus": old_status,
                    "statusChangeDate": upload_date,
                    "daysSinceStatusChange": days_since_change,
                    "statusHistory": history,
                }
                status_changes.append(_change_event(prop, old_status, new_status, days_since_change))
            else:
                changed_at = existing.get("statusChangeDate") or upload_date
                prop = {
                    **existing,
                    **row,
                    "id": identifier,
                    "currentStatus": new_status,
                    "previousStatus": existing.get("previousStatus"),
                    "statusChangeDate": changed_at,
                    "daysSinceStatusChange": whole_days_between(changed_at, now),
                    "statusHistory": history,
                }
        else:
            prop = {
                **row,
                "id": identifier,
                "currentStatus": new_status,
                "previousStatus": None,
                "statusChangeDate": upload_date,
                "daysSinceStatusChange": 0,
                "statusHistory": [_history_entry(new_status, upload_date, None, 0)] if new_status else [],
            }
            if new_status:
                status_changes.append(_change_event(prop, None, new_status, 0))

        if retain_absent:
            prop["absentFromLatestUpload"] = False
        else:
            prop.pop("absentFromLatestUpload", None)
        properties.append(prop)

    if retain_absent:
        for identifier, existing in existing_map.items():
            if identifier not in collapsed["rows"]:
                properties.append({**existing, "absentFromLatestUpload": True})

    _log_summary(len(new_rows), collapsed["skipped"], properties, status_changes)

    return {
        "properties": properties,
        "status_changes": status_changes,
        "rows_in": len(new_rows),
        "skipped_rows": collapsed["skipped"],
    }


def _change_event(prop, old_status, new_status, days_since_change) -> Dict:
    return {
        "property": prop,
        "oldStatus": old_status,
        "newStatus": new_status,
        "daysSinceChange": days_since_change,
        "changeType": change_type(old_status, new_status),
    }


def _log_summary(rows_in: int, skipped: int, properties: List[Dict], status_changes: List[Dict]) -> None:
    logger.info("=" * 70)
    logger.info("RECONCILIATION SUMMARY")
    logger.info("=" * 70)
    logger.info(f"Rows in upload:              {rows_in}")
    logger.info(f"  - Without identifier:      {skipped}")
    logger.info(f"Properties after merge:      {len(properties)}")
    logger.info(f"Status changes:              {len(status_changes)}")
    logger.info("=" * 70)
