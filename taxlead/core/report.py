"""Comparison report between the previous snapshot and a freshly merged upload."""

import math
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .identity import cell_text, resolve_address
from .reconciliation import Timestamp, to_iso
from .status import JUDGMENT, STATUSES

NUMERIC_TRACKED_FIELD = "TOT_PERCAN"
CATEGORICAL_TRACKED_FIELD = "LEGALSTATUS"

DEAD_LEAD_REASON = "Foreclosed or New Owner - Lead No Longer Valid"


def parse_number(value: Any) -> Optional[float]:
    """Read a numeric cell that may carry '$', ',' or '%' decorations."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    text = cell_text(value).replace("$", "").replace(",", "").replace("%", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _index(properties: Iterable[Mapping[str, Any]], skip_absent: bool = False) -> Dict[str, Mapping[str, Any]]:
    index = {}
    for prop in properties:
        if not prop.get("id"):
            continue
        if skip_absent and prop.get("absentFromLatestUpload"):
            continue
        index[prop["id"]] = prop
    return index


def _numeric_change(identifier, prev, new, field) -> Optional[Dict]:
    old_value, new_value = prev.get(field), new.get(field)
    old_number, new_number = parse_number(old_value), parse_number(new_value)

    if old_number is not None and new_number is not None:
        if old_number == new_number:
            return None
        difference = round(new_number - old_number, 3)
    else:
        if cell_text(old_value) == cell_text(new_value):
            return None
        difference = None

    return {
        "identifier": identifier,
        "address": resolve_address(new),
        "field": field,
        "oldValue": old_value,
        "newValue": new_value,
        "difference": difference,
    }


def _categorical_change(identifier, prev, new, field) -> Optional[Dict]:
    old_text, new_text = cell_text(prev.get(field)), cell_text(new.get(field))
    if old_text == new_text:
        return None
    return {
        "identifier": identifier,
        "address": resolve_address(new),
        "field": field,
        "oldValue": old_text or None,
        "newValue": new_text or None,
    }


def build_comparison_report(
    previous_properties: Iterable[Mapping[str, Any]],
    merged_properties: Iterable[Mapping[str, Any]],
    status_changes: Iterable[Mapping[str, Any]],
    upload_timestamp: Optional[Timestamp] = None,
    now: Optional[datetime] = None,
    numeric_field: str = NUMERIC_TRACKED_FIELD,
    categorical_field: str = CATEGORICAL_TRACKED_FIELD,
) -> Dict:
    """
        Compare the previous snapshot with the merged upload.

        Read-only over its inputs. Properties flagged absentFromLatestUpload
        are left out on both sides: a property is removed once, in the upload
        it first goes missing from, and is new again if it comes back. The
        report is the same whether or not absent properties are retained.
    """
    previous = _index(previous_properties, skip_absent=True)
    current = _index(merged_properties, skip_absent=True)

    new_properties = [
        {
            "identifier": identifier,
            "address": resolve_address(prop),
            "status": prop.get("currentStatus"),
        }
        for identifier, prop in current.items()
        if identifier not in previous
    ]

    removed_properties = []
    for identifier, prop in previous.items():
        if identifier in current:
            continue
        last_status = prop.get("currentStatus") or None
        entry = {
            "identifier": identifier,
            "address": resolve_address(prop),
            "previousStatus": last_status,
            "isForeclosed": last_status == JUDGMENT,
        }
        if entry["isForeclosed"]:
            entry["reason"] = DEAD_LEAD_REASON
        removed_properties.append(entry)

    foreclosed_properties = [entry for entry in removed_properties if entry["isForeclosed"]]

    changes: List[Dict] = []
    for event in status_changes:
        prop = event["property"]
        changes.append({
            "identifier": prop.get("id"),
            "address": resolve_address(prop),
            "oldStatus": event["oldStatus"],
            "newStatus": event["newStatus"],
            "changeType": event["changeType"],
            "daysSinceChange": event["daysSinceChange"],
        })

    numeric_changes, categorical_changes = [], []
    for identifier, prop in current.items():
        prev = previous.get(identifier)
        if prev is None:
            continue
        numeric = _numeric_change(identifier, prev, prop, numeric_field)
        if numeric:
            numeric_changes.append(numeric)
        categorical = _categorical_change(identifier, prev, prop, categorical_field)
        if categorical:
            categorical_changes.append(categorical)

    status_breakdown = {status: 0 for status in STATUSES}
    status_breakdown["None"] = 0
    for prop in current.values():
        status_breakdown[prop.get("currentStatus") or "None"] += 1

    now = now or datetime.now(timezone.utc)

    return {
        "uploadDate": to_iso(upload_timestamp) if upload_timestamp else None,
        "generatedAt": now.isoformat(),
        "summary": {
            "newPropertiesCount": len(new_properties),
            "removedPropertiesCount": len(removed_properties),
            "foreclosedPropertiesCount": len(foreclosed_properties),
            "statusChangesCount": len(changes),
            "numericFieldChangesCount": len(numeric_changes),
            "categoricalFieldChangesCount": len(categorical_changes),
            "totalPropertiesInOldFile": len(previous),
            "totalPropertiesInNewFile": len(current),
        },
        "newProperties": new_properties,
        "removedProperties": removed_properties,
        "foreclosedProperties": foreclosed_properties,
        "statusChanges": changes,
        "numericFieldChanges": numeric_changes,
        "categoricalFieldChanges": categorical_changes,
        "statusBreakdown": status_breakdown,
        "changeTypeBreakdown": dict(Counter(change["changeType"] for change in changes)),
    }
