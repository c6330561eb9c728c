"""Legal status extraction (Judgment / Active / Pending).

Primary column values are matched by substring in the fixed order below, so
"JUDGMENT/ACTIVE" is a Judgment and any value containing an "A" beats one
containing a "P":

    contains "J"  -> J
    contains "A"  -> A
    contains "P"  -> P
    otherwise     -> no status, fall back to the alternate columns

Alternate columns only accept an exact J, A or P.
"""

from typing import Any, Mapping, Optional, Sequence

from .identity import cell_text

JUDGMENT = "J"
ACTIVE = "A"
PENDING = "P"

STATUSES = (JUDGMENT, ACTIVE, PENDING)

STATUS_LABELS = {
    JUDGMENT: "Judgment",
    ACTIVE: "Active",
    PENDING: "Pending",
}

PRIMARY_STATUS_FIELD = "LEGALSTATUS"

FALLBACK_STATUS_FIELDS = (
    "Status",
    "Judgment Status",
    "Tax Status",
    "Foreclosure Status",
    "currentStatus",
    "status",
)

REMOVED_STATUS = "REMOVED_STATUS"


def classify_legal_status(value: Any) -> Optional[str]:
    text = cell_text(value).upper()
    if not text:
        return None
    for status in STATUSES:
        if status in text:
            return status
    return None


def extract_status(
    row: Mapping[str, Any],
    primary_field: str = PRIMARY_STATUS_FIELD,
    fallback_fields: Sequence[str] = FALLBACK_STATUS_FIELDS,
) -> Optional[str]:
    """Return J, A, P or None for a raw row."""
    status = classify_legal_status(row.get(primary_field))
    if status:
        return status

    for field in fallback_fields:
        text = cell_text(row.get(field)).upper()
        if text in STATUSES:
            return text

    return None


def change_type(old_status: Optional[str], new_status: Optional[str]) -> str:
    """Label a transition the way the dashboard filters it: NEW→P, P→A, REMOVED_STATUS."""
    if not new_status:
        return REMOVED_STATUS
    if not old_status:
        return f"NEW→{new_status}"
    return f"{old_status}→{new_status}"
