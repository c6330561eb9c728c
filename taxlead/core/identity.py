"""Identity resolution for uploaded property rows."""

import math
from typing import Any, Mapping, Optional, Sequence

# Order matters: the first candidate holding a non-empty value wins.
IDENTIFIER_FIELDS = (
    "Account Number",
    "accountNumber",
    "Account",
    "account",
    "Parcel Number",
    "parcelNumber",
    "Parcel",
    "parcel",
    "Property ID",
    "propertyId",
    "ID",
    "id",
)

ADDRESS_FIELDS = ("ADDRSTRING", "Address", "address", "Property Address")


def cell_text(value: Any) -> str:
    """Return the trimmed text of a spreadsheet cell, '' for blanks.

    Integral floats lose their trailing '.0' so a numeric account number read
    from a workbook matches the same number read from a CSV.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _is_zero(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def first_present(row: Mapping[str, Any], fields: Sequence[str]) -> Optional[str]:
    """First non-empty candidate as text. A numeric 0 cell counts as empty."""
    for field in fields:
        value = row.get(field)
        if _is_zero(value):
            continue
        text = cell_text(value)
        if text:
            return text
    return None


def resolve_property_id(row: Mapping[str, Any], fields: Sequence[str] = IDENTIFIER_FIELDS) -> Optional[str]:
    """Return the stable identifier of a raw row, or None if it has none."""
    return first_present(row, fields)


def resolve_address(row: Mapping[str, Any]) -> str:
    return first_present(row, ADDRESS_FIELDS) or ""
