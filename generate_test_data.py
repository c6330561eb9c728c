"""
Generate two consecutive county upload workbooks for a local reconciliation run.

This script creates:
- upload_1.xlsx: 6 rows (5 properties + 1 row without an account number)
- upload_2.xlsx: 4 rows, the following month's file

Reconciling upload_1 then upload_2 gives:
- New properties: 1 (100006, Pending)
- Status changes: 3 (P→A, A→J, NEW→P)
- Removed: 2, of which 1 dead lead (100003 was Judgment)
- TOT_PERCAN changes: 2 (100001, 100005)
- LEGALSTATUS changes: 2

Installation:
    pip install openpyxl

Usage:
    python generate_test_data.py [output_dir]
"""

import sys
from pathlib import Path

from openpyxl import Workbook

COLUMNS = ["CAN", "Account Number", "ADDRSTRING", "OWNER", "TOT_PERCAN", "LEGALSTATUS"]

# (CAN, address, owner, TOT_PERCAN, LEGALSTATUS)
UPLOAD_1 = [
    ("100001", "101 MAIN ST SAN ANTONIO TX", "GARCIA MARIA", 1520.75, "P"),
    ("100002", "2204 ELM AVE SAN ANTONIO TX", "SMITH JOHN", 4210.00, "ACTIVE"),
    ("100003", "87 OAK BLVD SAN ANTONIO TX", "NGUYEN LINH", 9875.10, "JUDGMENT"),
    ("100004", "15 PINE CT SAN ANTONIO TX", "BROWN ESTATE", 650.00, "A"),
    ("100005", "440 CEDAR LN SAN ANTONIO TX", "LOPEZ FAMILY TRUST", 12000.00, "J"),
    (None, "UNKNOWN PARCEL", "", None, "P"),
]

UPLOAD_2 = [
    ("100001", "101 MAIN ST SAN ANTONIO TX", "GARCIA MARIA", 1600.25, "A"),
    ("100002", "2204 ELM AVE SAN ANTONIO TX", "SMITH JOHN", 4210.00, "JUDGMENT"),
    ("100005", "440 CEDAR LN SAN ANTONIO TX", "LOPEZ FAMILY TRUST", 12480.00, "J"),
    ("100006", "9 WILLOW WAY SAN ANTONIO TX", "PATEL ANIL", 310.40, "PENDING"),
]


def write_upload(path: Path, rows) -> None:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Delinquent"
    sheet.append(COLUMNS)

    for can, address, owner, balance, legal_status in rows:
        sheet.append([can, can, address, owner, balance, legal_status])

    workbook.save(path)
    print(f"✓ Wrote {len(rows)} rows to {path}")


def main():
    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("sample_data")
    output_dir.mkdir(parents=True, exist_ok=True)

    write_upload(output_dir / "upload_1.xlsx", UPLOAD_1)
    write_upload(output_dir / "upload_2.xlsx", UPLOAD_2)


if __name__ == "__main__":
    main()
