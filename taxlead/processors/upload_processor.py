import csv
import logging
from pathlib import Path
from typing import Dict, Iterator, List

from dbfread import DBF  # type: ignore
from openpyxl import load_workbook

from taxlead.core.exceptions import EmptyUploadError, UnsupportedUploadError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".csv", ".dbf")


class UploadProcessor:
    def __init__(self, path):
        self.path = Path(path)
        self.extension = self.path.suffix.lower()
        if self.extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedUploadError(f"Unsupported upload type '{self.extension}' for {self.path.name}")

    def read_rows(self) -> Iterator[Dict]:
        if self.extension == ".csv":
            return self._read_csv()
        if self.extension == ".dbf":
            return self._read_dbf()
        return self._read_workbook()

    def load_rows(self) -> List[Dict]:
        rows = list(self.read_rows())
        if not rows:
            raise EmptyUploadError(f"No data found in {self.path.name}")
        logger.info(f"Read {len(rows)} rows from {self.path.name}")
        return rows

    def describe(self, rows: List[Dict], sample_size: int = 5) -> Dict:
        """Upload metadata kept in the file history."""
        return {
            "filename": self.path.name,
            "rowCount": len(rows),
            "columns": list(rows[0].keys()) if rows else [],
            "sampleRows": rows[:sample_size],
        }

    def _read_workbook(self) -> Iterator[Dict]:
        # First sheet, first row as header; blank header cells drop their column.
        workbook = load_workbook(self.path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            rows = sheet.iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                return
            columns = [str(h).strip() if h is not None else "" for h in header]

            for values in rows:
                if values is None or all(v is None or v == "" for v in values):
                    continue
                yield {
                    column: value
                    for column, value in zip(columns, values)
                    if column
                }
        finally:
            workbook.close()

    def _read_csv(self) -> Iterator[Dict]:
        with self.path.open(newline="", encoding="utf-8-sig") as fh:
            for record in csv.DictReader(fh):
                row = {
                    key.strip(): (value if value != "" else None)
                    for key, value in record.items()
                    if key
                }
                if any(value is not None for value in row.values()):
                    yield row

    def _read_dbf(self) -> Iterator[Dict]:
        for record in DBF(str(self.path), load=False):
            yield dict(record)
