"""Tests for the load → reconcile → report → save pipeline."""

from unittest.mock import Mock

import pytest

from taxlead.core.exceptions import SnapshotStorageError, StaleSnapshotError
from taxlead.core.pipeline import process_upload
from taxlead.core.snapshot import Snapshot
from taxlead.integrations.file_store import JsonSnapshotRepository

FIRST_UPLOAD = [
    {"CAN": "100001", "Account Number": "100001", "ADDRSTRING": "101 MAIN ST", "TOT_PERCAN": 1520.75, "LEGALSTATUS": "P"},
    {"CAN": "100002", "Account Number": "100002", "ADDRSTRING": "2204 ELM AVE", "TOT_PERCAN": 4210.0, "LEGALSTATUS": "ACTIVE"},
    {"CAN": "100003", "Account Number": "100003", "ADDRSTRING": "87 OAK BLVD", "TOT_PERCAN": 9875.1, "LEGALSTATUS": "JUDGMENT"},
    {"CAN": None, "ADDRSTRING": "UNKNOWN PARCEL", "LEGALSTATUS": "P"},
]

SECOND_UPLOAD = [
    {"CAN": "100001", "Account Number": "100001", "ADDRSTRING": "101 MAIN ST", "TOT_PERCAN": 1600.25, "LEGALSTATUS": "A"},
    {"CAN": "100002", "Account Number": "100002", "ADDRSTRING": "2204 ELM AVE", "TOT_PERCAN": 4210.0, "LEGALSTATUS": "ACTIVE"},
    {"CAN": "100006", "Account Number": "100006", "ADDRSTRING": "9 WILLOW WAY", "TOT_PERCAN": 310.4, "LEGALSTATUS": "PENDING"},
]


@pytest.fixture
def repository(tmp_path):
    return JsonSnapshotRepository(tmp_path / "properties.json")


def test_first_upload_creates_snapshot(repository, now):
    result = process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)

    assert result["version"] == 1
    assert len(result["properties"]) == 3
    assert len(result["status_changes"]) == 3
    assert result["report"]["summary"]["newPropertiesCount"] == 3
    assert repository.load().version == 1
    assert repository.load_report()["summary"]["totalPropertiesInOldFile"] == 0


def test_second_upload_reports_changes(repository, now):
    process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)
    result = process_upload(SECOND_UPLOAD, repository, "2024-06-01T00:00:00Z", now=now)

    assert result["version"] == 2
    assert {c["changeType"] for c in result["status_changes"]} == {"P→A", "NEW→P"}

    report = repository.load_report()
    assert [fp["identifier"] for fp in report["foreclosedProperties"]] == ["100003"]
    assert report["summary"]["numericFieldChangesCount"] == 1

    stored = {p["id"]: p for p in repository.load(now=now).properties}
    assert set(stored) == {"100001", "100002", "100006"}
    assert len(stored["100001"]["statusHistory"]) == 2
    assert stored["100002"]["statusChangeDate"] == "2024-05-01T00:00:00Z"
    assert stored["100002"]["daysSinceStatusChange"] == 45


def test_reprocessing_same_upload_adds_nothing(repository, now):
    process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)
    again = process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)

    assert again["status_changes"] == []
    assert again["version"] == 2
    assert all(len(p["statusHistory"]) == 1 for p in repository.load().properties)


def test_upload_metadata_is_recorded(repository, now):
    process_upload(
        FIRST_UPLOAD,
        repository,
        "2024-05-01T00:00:00Z",
        now=now,
        upload_metadata={"filename": "upload_1.xlsx", "rowCount": 4},
    )

    [record] = repository.load_uploads()
    assert record["filename"] == "upload_1.xlsx"
    assert record["uploadDate"] == "2024-05-01T00:00:00Z"
    assert record["statusChangesCount"] == 3
    assert record["snapshotVersion"] == 1


def test_stale_snapshot_is_surfaced():
    repository = Mock()
    repository.load.return_value = Snapshot(properties=[], version=3)
    repository.save.side_effect = StaleSnapshotError(3, 4)

    with pytest.raises(StaleSnapshotError):
        process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z")

    save_kwargs = repository.save.call_args.kwargs
    assert save_kwargs["expected_version"] == 3
    assert save_kwargs["report"]["summary"]["newPropertiesCount"] == 3


def test_load_failure_writes_nothing():
    repository = Mock()
    repository.load.side_effect = SnapshotStorageError("unreachable")

    with pytest.raises(SnapshotStorageError):
        process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z")

    repository.save.assert_not_called()


def test_retain_absent_keeps_history(repository, now):
    process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)
    result = process_upload(SECOND_UPLOAD, repository, "2024-06-01T00:00:00Z", now=now, retain_absent=True)

    stored = {p["id"]: p for p in repository.load().properties}
    assert stored["100003"]["absentFromLatestUpload"] is True
    assert stored["100003"]["currentStatus"] == "J"
    assert result["report"]["summary"]["foreclosedPropertiesCount"] == 1


def _run(repository, uploads, now):
    """Apply (filename, rows) uploads in order, as one DAG run does."""
    results = []
    for filename, rows in uploads:
        results.append(process_upload(
            rows,
            repository,
            "2024-06-01T00:00:00Z",
            now=now,
            upload_metadata={"filename": filename, "rowCount": len(rows)},
        ))
    return results


def test_files_already_reconciled_are_skipped(repository, now):
    a = ("a.csv", [{"id": "X", "LEGALSTATUS": "P"}])
    b = ("b.csv", [{"id": "X", "LEGALSTATUS": "A"}])
    c = ("c.csv", [{"id": "X", "LEGALSTATUS": "A"}, {"id": "Y", "LEGALSTATUS": "P"}])

    _run(repository, [a, b], now)
    rerun = _run(repository, [a, b, c], now)

    assert [r["skipped"] for r in rerun] == [True, True, False]
    assert rerun[0]["report"] is None
    stored = {p["id"]: p for p in repository.load().properties}
    assert [h["status"] for h in stored["X"]["statusHistory"]] == ["P", "A"]
    assert stored["X"]["currentStatus"] == "A"
    assert repository.load().version == 3
    assert [u["filename"] for u in repository.load_uploads()] == ["a.csv", "b.csv", "c.csv"]


def test_same_file_list_twice_leaves_history_alone(repository, now):
    uploads = [
        ("a.csv", [{"id": "X", "LEGALSTATUS": "P"}]),
        ("b.csv", [{"id": "X", "LEGALSTATUS": "J"}]),
    ]

    _run(repository, uploads, now)
    before = repository.load(now=now)
    _run(repository, uploads, now)
    after = repository.load(now=now)

    assert after.properties == before.properties
    assert after.version == before.version


class FailingOnceRepository(JsonSnapshotRepository):
    def __init__(self, snapshot_path):
        super().__init__(snapshot_path)
        self.fail_next_save = False

    def save(self, snapshot, expected_version, report=None, upload=None):
        if self.fail_next_save:
            self.fail_next_save = False
            raise SnapshotStorageError("disk full")
        return super().save(snapshot, expected_version, report=report, upload=upload)


def test_retry_after_failed_save_keeps_report(tmp_path, now):
    repository = FailingOnceRepository(tmp_path / "properties.json")
    process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now, upload_metadata={"filename": "u1.xlsx"})

    repository.fail_next_save = True
    with pytest.raises(SnapshotStorageError):
        process_upload(SECOND_UPLOAD, repository, "2024-06-01T00:00:00Z", now=now, upload_metadata={"filename": "u2.xlsx"})

    assert repository.load().version == 1
    assert repository.load_report()["summary"]["newPropertiesCount"] == 3

    retried = process_upload(
        SECOND_UPLOAD, repository, "2024-06-01T00:00:00Z", now=now, upload_metadata={"filename": "u2.xlsx"}
    )

    assert retried["skipped"] is False
    report = repository.load_report()
    assert report["summary"]["foreclosedPropertiesCount"] == 1
    assert report["summary"]["statusChangesCount"] == 2
    assert [u["filename"] for u in repository.load_uploads()] == ["u1.xlsx", "u2.xlsx"]


def test_failed_write_leaves_snapshot_and_report(repository, now, monkeypatch):
    process_upload(FIRST_UPLOAD, repository, "2024-05-01T00:00:00Z", now=now)

    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr("taxlead.integrations.file_store.os.replace", broken_replace)
    with pytest.raises(SnapshotStorageError, match="Failed to write snapshot"):
        process_upload(SECOND_UPLOAD, repository, "2024-06-01T00:00:00Z", now=now)
    monkeypatch.undo()

    assert repository.load().version == 1
    assert repository.load_report()["summary"]["totalPropertiesInOldFile"] == 0
