"""Tax lead reconciliation DAG - one run per county upload drop."""

from airflow import DAG
from airflow.sdk.definitions.decorators import task
from datetime import datetime, timedelta, timezone

from taxlead.config.settings import settings
from taxlead.core.pipeline import process_upload
from taxlead.core.snapshot import upload_filenames
from taxlead.integrations import repository_from_settings
from taxlead.integrations.sftp_client import SFTPClient
from taxlead.processors.upload_processor import UploadProcessor


@task
def download():
    """Download upload files from the SFTP drop that are not yet reconciled."""
    processed = upload_filenames(repository_from_settings(settings).load_uploads())
    client = SFTPClient.from_settings(settings)

    if not client.connect():
        return []
    try:
        return client.download_upload_files(settings.SFTP_REMOTE_DIR, settings.DOWNLOAD_DIR, skip=processed)
    finally:
        client.disconnect()


@task
def reconcile_uploads(paths):
    """Reconcile each downloaded file in name order against the stored snapshot."""
    repository = repository_from_settings(settings)
    summaries = []

    for path in paths:
        processor = UploadProcessor(path)
        rows = processor.load_rows()
        result = process_upload(
            rows,
            repository,
            datetime.now(timezone.utc),
            retain_absent=settings.RETAIN_ABSENT_PROPERTIES,
            primary_status_field=settings.PRIMARY_STATUS_FIELD,
            numeric_field=settings.NUMERIC_TRACKED_FIELD,
            categorical_field=settings.CATEGORICAL_TRACKED_FIELD,
            upload_metadata=processor.describe(rows, settings.REPORT_SAMPLE_SIZE),
        )
        if result["skipped"]:
            summaries.append({"file": path, "version": result["version"], "skipped": True})
            continue
        summaries.append({"file": path, "version": result["version"], **result["report"]["summary"]})

    return summaries


with DAG(
    dag_id="tax_lead_recon",
    start_date=datetime(2024, 1, 1),
    schedule=None,
    catchup=False,
    max_active_runs=1,
    default_args={
        "owner": "tax_leads",
        "retries": 3,
        "retry_delay": timedelta(seconds=10),
    },
) as dag:

    downloaded = download()
    reconcile_uploads(downloaded)
