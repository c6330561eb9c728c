import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Configuration settings for the tax lead reconciliation process."""

    # Storage backend: "mongo" or "file"
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mongo")

    # MongoDB Configuration
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://host.docker.internal:27017")
    DB_NAME = os.getenv("MONGO_DB_NAME", "tax_leads")
    PROPERTIES_COLLECTION = os.getenv("PROPERTIES_COLLECTION", "properties")
    SNAPSHOT_META_COLLECTION = os.getenv("SNAPSHOT_META_COLLECTION", "snapshot_meta")

    # File backend: snapshot, latest report and upload history in one document
    SNAPSHOT_PATH = os.getenv("SNAPSHOT_PATH", "/opt/airflow/tax_data/properties.json")

    # SFTP Configuration
    SFTP_HOST = os.getenv("SFTP_HOST", "sftp-server")
    SFTP_PORT = int(os.getenv("SFTP_PORT", "22"))
    SFTP_USERNAME = os.getenv("SFTP_USERNAME", "testuser")
    SFTP_PASSWORD = os.getenv("SFTP_PASSWORD", "testpass")
    SFTP_REMOTE_DIR = os.getenv("SFTP_REMOTE_DIR", "/uploads")
    DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "/opt/airflow/sftp_data/downloads")

    # Upload columns
    PRIMARY_STATUS_FIELD = os.getenv("PRIMARY_STATUS_FIELD", "LEGALSTATUS")
    NUMERIC_TRACKED_FIELD = os.getenv("NUMERIC_TRACKED_FIELD", "TOT_PERCAN")
    CATEGORICAL_TRACKED_FIELD = os.getenv("CATEGORICAL_TRACKED_FIELD", "LEGALSTATUS")

    # Reconciliation behaviour
    RETAIN_ABSENT_PROPERTIES = _env_bool("RETAIN_ABSENT_PROPERTIES")
    REPORT_SAMPLE_SIZE = int(os.getenv("REPORT_SAMPLE_SIZE", "5"))


# Create a singleton instance
settings = Settings()
