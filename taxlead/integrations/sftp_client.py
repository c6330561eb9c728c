import logging
from pathlib import Path

import paramiko

from taxlead.processors.upload_processor import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)


class SFTPClient:
    """Pulls county upload files from the SFTP drop."""

    def __init__(self, host, port, username, password, timeout=10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.ssh_client = None
        self.sftp_client = None

    @classmethod
    def from_settings(cls, settings) -> "SFTPClient":
        return cls(settings.SFTP_HOST, settings.SFTP_PORT, settings.SFTP_USERNAME, settings.SFTP_PASSWORD)

    def connect(self) -> bool:
        ssh = paramiko.SSHClient()
        # Unknown host keys are logged, never trusted automatically.
        ssh.set_missing_host_key_policy(paramiko.WarningPolicy())
        try:
            ssh.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
            )
            self.sftp_client = ssh.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"SFTP connection to {self.host}:{self.port} failed: {e}")
            ssh.close()
            return False

        self.ssh_client = ssh
        logger.info(f"Connected to SFTP server {self.host}:{self.port}")
        return True

    def disconnect(self):
        for handle in (self.sftp_client, self.ssh_client):
            if handle is not None:
                handle.close()
        self.sftp_client = self.ssh_client = None

    def list_uploads(self, remote_dir, skip=()):
        """Upload file names in remote_dir in name order, minus those in skip."""
        try:
            entries = self.sftp_client.listdir(remote_dir)
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"Failed to list {remote_dir}: {e}")
            return []

        skip = set(skip)
        uploads = sorted(
            name for name in entries
            if Path(name).suffix.lower() in SUPPORTED_EXTENSIONS and name not in skip
        )
        logger.info(f"{len(uploads)} new upload files in {remote_dir} ({len(entries)} entries)")
        return uploads

    def download_upload_files(self, remote_dir, local_dir, skip=()):
        """Download the pending uploads in remote_dir; returns local paths in name order."""
        pending = self.list_uploads(remote_dir, skip)
        local_dir = Path(local_dir)
        local_dir.mkdir(parents=True, exist_ok=True)

        downloaded = []
        for filename in pending:
            local_path = local_dir / filename
            try:
                self.sftp_client.get(f"{remote_dir}/{filename}", str(local_path))
            except (paramiko.SSHException, OSError) as e:
                logger.error(f"Failed to download {filename}: {e}")
                continue
            logger.info(f"Downloaded {filename} ({local_path.stat().st_size} bytes)")
            downloaded.append(str(local_path))

        logger.info(f"Downloaded {len(downloaded)}/{len(pending)} files")
        return downloaded
