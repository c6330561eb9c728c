"""Storage and transfer integrations: MongoDB, JSON files, SFTP."""

from .file_store import JsonSnapshotRepository
from .mongo_handler import MongoSnapshotRepository


def repository_from_settings(settings):
    """Build the snapshot repository selected by STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "file":
        return JsonSnapshotRepository.from_settings(settings)
    if backend == "mongo":
        return MongoSnapshotRepository.from_settings(settings)
    raise ValueError(f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'")


__all__ = ["JsonSnapshotRepository", "MongoSnapshotRepository", "repository_from_settings"]
