"""Errors raised by the reconciliation pipeline and its storage layer."""


class TaxLeadError(RuntimeError):
    pass


class SnapshotStorageError(TaxLeadError):
    """The snapshot store could not be read or written. Safe to retry."""


class StaleSnapshotError(SnapshotStorageError):
    """Another writer saved a newer snapshot since this one was loaded."""

    def __init__(self, expected_version: int, actual_version=None):
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = f"expected version {expected_version}"
        if actual_version is not None:
            detail += f", found {actual_version}"
        super().__init__(f"Stale snapshot ({detail}); reload and retry")


class UnsupportedUploadError(TaxLeadError):
    pass


class EmptyUploadError(TaxLeadError):
    pass
