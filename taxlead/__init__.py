"""
Tax lead reconciliation package.

This package provides modular components for:
- SFTP downloads of county delinquent-tax uploads
- Upload file reading (XLSX, CSV, DBF)
- Status-change reconciliation against the stored property snapshot
- Comparison reports (new, removed, dead leads, field changes)
- Snapshot storage (MongoDB or JSON file)
"""

__version__ = "1.0.0"
