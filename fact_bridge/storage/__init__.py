"""Storage for program declarations and relation snapshots."""

from .models import Base, ProgramModel, SnapshotModel, rows_checksum
from .sqlite_store import SQLiteStore

__all__ = [
    "Base",
    "ProgramModel",
    "SnapshotModel",
    "rows_checksum",
    "SQLiteStore",
]
