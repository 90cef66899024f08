"""
Run counters: per-file statistics and the final run summary.
"""

from pydantic import BaseModel


class FileStats(BaseModel):
    """
    Counters for a single source file.

    Attributes:
        file_key: Source file identifier
        scanned: Rows that parsed and passed the filter
        inserted: Target records reported written by the target
        skipped: Rows dropped by parsing or filtering
        errors: Extraction failures, failed batches and poisoned records
        interrupted: True when cancellation stopped the batch loop early
        failed: True when the file could not be read to the end
    """

    file_key: str
    scanned: int = 0
    inserted: int = 0
    skipped: int = 0
    errors: int = 0
    interrupted: bool = False
    failed: bool = False


class RunResult(BaseModel):
    """Cumulative outcome of one migration run."""

    total_scanned: int = 0
    total_inserted: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    files_processed: int = 0
    files_total: int = 0
    completed: bool = False
    elapsed_seconds: float = 0.0

    def add_file(self, stats: FileStats) -> None:
        self.total_scanned += stats.scanned
        self.total_inserted += stats.inserted
        self.total_skipped += stats.skipped
        self.total_errors += stats.errors
