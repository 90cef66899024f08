"""
Batch migration engine: checkpoints, split-retry writes and the run loop.
"""

from .cancellation import CancellationToken
from .checkpoint import CheckpointStore
from .pipeline import MigrationRunner, run_migration
from .retry import insert_with_retry

__all__ = [
    "CancellationToken",
    "CheckpointStore",
    "MigrationRunner",
    "insert_with_retry",
    "run_migration",
]
