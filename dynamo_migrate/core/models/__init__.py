"""
Core data models for the migration engine.

All models use Pydantic for runtime validation and type safety.
"""

from .checkpoint import Checkpoint, ProfileConfig
from .run_result import FileStats, RunResult

__all__ = [
    "ProfileConfig",
    "Checkpoint",
    "FileStats",
    "RunResult",
]
