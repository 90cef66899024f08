"""
Target dialects and PostgreSQL connection management.
"""

from dynamo_migrate.utils.registry import Registry

from .connection import AsyncDatabaseConnectionPool
from .target import MemoryTarget, PostgreSQLTarget, TargetDialect


def default_target_registry() -> Registry:
    """Registry of the target dialects shipped with the engine."""
    return Registry("target", {
        PostgreSQLTarget.name: PostgreSQLTarget,
        MemoryTarget.name: MemoryTarget,
    })


__all__ = [
    "AsyncDatabaseConnectionPool",
    "TargetDialect",
    "PostgreSQLTarget",
    "MemoryTarget",
    "default_target_registry",
]
