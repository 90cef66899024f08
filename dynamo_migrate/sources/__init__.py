"""
Source dialects: where raw records come from.
"""

from dynamo_migrate.utils.registry import Registry

from .base import RawRecord, SourceDialect
from .local_dynamodb import LocalDynamoDBSource
from .s3_dynamodb import S3DynamoDBSource


def default_source_registry() -> Registry:
    """Registry of the source dialects shipped with the engine."""
    return Registry("source", {
        S3DynamoDBSource.name: S3DynamoDBSource,
        LocalDynamoDBSource.name: LocalDynamoDBSource,
    })


__all__ = [
    "RawRecord",
    "SourceDialect",
    "S3DynamoDBSource",
    "LocalDynamoDBSource",
    "default_source_registry",
]
