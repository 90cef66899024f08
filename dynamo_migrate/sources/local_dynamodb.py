"""
Local DynamoDB export source dialect.

Reads the same gzipped JSON-lines export format from a directory on disk,
for development runs against a downloaded export.
"""

from collections.abc import AsyncIterator
from pathlib import Path

from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.utils.config import SourceConfig

from .base import RawRecord, SourceDialect
from .export_format import EXPORT_FILE_SUFFIX, stream_export_records


class LocalDynamoDBSource(SourceDialect):
    """Source reading export files below a local directory."""

    name = "local-dynamodb"

    def __init__(self, config: SourceConfig):
        if not config.path:
            raise ConfigError("EXPORT_PATH env var or source.path is required for local exports")

        self.root = Path(config.path)
        if not self.root.is_dir():
            raise ConfigError(f"Export directory not found: {config.path}")

    async def list_files(self) -> list[str]:
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob(f"*{EXPORT_FILE_SUFFIX}")
            if path.is_file()
        )

    async def stream_records(self, file_key: str) -> AsyncIterator[RawRecord]:
        with open(self.root / file_key, "rb") as raw:
            async for record in stream_export_records(raw):
                yield record
