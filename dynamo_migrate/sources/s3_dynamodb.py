"""
S3 DynamoDB source dialect.

Reads DynamoDB "Export to S3" dumps. The export places data files under
``{prefix}/AWSDynamoDB/{exportId}/data/*.json.gz``; everything under the
prefix is listed and filtered down to ``.json.gz`` keys.
"""

import asyncio
from collections.abc import AsyncIterator

import boto3

from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.observability.logger import get_logger
from dynamo_migrate.utils.config import SourceConfig

from .base import RawRecord, SourceDialect
from .export_format import is_export_file, stream_export_records

logger = get_logger(__name__)


class S3DynamoDBSource(SourceDialect):
    """
    Source reading gzipped JSON-lines DynamoDB exports from S3.

    boto3 is synchronous; every S3 call runs in the default executor.
    """

    name = "s3-dynamodb"

    def __init__(self, config: SourceConfig, client=None):
        """
        Initialize S3 source.

        Args:
            config: Source configuration (bucket, prefix, region)
            client: Optional pre-built boto3 S3 client

        Raises:
            ConfigError: If bucket or prefix is missing
        """
        if not config.bucket:
            raise ConfigError("S3_BUCKET env var or --s3-bucket is required")
        if not config.prefix:
            raise ConfigError("S3_PREFIX env var or --s3-prefix is required")

        self.bucket = config.bucket
        self.prefix = config.prefix
        self._client = client or boto3.client("s3", region_name=config.region)

    def _list_keys(self) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for item in page.get("Contents", []):
                key = item.get("Key")
                if key and is_export_file(key):
                    keys.append(key)
        keys.sort()
        return keys

    async def list_files(self) -> list[str]:
        loop = asyncio.get_running_loop()
        keys = await loop.run_in_executor(None, self._list_keys)
        logger.info(
            f"Found {len(keys)} export files under s3://{self.bucket}/{self.prefix}",
            extra={"bucket": self.bucket, "prefix": self.prefix, "file_count": len(keys)}
        )
        return keys

    async def stream_records(self, file_key: str) -> AsyncIterator[RawRecord]:
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None, lambda: self._client.get_object(Bucket=self.bucket, Key=file_key)
        )

        body = response.get("Body")
        if body is None:
            return

        try:
            async for record in stream_export_records(body):
                yield record
        finally:
            body.close()

    async def close(self) -> None:
        self._client.close()
