"""
DynamoDB "Export to S3" line format.

Each data file is gzipped JSON lines; every line is either
``{"Item": {<typed attributes>}}`` or a bare typed attribute map, e.g.
``{"Item": {"id": {"S": "1-6-85"}, "pictureId": {"N": "1"}}}``.
"""

import asyncio
import gzip
import itertools
import json
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any, BinaryIO

from boto3.dynamodb.types import Binary, TypeDeserializer

from dynamo_migrate.observability.logger import get_logger

from .base import RawRecord

logger = get_logger(__name__)

EXPORT_FILE_SUFFIX = ".json.gz"

# Lines decoded per blocking read
LINES_PER_READ = 1000

_deserializer = TypeDeserializer()


def _plain(value: Any) -> Any:
    """Convert deserialized DynamoDB values into plain Python values."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_plain(item) for item in value), key=repr)
    if isinstance(value, Binary):
        return bytes(value.value)
    return value


def unmarshall(item: dict[str, Any]) -> RawRecord:
    """
    Turn a typed attribute map into a plain record.

    Raises:
        TypeError: If a value is not a valid typed attribute
    """
    return {key: _plain(_deserializer.deserialize(value)) for key, value in item.items()}


def decode_export_line(line: str | bytes) -> RawRecord | None:
    """
    Decode one export line.

    Returns:
        The record, or None for blank or malformed lines
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None

    trimmed = line.strip()
    if not trimmed:
        return None

    try:
        parsed = json.loads(trimmed)
        if not isinstance(parsed, dict):
            return None
        item = parsed.get("Item", parsed)
        if not isinstance(item, dict):
            return None
        return unmarshall(item)
    except (ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as e:
        logger.debug(f"Skipping malformed export line: {e.__class__.__name__}")
        return None


def is_export_file(key: str) -> bool:
    return key.endswith(EXPORT_FILE_SUFFIX)


def _read_lines(stream: BinaryIO, count: int) -> list[bytes]:
    return list(itertools.islice(stream, count))


async def stream_export_records(
    raw: BinaryIO,
    lines_per_read: int = LINES_PER_READ,
) -> AsyncIterator[RawRecord]:
    """
    Decompress a gzipped export stream and yield its records.

    Blocking reads run in the default executor, a chunk of lines at a time,
    so the event loop is never held by network or disk I/O.

    Args:
        raw: Binary stream of the gzipped file (not closed here)
        lines_per_read: Lines pulled per executor round-trip
    """
    loop = asyncio.get_running_loop()
    with gzip.GzipFile(fileobj=raw, mode="rb") as decompressed:
        while True:
            chunk = await loop.run_in_executor(None, _read_lines, decompressed, lines_per_read)
            if not chunk:
                break
            for line in chunk:
                record = decode_export_line(line)
                if record is not None:
                    yield record
