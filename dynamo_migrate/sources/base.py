"""
Source dialect interface.

A source lists export files and streams raw records out of one file at a
time. Implementations must return file identifiers sorted so that a run can
be diffed against its checkpoint reproducibly.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

RawRecord = dict[str, Any]


class SourceDialect(ABC):
    """
    Abstract base class for all source dialects.

    Usable as an async context manager; the source is closed on exit.
    """

    name: str = "source"

    @abstractmethod
    async def list_files(self) -> list[str]:
        """
        List all data files to process.

        Returns:
            Sorted list of file identifiers
        """

    @abstractmethod
    def stream_records(self, file_key: str) -> AsyncIterator[RawRecord]:
        """
        Stream raw records from one file.

        The iterator is finite and cannot be resumed part-way; a failure
        abandons the file, which is read again from the start on the next
        run. Malformed entries are skipped, not yielded.
        """

    async def close(self) -> None:
        """Release resources held by the source."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
