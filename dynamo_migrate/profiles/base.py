"""
Migration profile interface.

The engine is generic: everything data-specific (row schema, natural key,
merge policy, target table) lives in a profile. A different migration is a
new MigrationProfile subclass registered in the profile registry; the runner
does not change.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import Generic, TypeVar

from dynamo_migrate.batch.retry import SkipCallback
from dynamo_migrate.core.models import ProfileConfig
from dynamo_migrate.sources.base import RawRecord
from dynamo_migrate.utils.config import TargetConfig
from dynamo_migrate.utils.registry import Registry
from dynamo_migrate.warehouse.target import TargetDialect

RowT = TypeVar("RowT")
RecordT = TypeVar("RecordT")


def group_by_key(rows: Iterable[RowT], key: Callable[[RowT], Hashable]) -> list[list[RowT]]:
    """
    Partition rows by natural key.

    Groups come out in the order their key was first seen and rows keep
    their arrival order inside a group. Nothing is sorted, so anything that
    depends on "the first row of a group" depends on extractor order.
    """
    groups: dict[Hashable, list[RowT]] = {}
    for row in rows:
        groups.setdefault(key(row), []).append(row)
    return list(groups.values())


class MigrationProfile(ABC, Generic[RowT, RecordT]):
    """
    Contract each migration profile implements.

    RowT is the parsed row type, RecordT the record written to the target.
    """

    name: str = "profile"

    @abstractmethod
    def parse_item(self, raw: RawRecord) -> RowT | None:
        """Validate a raw source item into a typed row, or None to skip it."""

    @abstractmethod
    def group_rows(self, rows: Sequence[RowT]) -> list[list[RowT]]:
        """Group parsed rows by natural key; each group becomes one record."""

    @abstractmethod
    def transform(self, group: Sequence[RowT]) -> RecordT:
        """Fold a group of related rows into one target record."""

    @abstractmethod
    def create_target(self, config: TargetConfig, targets: Registry) -> TargetDialect:
        """Build the target dialect with profile-specific table settings."""

    @abstractmethod
    async def upsert(
        self,
        target: TargetDialect,
        batch: Sequence[RecordT],
        on_skip: SkipCallback | None = None,
    ) -> int:
        """
        Idempotently write a batch of records.

        Args:
            target: Open target dialect
            batch: Records to write
            on_skip: Called for each record that could not be written

        Returns:
            Number of records written
        """

    def filter(self, row: RowT, config: ProfileConfig) -> bool:
        """Business predicate applied to parsed rows; False drops the row."""
        return True

    async def on_complete(self, target: TargetDialect) -> None:
        """Called once after every file has been processed."""
        await target.on_complete()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
