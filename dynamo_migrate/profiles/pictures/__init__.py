"""
Pictures profile: netsport picture rows → the `picture` table.
"""

from collections.abc import Sequence

from dynamo_migrate.core.models import ProfileConfig
from dynamo_migrate.profiles.base import MigrationProfile, SkipCallback
from dynamo_migrate.sources.base import RawRecord
from dynamo_migrate.utils.config import TargetConfig
from dynamo_migrate.utils.registry import Registry
from dynamo_migrate.warehouse.target import TargetDialect

from .constants import COLUMNS, TABLE_NAME
from .parse import PictureRow, group_rows_by_picture_id, parse_item
from .transform import PictureRecord, PictureVariant, build_picture, merge_variants
from .upsert import reset_id_sequence, save_pictures


class PicturesProfile(MigrationProfile[PictureRow, PictureRecord]):
    """Migrates picture rows grouped by pictureId into one record per picture."""

    name = "pictures"

    def parse_item(self, raw: RawRecord) -> PictureRow | None:
        return parse_item(raw)

    def group_rows(self, rows: Sequence[PictureRow]) -> list[list[PictureRow]]:
        return group_rows_by_picture_id(rows)

    def transform(self, group: Sequence[PictureRow]) -> PictureRecord:
        return build_picture(group)

    def filter(self, row: PictureRow, config: ProfileConfig) -> bool:
        # maxId is an exclusive upper bound
        return config.max_id is None or row.picture_id < config.max_id

    def create_target(self, config: TargetConfig, targets: Registry) -> TargetDialect:
        return targets.create(config.type, config, table_name=TABLE_NAME, columns=COLUMNS)

    async def upsert(
        self,
        target: TargetDialect,
        batch: Sequence[PictureRecord],
        on_skip: SkipCallback | None = None,
    ) -> int:
        return await save_pictures(target, batch, on_skip)

    async def on_complete(self, target: TargetDialect) -> None:
        await reset_id_sequence(target)


__all__ = [
    "PicturesProfile",
    "PictureRow",
    "PictureRecord",
    "PictureVariant",
    "merge_variants",
]
