"""
Unit tests for picture conflict resolution and in-memory writes.
"""
import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from dynamo_migrate.batch import retry
from dynamo_migrate.profiles.pictures import PicturesProfile
from dynamo_migrate.profiles.pictures.transform import PictureRecord, PictureVariant, build_picture
from dynamo_migrate.profiles.pictures.upsert import (
    deduplicate_by_id,
    resolve_conflict,
    save_pictures,
)
from dynamo_migrate.utils.config import TargetConfig
from dynamo_migrate.warehouse import MemoryTarget, TargetDialect, default_target_registry

NOW = datetime(2024, 1, 2, tzinfo=timezone.utc)
LATER = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _picture(picture_id: int = 42, variants=(), **fields) -> PictureRecord:
    values = {
        "id": picture_id,
        "uuid": "00000000-0000-5000-8000-000000000000",
        "path": f"{picture_id}.jpg",
        "image_type": "image/jpeg",
        "description_i18n": {"en": ""},
        "agency_id": 1,
        "width": 100,
        "height": 50,
        "created_at": NOW,
        "updated_at": NOW,
        "variants": list(variants),
    }
    values.update(fields)
    return PictureRecord(**values)


def _full(path: str | None = "full.jpg") -> PictureVariant:
    return PictureVariant(format_id=85, format_picture_id=1, width=2560, height=1440, path=path)


def _small(path: str | None = "small.jpg") -> PictureVariant:
    return PictureVariant(format_id=72, format_picture_id=2, width=640, height=480, path=path)


class RejectingTarget(TargetDialect):
    """Target whose default upsert fails for batches holding a rejected id"""

    name = "rejecting"

    def __init__(self, rejected_ids):
        self.rejected_ids = set(rejected_ids)
        self.rows: dict[int, PictureRecord] = {}

    async def upsert(self, batch: Sequence[PictureRecord]) -> int:
        if any(p.id in self.rejected_ids for p in batch):
            raise RuntimeError("value too long for type character varying(255)")
        for picture in batch:
            self.rows[picture.id] = picture
        return len(batch)


@pytest.mark.unit
class TestResolveConflict:
    """Tests for resolve_conflict"""

    def test_new_record_is_stored_as_is(self):
        incoming = _picture()
        assert resolve_conflict(None, incoming) is incoming

    def test_incoming_with_reference_variant_wins_quality_fields(self):
        stored = _picture(path="old.jpg", width=1, height=1, variants=[_full("old-full.jpg")])
        incoming = _picture(path="new.png", image_type="image/png", width=9, height=9, variants=[_full("new-full.png")])

        result = resolve_conflict(stored, incoming)
        assert (result.path, result.image_type, result.width, result.height) == ("new.png", "image/png", 9, 9)

    def test_stored_reference_variant_protects_quality_fields(self):
        stored = _picture(path="full.jpg", width=4000, height=3000, variants=[_full()])
        incoming = _picture(path="small.gif", image_type="image/gif", width=10, height=10, variants=[_small()])

        result = resolve_conflict(stored, incoming)
        assert (result.path, result.image_type, result.width, result.height) == ("full.jpg", "image/jpeg", 4000, 3000)

    def test_neither_has_reference_variant(self):
        stored = _picture(path="a.jpg", width=10, height=20, variants=[_small()])
        incoming = _picture(path="b.jpg", width=None, height=None, variants=[])

        result = resolve_conflict(stored, incoming)
        assert result.path == "b.jpg"
        assert (result.width, result.height) == (10, 20)

    def test_incoming_null_never_clobbers(self):
        stored = _picture(width=10, height=20, variants=[_full()])
        incoming = _picture(width=None, height=None, variants=[_full("other.jpg")])

        result = resolve_conflict(stored, incoming)
        assert (result.width, result.height) == (10, 20)

    def test_reference_variant_without_path_does_not_count(self):
        stored = _picture(path="kept.jpg", variants=[_full()])
        incoming = _picture(path="new.jpg", variants=[_full(path=None)])

        result = resolve_conflict(stored, incoming)
        assert result.path == "kept.jpg"
        assert result.variants == [_full()]

    def test_descriptions_are_merged(self):
        stored = _picture(description_i18n={"en": "Hello", "de": "Hallo"})
        incoming = _picture(description_i18n={"de": "Servus", "fr": "Salut"})

        result = resolve_conflict(stored, incoming)
        assert result.description_i18n == {"en": "Hello", "de": "Servus", "fr": "Salut"}

    def test_incoming_columns_and_stored_columns(self):
        stored = _picture(agency_id=1, taxonomy=["a"], created_at=NOW, updated_at=NOW)
        incoming = _picture(agency_id=2, taxonomy=[], focal_point_x=5, created_at=LATER, updated_at=LATER)

        result = resolve_conflict(stored, incoming)
        assert result.agency_id == 2
        assert result.taxonomy == []
        assert result.focal_point_x == 5
        assert result.created_at == NOW
        assert result.updated_at == NOW
        assert result.uuid == stored.uuid

    def test_variants_are_merged(self):
        stored = _picture(variants=[_full(), _small(path=None)])
        incoming = _picture(variants=[_full(path=None), _small()])

        result = resolve_conflict(stored, incoming)
        assert result.variants == [_full(), _small()]


@pytest.mark.unit
class TestDeduplicateById:
    """Tests for in-batch deduplication"""

    def test_collapses_duplicates_in_first_seen_order(self):
        pictures = [
            _picture(1, description_i18n={"en": "one"}, variants=[_full()]),
            _picture(2),
            _picture(1, description_i18n={"de": "eins"}, variants=[_small()]),
        ]
        unique = deduplicate_by_id(pictures)

        assert [p.id for p in unique] == [1, 2]
        assert unique[0].description_i18n == {"en": "one", "de": "eins"}
        assert unique[0].variants == [_full(), _small()]


@pytest.mark.unit
class TestSavePictures:
    """Tests for save_pictures"""

    def _memory_target(self) -> MemoryTarget:
        profile = PicturesProfile()
        return profile.create_target(TargetConfig(type="memory"), default_target_registry())

    def test_profile_builds_memory_target_for_picture_table(self):
        target = self._memory_target()
        assert isinstance(target, MemoryTarget)
        assert target.table_name == "picture"
        assert "variants" in target.columns

    def test_writing_twice_is_idempotent(self, make_row):
        target = self._memory_target()
        batch = [
            build_picture([make_row(pictureId=1, formatPictureId=11)], now=NOW),
            build_picture([make_row(pictureId=2, formatId=72, formatPictureId=22)], now=NOW),
        ]

        assert asyncio.run(save_pictures(target, batch)) == 2
        first_state = {key: record.model_dump() for key, record in target.records.items()}
        assert asyncio.run(save_pictures(target, batch)) == 2
        second_state = {key: record.model_dump() for key, record in target.records.items()}

        assert first_state == second_state

    def test_overlapping_writes_converge(self, make_row):
        """Rows of one picture split across two writes end up merged"""
        target = self._memory_target()
        full = build_picture([make_row(formatId=85, formatPictureId=1, languageId=1, caption="Hallo")], now=NOW)
        small = build_picture([make_row(formatId=72, formatPictureId=2, url="/img/b.jpg", languageId=3, caption="Salut")], now=NOW)

        asyncio.run(save_pictures(target, [full]))
        asyncio.run(save_pictures(target, [small]))

        stored = target.records[42]
        assert stored.path == "2013/07/11/alpha.jpg"
        assert stored.description_i18n == {"en": "", "de": "Hallo", "fr": "Salut"}
        assert {(v.format_id, v.format_picture_id) for v in stored.variants} == {(85, 1), (72, 2)}

    def test_empty_batch(self):
        assert asyncio.run(save_pictures(self._memory_target(), [])) == 0

    def test_poisoned_picture_is_skipped(self):
        target = RejectingTarget(rejected_ids={3})
        skipped = []

        with patch.object(retry.logger, "warning") as warning:
            written = asyncio.run(save_pictures(
                target,
                [_picture(i) for i in range(1, 6)],
                on_skip=lambda picture, exc: skipped.append(picture.id),
            ))

        assert written == 4
        assert skipped == [3]
        assert sorted(target.rows) == [1, 2, 4, 5]
        assert any("picture id=3" in c.args[0] for c in warning.call_args_list)

    def test_completion_hook_on_memory_target(self):
        target = self._memory_target()
        asyncio.run(PicturesProfile().on_complete(target))
        assert target.completed is True
