"""
Unit tests for the picture transform and the variant merge.
"""
from datetime import datetime, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from dynamo_migrate.profiles.pictures.constants import ImageType
from dynamo_migrate.profiles.pictures.transform import (
    PictureVariant,
    build_picture,
    build_variant_path,
    get_file_extension,
    image_type_from_path,
    merge_duplicate,
    merge_variants,
    picture_uuid,
    strip_url_prefix,
    variant_key,
)

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _variant(format_id, format_picture_id, path=None) -> PictureVariant:
    return PictureVariant(format_id=format_id, format_picture_id=format_picture_id, path=path)


variants_strategy = st.lists(
    st.builds(
        _variant,
        st.sampled_from([68, 72, 85, None]),
        st.one_of(st.none(), st.integers(min_value=1, max_value=3)),
        st.one_of(st.none(), st.sampled_from(["a.jpg", "b.jpg"])),
    ),
    max_size=12,
)


@pytest.mark.unit
class TestPaths:
    """Tests for path helpers"""

    def test_strip_url_prefix(self):
        assert strip_url_prefix("/img/2013/07/11/alpha.jpg") == "2013/07/11/alpha.jpg"
        assert strip_url_prefix("2013/alpha.jpg") == "2013/alpha.jpg"
        assert strip_url_prefix("/other/img/alpha.jpg") == "/other/img/alpha.jpg"

    def test_get_file_extension(self):
        assert get_file_extension("a/b.jpg") == ".jpg"
        assert get_file_extension("a/b.tar.gz") == ".gz"
        assert get_file_extension("a/b") == ""

    @pytest.mark.parametrize("path,expected", [
        ("a.jpg", ImageType.JPEG),
        ("a.JPEG", ImageType.JPEG),
        ("a.png", ImageType.PNG),
        ("a.gif", ImageType.GIF),
        ("a.webp", ImageType.JPEG),
        ("a", ImageType.JPEG),
    ])
    def test_image_type(self, path, expected):
        assert image_type_from_path(path) == expected

    def test_variant_path(self):
        assert build_variant_path("2013/07/11/alpha.jpg", 7, 72) == "2013/07/11/alpha-7-640-480.jpg"
        assert build_variant_path("alpha.png", 9, 85) == "alpha-9-2560-1440.png"
        assert build_variant_path("alpha.png", 9, 68) == "alpha-9-310-310.png"

    def test_variant_path_needs_extension_and_known_format(self):
        assert build_variant_path("alpha", 7, 72) is None
        assert build_variant_path("alpha.jpg", 7, 99) is None


@pytest.mark.unit
class TestMergeVariants:
    """Tests for merge_variants"""

    def test_incoming_wins_ties(self):
        merged = merge_variants([_variant(72, 1, "old.jpg")], [_variant(72, 1, "new.jpg")])
        assert merged == [_variant(72, 1, "new.jpg")]

    def test_path_is_never_replaced_by_null(self):
        merged = merge_variants([_variant(72, 1, "keep.jpg")], [_variant(72, 1, None)])
        assert merged == [_variant(72, 1, "keep.jpg")]

    def test_null_is_replaced_by_path(self):
        merged = merge_variants([_variant(72, 1, None)], [_variant(72, 1, "new.jpg")])
        assert merged == [_variant(72, 1, "new.jpg")]

    def test_distinct_identities_are_kept_in_first_seen_order(self):
        merged = merge_variants(
            [_variant(85, 1, "a.jpg"), _variant(72, 2, "b.jpg")],
            [_variant(68, 3, "c.jpg"), _variant(85, 1, "d.jpg")],
        )
        assert [variant_key(v) for v in merged] == [(85, 1), (72, 2), (68, 3)]
        assert merged[0].path == "d.jpg"

    def test_null_format_picture_id_is_an_identity(self):
        merged = merge_variants([_variant(85, None)], [_variant(85, None), _variant(85, 1, "a.jpg")])
        assert [variant_key(v) for v in merged] == [(85, None), (85, 1)]

    @given(variants_strategy, variants_strategy)
    def test_identity_uniqueness(self, existing, incoming):
        merged = merge_variants(existing, incoming)
        keys = [variant_key(v) for v in merged]
        assert len(keys) == len(set(keys))
        assert set(keys) == {variant_key(v) for v in existing + incoming}

    @given(variants_strategy, variants_strategy)
    def test_path_preference(self, existing, incoming):
        """An identity that ever had a path keeps a path"""
        merged = {variant_key(v): v for v in merge_variants(existing, incoming)}
        for variant in existing + incoming:
            if variant.path is not None:
                assert merged[variant_key(variant)].path is not None

    @given(variants_strategy, variants_strategy)
    def test_merge_is_idempotent(self, existing, incoming):
        once = merge_variants(existing, incoming)
        assert merge_variants(once, incoming) == once


@pytest.mark.unit
class TestBuildPicture:
    """Tests for build_picture"""

    def test_grouping_scenario(self, make_row):
        """42/85/"a", 42/85/null, 42/72/"b" yield two variants"""
        rows = [
            make_row(formatId=85, formatPictureId=1, url="/img/a.jpg"),
            make_row(formatId=85, formatPictureId=1, url="/img/a"),
            make_row(formatId=72, formatPictureId=2, url="/img/b.jpg"),
        ]
        picture = build_picture(rows, now=NOW)

        assert [(variant_key(v), v.path) for v in picture.variants] == [
            ((85, 1), "a-1-2560-1440.jpg"),
            ((72, 2), "b-2-640-480.jpg"),
        ]

    def test_scalars_come_from_reference_row(self, make_row):
        rows = [
            make_row(formatId=72, url="/img/small.png", agencyId=1),
            make_row(formatId=85, url="/img/full.jpg", agencyId=2),
        ]
        picture = build_picture(rows, now=NOW)

        assert picture.id == 42
        assert picture.path == "full.jpg"
        assert picture.image_type == "image/jpeg"
        assert picture.agency_id == 2

    def test_primary_falls_back_to_first_row(self, make_row):
        rows = [
            make_row(formatId=72, url="/img/first.gif"),
            make_row(formatId=68, url="/img/second.jpg"),
        ]
        picture = build_picture(rows, now=NOW)
        assert picture.path == "first.gif"
        assert picture.image_type == "image/gif"

    def test_locales(self, make_row):
        rows = [
            make_row(languageId=1, caption="Hallo"),
            make_row(languageId=5, caption="Hoi"),
            make_row(languageId=2, caption="unmapped"),
            make_row(languageId=3, caption=""),
        ]
        picture = build_picture(rows, now=NOW)
        assert picture.description_i18n == {"en": "", "de": "Hallo", "nl": "Hoi"}

    def test_english_caption_replaces_default(self, make_row):
        picture = build_picture([make_row(languageId=0, caption="Hello")], now=NOW)
        assert picture.description_i18n == {"en": "Hello"}

    def test_constant_fields(self, make_row):
        picture = build_picture([make_row()], now=NOW)

        assert picture.uuid == picture_uuid(42)
        assert picture.crops == []
        assert picture.taxonomy == []
        assert picture.type == "MEDIA"
        assert picture.created_by == "migration-script"
        assert picture.created_at == picture.updated_at == NOW
        assert picture.focal_point_x is None and picture.focal_point_y is None

    def test_uuid_is_deterministic(self):
        assert picture_uuid(42) == picture_uuid(42)
        assert picture_uuid(42) != picture_uuid(43)
        assert picture_uuid(42).version == 5

    def test_dimensions_prefer_primary_row(self, make_row):
        rows = [
            make_row(formatId=72, originalWidth=10, originalHeight=20),
            make_row(formatId=85, originalWidth=4000, originalHeight=3000),
        ]
        picture = build_picture(rows, now=NOW)
        assert (picture.width, picture.height) == (4000, 3000)

    def test_dimensions_fall_back_to_first_complete_row(self, make_row):
        rows = [
            make_row(formatId=85, originalWidth=None, originalHeight=None),
            make_row(formatId=72, originalWidth=800, originalHeight=None),
            make_row(formatId=68, originalWidth=640, originalHeight=480),
        ]
        picture = build_picture(rows, now=NOW)
        assert (picture.width, picture.height) == (640, 480)

    def test_unknown_format_and_extensionless_variants(self, make_row):
        rows = [
            make_row(formatId=99, formatPictureId=5, url="/img/a.jpg"),
            make_row(formatId=72, formatPictureId=6, url="/img/noext"),
        ]
        picture = build_picture(rows, now=NOW)
        assert [v.model_dump(by_alias=True) for v in picture.variants] == [
            {"formatId": 99, "formatPictureId": 5, "width": None, "height": None, "path": None},
            {"formatId": 72, "formatPictureId": 6, "width": None, "height": None, "path": None},
        ]

    def test_record_serializes_to_columns(self, make_row):
        row = build_picture([make_row()], now=NOW).model_dump(by_alias=True)
        assert row["imageType"] == "image/jpeg"
        assert row["agencyId"] == 3
        assert row["variants"][0]["formatId"] == 85

    def test_empty_group(self):
        with pytest.raises(ValueError):
            build_picture([])


@pytest.mark.unit
class TestMergeDuplicate:
    """Tests for merging two records of the same picture"""

    def test_merges_captions_and_variants(self, make_row):
        first = build_picture([make_row(languageId=1, caption="Hallo", formatPictureId=1)], now=NOW)
        second = build_picture(
            [make_row(languageId=3, caption="Salut", formatId=72, formatPictureId=2, agencyId=9)],
            now=NOW,
        )
        merged = merge_duplicate(first, second)

        assert merged.description_i18n == {"en": "", "de": "Hallo", "fr": "Salut"}
        assert {variant_key(v) for v in merged.variants} == {(85, 1), (72, 2)}
        assert merged.agency_id == first.agency_id
        assert merged.path == first.path
