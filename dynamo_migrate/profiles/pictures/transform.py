"""
Transformation of grouped picture rows into `picture` records.

Variants are the per-format renditions of a picture. They are identified by
(formatId, formatPictureId); merging two variant lists keeps one entry per
identity, never lets an entry without a path replace one with a path, and
otherwise lets the later entry win.
"""

import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from uuid import UUID, uuid5

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    CREATED_BY,
    DEFAULT_LOCALE,
    EXTENSION_IMAGE_TYPES,
    KNOWN_FORMAT_DIMENSIONS,
    LANGUAGE_ID_TO_LOCALE,
    MEDIA_TYPE,
    PICTURE_UUID_NAMESPACE,
    REFERENCE_FORMAT_ID,
    URL_PREFIX,
    ImageType,
)
from .parse import PictureRow

VariantKey = tuple[int | None, int | None]


class PictureVariant(BaseModel):
    """One rendition of a picture, stored as an element of picture.variants."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    format_id: int | None = Field(alias="formatId")
    format_picture_id: int | None = Field(None, alias="formatPictureId")
    width: int | None = None
    height: int | None = None
    path: str | None = None


class PictureRecord(BaseModel):
    """
    A row of the `picture` table.

    Field aliases are the column names; `model_dump(by_alias=True)` gives the
    row the target writes.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: int
    uuid: UUID
    path: str | None = None
    image_type: ImageType | None = Field(None, alias="imageType")
    description_i18n: dict[str, str] = Field(default_factory=dict)
    agency_id: int | None = Field(None, alias="agencyId")
    focal_point_x: int | None = Field(None, alias="focalPointX")
    focal_point_y: int | None = Field(None, alias="focalPointY")
    width: int | None = None
    height: int | None = None
    crops: list = Field(default_factory=list)
    taxonomy: list = Field(default_factory=list)
    type: str = MEDIA_TYPE
    created_by: str = Field(CREATED_BY, alias="createdBy")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    variants: list[PictureVariant] = Field(default_factory=list)


# =======================
# PATHS AND TYPES
# =======================

def strip_url_prefix(url: str) -> str:
    """Turn an export URL into a storage path by dropping the leading /img/."""
    return re.sub("^" + re.escape(URL_PREFIX), "", url)


def get_file_extension(path: str) -> str:
    """Text after the last dot, including the dot; "" when there is no dot."""
    parts = path.split(".")
    if len(parts) <= 1:
        return ""
    return "." + parts[-1]


def image_type_from_path(path: str) -> ImageType:
    extension = get_file_extension(path).lstrip(".").lower()
    return EXTENSION_IMAGE_TYPES.get(extension, ImageType.JPEG)


def build_variant_path(path: str, format_picture_id: int, format_id: int) -> str | None:
    """
    Derive the storage path of a rendition.

    `2013/07/11/alpha.jpg` with formatPictureId 7 and format 72 becomes
    `2013/07/11/alpha-7-640-480.jpg`.

    Returns:
        The variant path, or None for unknown formats and extensionless paths
    """
    dimensions = KNOWN_FORMAT_DIMENSIONS.get(format_id)
    extension = get_file_extension(path)
    if dimensions is None or not extension:
        return None

    width, height = dimensions
    stem = path[: -len(extension)]
    return f"{stem}-{format_picture_id}-{width}-{height}{extension}"


# =======================
# VARIANTS
# =======================

def variant_key(variant: PictureVariant) -> VariantKey:
    return (variant.format_id, variant.format_picture_id)


def build_variant(row: PictureRow) -> PictureVariant:
    """Build the variant a single row describes."""
    if row.format_picture_id is None:
        return PictureVariant(format_id=row.format_id, format_picture_id=None)

    path = build_variant_path(strip_url_prefix(row.url), row.format_picture_id, row.format_id)
    if path is None:
        return PictureVariant(format_id=row.format_id, format_picture_id=row.format_picture_id)

    width, height = KNOWN_FORMAT_DIMENSIONS[row.format_id]
    return PictureVariant(
        format_id=row.format_id,
        format_picture_id=row.format_picture_id,
        width=width,
        height=height,
        path=path,
    )


def merge_variants(
    existing: Iterable[PictureVariant],
    incoming: Iterable[PictureVariant],
) -> list[PictureVariant]:
    """
    Merge two variant lists by identity.

    Entries are folded in order, existing first. For an identity already
    seen, the later entry replaces the earlier one unless the earlier one has
    a path and the later one does not. The result holds each identity once,
    in first-seen order.

    Args:
        existing: Variants already stored
        incoming: Variants being written

    Returns:
        Merged variant list
    """
    merged: dict[VariantKey, PictureVariant] = {}
    for variant in [*existing, *incoming]:
        key = variant_key(variant)
        current = merged.get(key)
        if current is not None and current.path is not None and variant.path is None:
            continue
        merged[key] = variant
    return list(merged.values())


def has_reference_variant(variants: Iterable[PictureVariant]) -> bool:
    """True when a full-size rendition with a path is present."""
    return any(v.format_id == REFERENCE_FORMAT_ID and v.path is not None for v in variants)


# =======================
# RECORD
# =======================

def picture_uuid(picture_id: int) -> UUID:
    return uuid5(PICTURE_UUID_NAMESPACE, str(picture_id))


def select_primary_row(rows: Sequence[PictureRow]) -> PictureRow:
    """First full-size row, falling back to the first row in arrival order."""
    for row in rows:
        if row.format_id == REFERENCE_FORMAT_ID:
            return row
    return rows[0]


def build_description_i18n(rows: Iterable[PictureRow]) -> dict[str, str]:
    """Collect captions per locale; rows with unmapped languages or no caption add nothing."""
    descriptions = {DEFAULT_LOCALE: ""}
    for row in rows:
        locale = LANGUAGE_ID_TO_LOCALE.get(row.language_id)
        if locale and row.caption:
            descriptions[locale] = row.caption
    return descriptions


def find_original_dimensions(primary: PictureRow, rows: Iterable[PictureRow]) -> tuple[int | None, int | None]:
    if primary.original_width is not None and primary.original_height is not None:
        return primary.original_width, primary.original_height

    for row in rows:
        if row.original_width is not None and row.original_height is not None:
            return row.original_width, row.original_height
    return None, None


def build_picture(rows: Sequence[PictureRow], now: datetime | None = None) -> PictureRecord:
    """
    Fold the rows of one picture into a `picture` record.

    Args:
        rows: Non-empty group of rows sharing a pictureId
        now: Timestamp for createdAt/updatedAt (defaults to current UTC time)

    Returns:
        PictureRecord

    Raises:
        ValueError: If rows is empty
    """
    if not rows:
        raise ValueError("Cannot build a picture from an empty row group")

    now = now or datetime.now(timezone.utc)
    primary = select_primary_row(rows)
    path = strip_url_prefix(primary.url)
    width, height = find_original_dimensions(primary, rows)

    return PictureRecord(
        id=primary.picture_id,
        uuid=picture_uuid(primary.picture_id),
        path=path,
        image_type=image_type_from_path(path),
        description_i18n=build_description_i18n(rows),
        agency_id=primary.agency_id,
        focal_point_x=None,
        focal_point_y=None,
        width=width,
        height=height,
        created_at=now,
        updated_at=now,
        variants=merge_variants([], (build_variant(row) for row in rows)),
    )


def merge_duplicate(existing: PictureRecord, incoming: PictureRecord) -> PictureRecord:
    """
    Combine two records for the same picture met in one batch.

    Scalars of the first record are kept; captions and variants of both are
    merged with the incoming ones winning.
    """
    return existing.model_copy(update={
        "description_i18n": {**existing.description_i18n, **incoming.description_i18n},
        "variants": merge_variants(existing.variants, incoming.variants),
    })
