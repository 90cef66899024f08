"""
Row schema of the pictures export and row grouping.

One DynamoDB item describes one (picture, language, format) combination,
so a picture is spread over several rows sharing `pictureId`.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from dynamo_migrate.observability.logger import get_logger
from dynamo_migrate.profiles.base import group_by_key

logger = get_logger(__name__)


class PictureRow(BaseModel):
    """
    One validated item of the pictures export.

    Unknown keys are ignored; a missing or null caption becomes "".
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: StrictStr
    picture_id: StrictInt = Field(alias="pictureId")
    language_id: StrictInt = Field(alias="languageId")
    url: StrictStr
    caption: StrictStr = ""
    agency_id: StrictInt = Field(alias="agencyId")
    format_id: StrictInt = Field(alias="formatId")
    format_picture_id: StrictInt | None = Field(None, alias="formatPictureId")
    original_width: StrictInt | None = Field(None, alias="originalWidth")
    original_height: StrictInt | None = Field(None, alias="originalHeight")
    x: StrictInt | None = None
    y: StrictInt | None = None


def parse_item(raw: Mapping[str, Any]) -> PictureRow | None:
    """
    Validate a raw export item.

    Args:
        raw: Unmarshalled DynamoDB item

    Returns:
        PictureRow, or None when the item does not match the schema
    """
    if raw.get("caption") is None:
        raw = {**raw, "caption": ""}

    try:
        return PictureRow.model_validate(raw)
    except ValidationError as e:
        logger.debug(
            f"Skipping invalid picture item: {e.error_count()} validation error(s)",
            extra={"item_id": raw.get("id"), "errors": e.errors(include_url=False, include_input=False)}
        )
        return None


def group_rows_by_picture_id(rows: Iterable[PictureRow]) -> list[list[PictureRow]]:
    """Group rows by pictureId in first-seen order."""
    return group_by_key(rows, lambda row: row.picture_id)
