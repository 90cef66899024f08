"""
Constants for the pictures profile.
"""

from uuid import UUID
from enum import Enum

# netsport language id → locale
LANGUAGE_ID_TO_LOCALE: dict[int, str] = {
    0: "en",
    1: "de",
    3: "fr",
    4: "it",
    5: "nl",
    6: "es",
    9: "tr",
    11: "da",
    13: "nb",
    14: "pl",
    15: "ru",
    16: "ro",
    17: "hu",
}

# Always present in description_i18n, even without a caption
DEFAULT_LOCALE = "en"

# Full-size rendition; its row is the primary row of a picture
REFERENCE_FORMAT_ID = 85

# formatId → (width, height)
KNOWN_FORMAT_DIMENSIONS: dict[int, tuple[int, int]] = {
    85: (2560, 1440),
    72: (640, 480),
    68: (310, 310),
}

PICTURE_UUID_NAMESPACE = UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")

URL_PREFIX = "/img/"

MEDIA_TYPE = "MEDIA"
CREATED_BY = "migration-script"


class ImageType(str, Enum):
    """MIME type stored in picture.imageType."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"


EXTENSION_IMAGE_TYPES: dict[str, ImageType] = {
    "jpg": ImageType.JPEG,
    "jpeg": ImageType.JPEG,
    "png": ImageType.PNG,
    "gif": ImageType.GIF,
}

# Target table
TABLE_NAME = "picture"
ID_SEQUENCE = "picture_id_seq"
COLUMNS: tuple[str, ...] = (
    "id",
    "uuid",
    "path",
    "imageType",
    "description_i18n",
    "agencyId",
    "focalPointX",
    "focalPointY",
    "width",
    "height",
    "crops",
    "taxonomy",
    "type",
    "createdBy",
    "createdAt",
    "updatedAt",
    "variants",
)
