"""
Checkpoint model recording which export files a run has fully processed.
"""

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class ProfileConfig(BaseModel):
    """
    Business-logic settings handed to a profile (batch size, id bound, ...).

    Attributes:
        batch_size: Number of target records per upsert batch
        max_id: Optional exclusive upper bound on the natural key
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        json_schema_extra={"example": {"batchSize": 500, "maxId": 2000000}},
    )

    batch_size: StrictInt = Field(500, alias="batchSize", ge=1)
    max_id: StrictInt | None = Field(None, alias="maxId")

    def to_json_dict(self) -> dict:
        """Serialize with the persisted (camelCase) key names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Checkpoint(BaseModel):
    """
    Resume state for one profile.

    Absence of a checkpoint means "start fresh". The processed set only
    grows during a run and is removed as a whole on full completion.

    Attributes:
        processed_files: Source file identifiers already fully written
        profile_config: Configuration snapshot of the run that wrote it
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "processedFiles": [
                    "exports/AWSDynamoDB/0123/data/aaaa.json.gz",
                    "exports/AWSDynamoDB/0123/data/bbbb.json.gz",
                ],
                "profileConfig": {"batchSize": 500},
            }
        },
    )

    processed_files: list[StrictStr] = Field(alias="processedFiles")
    profile_config: ProfileConfig = Field(alias="profileConfig")

    def to_json_dict(self) -> dict:
        return {
            "processedFiles": list(self.processed_files),
            "profileConfig": self.profile_config.to_json_dict(),
        }
