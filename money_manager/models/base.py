from datetime import datetime, timezone
from typing import Annotated, Any

from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _object_id_hex(value: Any) -> str:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, str) and ObjectId.is_valid(value):
        return value
    raise ValueError("Invalid ObjectId")


# Mongo-generated ids are exposed as hex strings
PyObjectId = Annotated[str, BeforeValidator(_object_id_hex)]


class MongoModel(BaseModel):
    """Document with audit timestamps; ledger ids are plain integers."""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True
    )
