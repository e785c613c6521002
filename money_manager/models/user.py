from pydantic import BaseModel, Field, ConfigDict


class User(BaseModel):
    """Directory entry: username and its integer user id."""
    id: int = Field(validation_alias="_id", serialization_alias="id")
    username: str = Field(..., min_length=3, max_length=32)

    model_config = ConfigDict(populate_by_name=True)
