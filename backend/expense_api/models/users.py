from pydantic import BaseModel, ConfigDict, Field


class UserProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    name: str | None = None
    image_uri: str | None = Field(default=None, alias="imageUri")
    contact: str | None = None
    address: str | None = None


class AvatarRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_url: str | None = Field(default=None, alias="imageUrl")


class OkResponse(BaseModel):
    ok: bool = True
