from pydantic import BaseModel, Field


class ImageUploadRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255, pattern=r"^[^/\\]+$")
    content_type: str | None = None


class ImageUploadOut(BaseModel):
    bucket: str
    key: str
    acl: str
    access_id: str | None = None
    upload_url: str
    public_url: str
    content_type: str | None = None
