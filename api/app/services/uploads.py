from __future__ import annotations

import time
from dataclasses import dataclass
from urllib.parse import quote

from app.core.config import Settings

GCS_BASE_URL = "https://storage.googleapis.com"


class LoginRequiredError(Exception):
    error = "Login Required"

    def __init__(self, message: str = "Please login before posting files") -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True, slots=True)
class UploadInstructions:
    bucket: str
    key: str
    acl: str
    access_id: str | None
    upload_url: str
    public_url: str
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class ImageUploadDirective:
    bucket: str
    access_id: str | None = None
    acl: str = "public-read"
    key_prefix: str = "images/"

    @classmethod
    def from_settings(cls, settings: Settings) -> ImageUploadDirective:
        return cls(
            bucket=settings.image_bucket,
            access_id=settings.gcs_access_id,
            acl=settings.image_upload_acl,
        )

    def authorize(self, user_id: str | None) -> str:
        if not user_id:
            raise LoginRequiredError()
        return user_id

    def key(self, user_id: str, file_name: str, timestamp_ms: int) -> str:
        return f"{self.key_prefix}{user_id}_{timestamp_ms}_{file_name}"

    def prepare(
        self,
        user_id: str | None,
        file_name: str,
        content_type: str | None = None,
        *,
        now_ms: int | None = None,
    ) -> UploadInstructions:
        authorized_user_id = self.authorize(user_id)
        timestamp_ms = now_ms if now_ms is not None else time.time_ns() // 1_000_000
        key = self.key(authorized_user_id, file_name, timestamp_ms)
        return UploadInstructions(
            bucket=self.bucket,
            key=key,
            acl=self.acl,
            access_id=self.access_id,
            upload_url=f"{GCS_BASE_URL}/{self.bucket}",
            public_url=f"{GCS_BASE_URL}/{self.bucket}/{quote(key)}",
            content_type=content_type,
        )
