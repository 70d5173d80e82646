from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.services.genres import latest_version, parse_timestamp

ApprovalState = Literal["pending", "approved", "rejected"]
AppSortBy = Literal["name", "install_count", "install_count_this_week", "created_at", "last_updated"]
SortDir = Literal["asc", "desc"]


class VersionOut(BaseModel):
    number: str | None = None
    date_time: datetime | None = None


class AppOut(BaseModel):
    id: str
    name: str | None = None
    author: str | None = None
    categories: list[str] = Field(default_factory=list)
    install_count: int = 0
    install_count_this_week: int = 0
    approval: ApprovalState | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None
    latest_version: VersionOut | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "AppOut":
        latest = latest_version(document)
        return cls(
            id=document["id"],
            name=document.get("name"),
            author=document.get("author"),
            categories=list(document.get("categories") or []),
            install_count=int(document.get("install_count") or 0),
            install_count_this_week=int(document.get("install_count_this_week") or 0),
            approval=document.get("approval"),
            created_at=parse_timestamp(document.get("created_at")),
            last_updated=parse_timestamp(document.get("last_updated")),
            latest_version=(
                VersionOut(number=latest.get("number"), date_time=parse_timestamp(latest.get("date_time")))
                if latest
                else None
            ),
        )
