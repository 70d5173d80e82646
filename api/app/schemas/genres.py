from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

GenreKind = Literal["extra", "category"]
GenreSortBy = Literal["priority", "name"]


class GenreOut(BaseModel):
    name: str
    kind: GenreKind
    priority: int = 0
    show_summary: bool = False


class PopulatedGenresOut(BaseModel):
    genres: list[GenreOut] = Field(default_factory=list)
    refreshed_at: datetime | None = None
    source: Literal["cache", "live"]
