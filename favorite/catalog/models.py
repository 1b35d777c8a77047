from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

RESERVED_IDENTIFIERS = ("cursor", "genres")

ADVISORY_CATEGORIES = ("nudity", "violence", "profanity", "substance", "fear")


class MediaType(str, Enum):
    FILM = "film"
    SERIES = "series"
    SHORT = "short"
    GAME = "game"
    DOCUMENTARY = "documentary"


class Partition(str, Enum):
    FILM = "film"
    GAME = "game"

    @property
    def other(self) -> "Partition":
        return Partition.GAME if self is Partition.FILM else Partition.FILM


class Advisory(BaseModel):
    """Content warnings, 0 (none) to 3 (severe); 4 means unknown/unrated."""

    nudity: int = Field(default=4, ge=0, le=4)
    violence: int = Field(default=4, ge=0, le=4)
    profanity: int = Field(default=4, ge=0, le=4)
    substance: int = Field(default=4, ge=0, le=4)
    fear: int = Field(default=4, ge=0, le=4)


class CatalogRecord(BaseModel):
    id: str = Field(min_length=1)
    title: str
    type: MediaType
    release_year: str = Field(pattern=r"^\d{4}$")
    genres: List[str] = []
    rating: int = Field(ge=1, le=3)
    popularity: float = Field(ge=0)
    poster_url: str = Field(min_length=1)
    synopsis: Optional[str] = ""
    advisory: Advisory = Advisory()

    @field_validator("genres")
    def normalize_genres(cls, v):
        return sorted({genre.strip().lower() for genre in v if genre and genre.strip()})


class CrawlCursor(BaseModel):
    partition: Partition = Partition.FILM
    position: int = Field(default=1, ge=1)
    backoff: int = Field(default=0, ge=0)
