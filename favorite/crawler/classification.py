from dataclasses import dataclass
from typing import Iterable, Sequence

from favorite.catalog.models import MediaType
from favorite.core.errors import ExtractionFailure, ExtractionFailureKind

LABEL_TYPES = (
    ("series", MediaType.SERIES),
    ("short", MediaType.SHORT),
    ("game", MediaType.GAME),
)

GENRE_TYPES = (
    ("documentary", MediaType.DOCUMENTARY),
    ("short", MediaType.SHORT),
)


@dataclass
class MetadataItem:
    """One entry of a title's metadata row: plain label text, or the text of its link."""

    label: str = ""
    link_text: str = ""


@dataclass
class Classification:
    type: MediaType
    year: str


def type_from_label(label: str) -> MediaType:
    label = label.lower()
    for keyword, media_type in LABEL_TYPES:
        if keyword in label:
            return media_type
    return MediaType.FILM


def type_from_genres(genres: Iterable[str]) -> MediaType:
    genres = {genre.lower() for genre in genres}
    for genre, media_type in GENRE_TYPES:
        if genre in genres:
            return media_type
    return MediaType.FILM


def classify_title(row: Sequence[MetadataItem], genres: Iterable[str]) -> Classification:
    # a row without at least a year and a certificate/runtime entry means an unrated title
    if len(row) < 2:
        raise ExtractionFailure(ExtractionFailureKind.UNRATED, "metadata row is incomplete")

    first = row[0]
    if first.label.strip():
        return Classification(
            type=type_from_label(first.label), year=row[1].link_text.strip()[:4]
        )

    return Classification(type=type_from_genres(genres), year=first.link_text.strip()[:4])
