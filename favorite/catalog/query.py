import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from favorite.catalog.models import ADVISORY_CATEGORIES, CatalogRecord, MediaType
from favorite.core.logger import logger
from favorite.core.models import settings

SEPARATOR = ","
DISALLOWED_CHARACTERS = re.compile(r"[^a-zA-Z0-9_,-]")
ALLOWED_VALUE = re.compile(r"[a-zA-Z0-9_,-]+")

DEFAULT_MEDIA_TYPE = MediaType.FILM.value
PAGINATION_KEYS = ("skip", "limit")


def sanitize(value: Any) -> str:
    if not isinstance(value, str):
        return ""

    return DISALLOWED_CHARACTERS.sub("", value)


def sanitize_params(params: Mapping[Any, Any]) -> Dict[str, str]:
    sanitized = {}
    for key, value in params.items():
        clean_key = sanitize(key)
        if clean_key:
            sanitized[clean_key] = sanitize(value)
    return sanitized


@dataclass
class QuerySpec:
    media_type: str = DEFAULT_MEDIA_TYPE
    include_genres: List[str] = field(default_factory=list)
    exclude_genres: List[str] = field(default_factory=list)
    advisory_ceilings: Dict[str, int] = field(default_factory=dict)
    title_terms: List[str] = field(default_factory=list)

    def matches(self, record: CatalogRecord) -> bool:
        record_type = (
            record.type.value if isinstance(record.type, MediaType) else record.type
        )
        if record_type != self.media_type:
            return False

        genres = set(record.genres)
        if not all(genre in genres for genre in self.include_genres):
            return False
        if any(genre in genres for genre in self.exclude_genres):
            return False

        for category, ceiling in self.advisory_ceilings.items():
            if getattr(record.advisory, category) > ceiling:
                return False

        title = record.title.lower()
        return all(term in title for term in self.title_terms)


@dataclass
class SearchRequest:
    query: QuerySpec
    skip: int
    limit: int


def _usable(value: Any) -> bool:
    # empty values and dangling separators come from malformed multi-value strings
    if not isinstance(value, str) or not value or value.startswith(SEPARATOR):
        return False
    return ALLOWED_VALUE.fullmatch(value) is not None


def _split(value: str) -> List[str]:
    return [part.lower() for part in value.split(SEPARATOR) if part]


def _parse_int(value: Optional[str]) -> Optional[int]:
    if not _usable(value):
        return None
    try:
        return int(value)
    except ValueError:
        return None


def translate_params(
    params: Mapping[str, str],
    max_limit: Optional[int] = None,
    max_terms: Optional[int] = None,
) -> SearchRequest:
    max_limit = max_limit if max_limit is not None else settings.SEARCH_MAX_LIMIT
    max_terms = max_terms if max_terms is not None else settings.SEARCH_MAX_TERMS

    skip = _parse_int(params.get("skip"))
    skip = max(0, skip) if skip is not None else 0

    limit = _parse_int(params.get("limit"))
    limit = min(max(1, limit), max_limit) if limit is not None else max_limit

    query = QuerySpec()
    for key, value in params.items():
        if key in PAGINATION_KEYS or not _usable(value):
            continue

        if key == "type":
            query.media_type = value.lower()
        elif key == "genre":
            query.include_genres = _split(value)
        elif key == "notgenre":
            query.exclude_genres = _split(value)
        elif key in ADVISORY_CATEGORIES:
            ceiling = _parse_int(value)
            if ceiling is not None:
                query.advisory_ceilings[key] = ceiling
        elif key == "search":
            query.title_terms = _split(value)[:max_terms]
        # other keys would allow unindexed scans of the catalog

    logger.debug(
        f"Translated search parameters {sorted(str(key) for key in params)} -> {query} (skip={skip}, limit={limit})"
    )
    return SearchRequest(query=query, skip=skip, limit=limit)
