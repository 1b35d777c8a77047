import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from favorite.catalog.models import Advisory, CatalogRecord, Partition
from favorite.catalog.normalizers import (normalize_popularity,
                                          normalize_rating,
                                          normalize_severity)
from favorite.core.errors import ExtractionFailure, ExtractionFailureKind
from favorite.core.logger import logger
from favorite.core.models import settings
from favorite.crawler.base import BasePageParser, Fetch
from favorite.crawler.classification import MetadataItem, classify_title

TITLE_ID_PATTERN = re.compile(r"/title/(tt\d+)")

# (title_type, minimum vote count) of each ranked pool
RANKED_POOLS = {
    Partition.FILM: ("feature", 100000),
    Partition.GAME: ("video_game", 1000),
}
USER_RATING_RANGE = "6.7,10.0"

CANDIDATE_LINK_SELECTOR = ".lister-item-image a[href]"
TITLE_SELECTOR = '[class*="TitleHeader__TitleText"], [data-testid="hero__pageTitle"]'
GENRES_SELECTOR = '[data-testid="storyline-genres"] li a'
METADATA_ROW_SELECTOR = '[class*="TitleBlock__TitleMetaDataContainer"] ul'
RATING_SCORE_SELECTOR = '[class*="AggregateRatingButton__RatingScore"]'
RATING_VOTES_SELECTOR = '[class*="AggregateRatingButton__TotalRatingAmount"]'
POSTER_SELECTOR = ".ipc-image"
SYNOPSIS_SELECTOR = '[class*="GenresAndPlot__TextContainerBreakpointL"]'

ADVISORY_SECTIONS = {
    "nudity": "advisory-nudity",
    "violence": "advisory-violence",
    "profanity": "advisory-profanity",
    "substance": "advisory-alcohol",
    "fear": "advisory-frightening",
}


def extract_title_id(href: str) -> Optional[str]:
    match = TITLE_ID_PATTERN.search(href or "")
    return match.group(1) if match else None


def _text(element: Optional[Tag]):
    return element.get_text(strip=True) if element is not None else ""


def _metadata_item(item: Tag) -> MetadataItem:
    # an entry without child elements is a plain type label ("TV Series", "Video Game")
    if item.find(True) is None:
        return MetadataItem(label=item.get_text(strip=True))

    link = item.find("a")
    return MetadataItem(link_text=_text(link) if link is not None else _text(item))


def extract_metadata_row(soup: BeautifulSoup) -> List[MetadataItem]:
    row = soup.select_one(METADATA_ROW_SELECTOR)
    if row is None:
        return []
    return [_metadata_item(item) for item in row.find_all("li", recursive=False)]


class ImdbPageParser(BasePageParser):
    def __init__(self, fetch: Fetch, base_url: Optional[str] = None):
        super().__init__(fetch)
        self.base_url = (base_url or settings.IMDB_URL).rstrip("/")

    def ranked_url(self, partition: Partition, position: int):
        title_type, min_votes = RANKED_POOLS[partition]
        return (
            f"{self.base_url}/search/title/?title_type={title_type}"
            f"&user_rating={USER_RATING_RANGE}&num_votes={min_votes},"
            f"&adult=include&view=simple&sort=num_votes,desc&count=1&start={position}"
        )

    def title_url(self, external_id: str):
        return f"{self.base_url}/title/{external_id}/"

    def advisory_url(self, external_id: str):
        return f"{self.base_url}/title/{external_id}/parentalguide"

    async def _load(self, url: str):
        html = await self.fetch(url)
        return BeautifulSoup(html, "html.parser")

    async def find_next_candidate(self, partition: Partition, position: int):
        soup = await self._load(self.ranked_url(partition, position))

        link = soup.select_one(CANDIDATE_LINK_SELECTOR)
        if link is None:
            return None

        # only a missing link means the ranking is exhausted
        external_id = extract_title_id(link.get("href"))
        if external_id is None:
            raise ExtractionFailure(
                ExtractionFailureKind.MALFORMED,
                f"rank {position} of {partition.value} links to {link.get('href')!r}",
            )

        logger.debug(f"Rank {position} of {partition.value} ranking -> {external_id}")
        return external_id

    async def parse_record(self, external_id: str):
        soup = await self._load(self.title_url(external_id))

        title = _text(soup.select_one(TITLE_SELECTOR))
        if not title:
            raise ExtractionFailure(
                ExtractionFailureKind.MALFORMED, f"{external_id} has no title"
            )

        genres = [
            link.get_text(strip=True).lower() for link in soup.select(GENRES_SELECTOR)
        ]
        classification = classify_title(extract_metadata_row(soup), genres)

        score_text = _text(soup.select_one(RATING_SCORE_SELECTOR))
        votes_text = _text(soup.select_one(RATING_VOTES_SELECTOR))
        if not score_text or not votes_text:
            raise ExtractionFailure(
                ExtractionFailureKind.UNRATED, f"{external_id} has no aggregate rating"
            )

        try:
            rating = normalize_rating(score_text)
            popularity = normalize_popularity(votes_text)
        except ValueError as e:
            raise ExtractionFailure(ExtractionFailureKind.MALFORMED, str(e))

        poster = soup.select_one(POSTER_SELECTOR)
        poster_url = poster.get("src") if poster is not None else None
        if not poster_url:
            raise ExtractionFailure(
                ExtractionFailureKind.NO_POSTER, f"{external_id} has no poster"
            )

        try:
            return CatalogRecord(
                id=external_id,
                title=title,
                type=classification.type,
                release_year=classification.year,
                genres=genres,
                rating=rating,
                popularity=popularity,
                poster_url=poster_url,
                synopsis=_text(soup.select_one(SYNOPSIS_SELECTOR)),
            )
        except ValidationError as e:
            raise ExtractionFailure(
                ExtractionFailureKind.MALFORMED,
                f"{external_id} produced an invalid record: {e.error_count()} errors",
            )

    async def parse_advisory(self, external_id: str, draft: CatalogRecord):
        soup = await self._load(self.advisory_url(external_id))

        severities = {}
        for category, section_id in ADVISORY_SECTIONS.items():
            severity = soup.select_one(f"#{section_id} span")
            severities[category] = normalize_severity(_text(severity))

        return draft.model_copy(update={"advisory": Advisory(**severities)})
