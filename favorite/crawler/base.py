from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from favorite.catalog.models import CatalogRecord, Partition

Fetch = Callable[[str], Awaitable[str]]


class BasePageParser(ABC):
    """
    Extraction capability over one external title index.

    Implementations raise ``ExtractionFailure`` for any page that cannot
    produce a usable record.
    """

    def __init__(self, fetch: Fetch):
        self.fetch = fetch

    @abstractmethod
    async def find_next_candidate(
        self, partition: Partition, position: int
    ) -> Optional[str]:
        """External id of the title at ``position`` (1-based), or None once the ranking is exhausted."""

    @abstractmethod
    async def parse_record(self, external_id: str) -> CatalogRecord:
        pass

    @abstractmethod
    async def parse_advisory(
        self, external_id: str, draft: CatalogRecord
    ) -> CatalogRecord:
        pass
