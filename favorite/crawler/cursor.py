"""
Crawl cursor transitions.

Each cycle fires exactly one decision, checked in this order:

1. no readable cursor            -> HOLD_RETRY (nothing is written)
2. position above the ceiling    -> SWITCH_PARTITION
3. backoff counter above zero    -> HOLD_BACKOFF
4. otherwise a crawl step runs, and its outcome picks ADVANCE,
   SWITCH_PARTITION (ranking exhausted) or HOLD_RETRY (any failure).
"""

from enum import Enum
from typing import Dict, Optional

from favorite.catalog.models import CrawlCursor, Partition
from favorite.core.models import settings


class CrawlDecision(str, Enum):
    ADVANCE = "advance"
    SWITCH_PARTITION = "switch_partition"
    HOLD_RETRY = "hold_retry"
    HOLD_BACKOFF = "hold_backoff"


class CrawlOutcome(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


OUTCOME_DECISIONS = {
    CrawlOutcome.SUCCESS: CrawlDecision.ADVANCE,
    CrawlOutcome.EXHAUSTED: CrawlDecision.SWITCH_PARTITION,
    CrawlOutcome.FAILED: CrawlDecision.HOLD_RETRY,
}


class CursorStateMachine:
    def __init__(
        self,
        position_ceiling: Optional[int] = None,
        seed_backoff: Optional[Dict[Partition, int]] = None,
    ):
        self.position_ceiling = (
            position_ceiling
            if position_ceiling is not None
            else settings.CRAWLER_POSITION_CEILING
        )
        self.seed_backoff = seed_backoff or {
            Partition.FILM: settings.CRAWLER_FILM_SEED_BACKOFF,
            Partition.GAME: settings.CRAWLER_GAME_SEED_BACKOFF,
        }

    def decide(self, cursor: Optional[CrawlCursor]) -> Optional[CrawlDecision]:
        """Decision that fires before any fetch, or None when a crawl step should run."""
        if cursor is None:
            return CrawlDecision.HOLD_RETRY
        if cursor.position > self.position_ceiling:
            return CrawlDecision.SWITCH_PARTITION
        if cursor.backoff > 0:
            return CrawlDecision.HOLD_BACKOFF
        return None

    def resolve(self, outcome: CrawlOutcome) -> CrawlDecision:
        return OUTCOME_DECISIONS[outcome]

    def transition(self, cursor: CrawlCursor, decision: CrawlDecision) -> CrawlCursor:
        if decision is CrawlDecision.ADVANCE:
            return cursor.model_copy(update={"position": cursor.position + 1})

        if decision is CrawlDecision.SWITCH_PARTITION:
            partition = cursor.partition.other
            return CrawlCursor(
                partition=partition,
                position=1,
                backoff=self.seed_backoff.get(partition, 0),
            )

        if decision is CrawlDecision.HOLD_BACKOFF:
            return cursor.model_copy(update={"backoff": max(0, cursor.backoff - 1)})

        return cursor.model_copy()
