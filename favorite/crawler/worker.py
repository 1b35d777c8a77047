import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from favorite.catalog.models import CrawlCursor
from favorite.catalog.store import CatalogStore
from favorite.core.errors import (ExtractionFailure, PersistenceFailure,
                                  TransientCursorFailure)
from favorite.core.logger import logger
from favorite.core.models import settings
from favorite.crawler.base import BasePageParser
from favorite.crawler.cursor import (CrawlDecision, CrawlOutcome,
                                     CursorStateMachine)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class CrawlStats:
    cycles: int = 0
    advanced: int = 0
    switched: int = 0
    held: int = 0
    failures: int = 0
    start_time: float = 0.0

    @property
    def duration(self) -> float:
        return time.time() - self.start_time if self.start_time else 0.0


class CrawlController:
    """
    Single-instance crawl loop.

    Every cycle waits the pacing interval, reads the cursor, lets the
    state machine pick one decision and writes the resulting cursor last.
    Only one controller may run against a catalog; two would race on the
    cursor.
    """

    def __init__(
        self,
        store: CatalogStore,
        parser: BasePageParser,
        state_machine: Optional[CursorStateMachine] = None,
        sleep: Sleep = asyncio.sleep,
        pacing_interval: Optional[float] = None,
        retry_delay: Optional[float] = None,
        backoff_interval: Optional[float] = None,
    ):
        self.store = store
        self.parser = parser
        self.state_machine = state_machine or CursorStateMachine()
        self._sleep = sleep
        self.pacing_interval = (
            pacing_interval
            if pacing_interval is not None
            else settings.CRAWLER_PACING_INTERVAL
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.CRAWLER_RETRY_DELAY
        )
        self.backoff_interval = (
            backoff_interval
            if backoff_interval is not None
            else settings.CRAWLER_BACKOFF_INTERVAL
        )

        self.is_running = False
        self.last_error = None
        self.last_decision: Optional[CrawlDecision] = None
        self.cursor: Optional[CrawlCursor] = None
        self.stats = CrawlStats()

    async def start(self):
        if self.is_running:
            logger.log("CRAWLER", "Crawl controller is already running")
            return

        logger.log("CRAWLER", "Starting crawl controller")
        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())

        while self.is_running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                self.is_running = False
            except Exception as e:
                self.last_error = str(e)
                logger.exception(f"Unexpected error in crawl cycle: {e}")

    async def stop(self):
        logger.log("CRAWLER", "Stopping crawl controller")
        self.is_running = False

    async def run_cycle(self) -> CrawlDecision:
        await self._sleep(self.pacing_interval)
        self.stats.cycles += 1

        cursor = await self._read_cursor()
        decision = self.state_machine.decide(cursor)

        if cursor is None:
            logger.log(
                "CRAWLER", f"No usable crawl cursor, retrying in {self.retry_delay}s"
            )
            await self._sleep(self.retry_delay)
            self._record(decision)
            return decision

        if decision is CrawlDecision.HOLD_BACKOFF:
            logger.log(
                "CRAWLER",
                f"Backing off {cursor.partition.value} crawling for {self.backoff_interval}s ({cursor.backoff} intervals left)",
            )
            await self._sleep(self.backoff_interval)
        elif decision is None:
            outcome = await self._crawl(cursor)
            decision = self.state_machine.resolve(outcome)

        next_cursor = self.state_machine.transition(cursor, decision)
        if decision is CrawlDecision.SWITCH_PARTITION:
            logger.log(
                "CRAWLER",
                f"Switching from {cursor.partition.value} to {next_cursor.partition.value} (backoff {next_cursor.backoff})",
            )
        await self._commit(next_cursor)
        self._record(decision)
        return decision

    async def _read_cursor(self) -> Optional[CrawlCursor]:
        try:
            cursor = await self.store.read_cursor()
        except (TransientCursorFailure, PersistenceFailure) as e:
            self._fail(e)
            logger.warning(f"Crawl cursor unavailable: {e}")
            return None

        self.cursor = cursor
        return cursor

    async def _crawl(self, cursor: CrawlCursor) -> CrawlOutcome:
        partition = cursor.partition.value
        position = cursor.position

        try:
            external_id = await self.parser.find_next_candidate(
                cursor.partition, position
            )
            if not external_id:
                logger.log(
                    "CRAWLER", f"The {partition} ranking is exhausted at #{position}"
                )
                return CrawlOutcome.EXHAUSTED

            draft = await self.parser.parse_record(external_id)
            record = await self.parser.parse_advisory(external_id, draft)
            await self.store.upsert(record)
        except ExtractionFailure as e:
            self._fail(e)
            logger.warning(f"Extraction failed for {partition} #{position}: {e}")
            return CrawlOutcome.FAILED
        except PersistenceFailure as e:
            self._fail(e)
            logger.error(f"Could not merge {partition} #{position}: {e}")
            return CrawlOutcome.FAILED
        except Exception as e:
            self._fail(e)
            logger.exception(f"Unexpected error crawling {partition} #{position}: {e}")
            return CrawlOutcome.FAILED

        logger.log(
            "CRAWLER",
            f"Merged {record.id} ({record.title}, {record.type.value}) from {partition} #{position}",
        )
        return CrawlOutcome.SUCCESS

    async def _commit(self, cursor: CrawlCursor):
        try:
            # a started write completes even if the loop is cancelled meanwhile
            await asyncio.shield(self.store.write_cursor(cursor))
        except PersistenceFailure as e:
            self._fail(e)
            logger.error(f"Crawl cursor could not be saved: {e}")
            return

        self.cursor = cursor

    def _fail(self, error: Exception):
        self.stats.failures += 1
        self.last_error = str(error)

    def _record(self, decision: CrawlDecision):
        self.last_decision = decision
        if decision is CrawlDecision.ADVANCE:
            self.stats.advanced += 1
        elif decision is CrawlDecision.SWITCH_PARTITION:
            self.stats.switched += 1
        else:
            self.stats.held += 1

    def get_status(self):
        return {
            "running": self.is_running,
            "last_decision": self.last_decision.value if self.last_decision else None,
            "last_error": self.last_error,
            "cursor": self.cursor.model_dump(mode="json") if self.cursor else None,
            "stats": {
                "cycles": self.stats.cycles,
                "advanced": self.stats.advanced,
                "switched": self.stats.switched,
                "held": self.stats.held,
                "failures": self.stats.failures,
                "duration_s": round(self.stats.duration, 2),
            },
        }
