"""
Crawl controller tests against in-memory fakes of the catalog store and
the page parser. Sleeps are recorded instead of awaited.
"""

import asyncio

from favorite.catalog.models import Advisory, CatalogRecord, CrawlCursor, Partition
from favorite.core.errors import (ExtractionFailure, ExtractionFailureKind,
                                  PersistenceFailure, PersistenceFailureKind,
                                  TransientCursorFailure)
from favorite.crawler.base import BasePageParser
from favorite.crawler.cursor import CrawlDecision, CursorStateMachine
from favorite.crawler.imdb import ImdbPageParser
from favorite.crawler.worker import CrawlController

PACING = 600
RETRY = 300
BACKOFF = 43200


class FakeStore:
    def __init__(self, cursor=None):
        self.cursor = cursor
        self.writes = []
        self.records = {}
        self.read_error = None
        self.upsert_error = None
        self.write_error = None

    async def read_cursor(self):
        if self.read_error is not None:
            error, self.read_error = self.read_error, None
            raise error
        if self.cursor is None:
            raise TransientCursorFailure("crawl cursor does not exist yet")
        return self.cursor

    async def write_cursor(self, cursor):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(cursor)
        self.cursor = cursor
        return True

    async def upsert(self, record):
        if self.upsert_error is not None:
            raise self.upsert_error
        self.records[record.id] = record
        return True


class FakeParser(BasePageParser):
    def __init__(self, ranking=None, failure=None):
        super().__init__(fetch=None)
        self.ranking = ranking or {}
        self.failure = failure
        self.calls = []

    async def find_next_candidate(self, partition, position):
        self.calls.append(("candidate", partition, position))
        return self.ranking.get((partition, position))

    async def parse_record(self, external_id):
        self.calls.append(("record", external_id))
        if self.failure is not None:
            raise self.failure
        return CatalogRecord(
            id=external_id,
            title=f"Title {external_id}",
            type="film",
            release_year="1999",
            genres=["drama"],
            rating=2,
            popularity=150000,
            poster_url="https://m.media-amazon.com/images/poster.jpg",
        )

    async def parse_advisory(self, external_id, draft):
        self.calls.append(("advisory", external_id))
        return draft.model_copy(update={"advisory": Advisory(nudity=1, violence=2)})


def _controller(store, parser, sleeps):
    async def sleep(seconds):
        sleeps.append(seconds)

    return CrawlController(
        store,
        parser,
        state_machine=CursorStateMachine(
            position_ceiling=4444,
            seed_backoff={Partition.FILM: 30, Partition.GAME: 0},
        ),
        sleep=sleep,
        pacing_interval=PACING,
        retry_delay=RETRY,
        backoff_interval=BACKOFF,
    )


def _cycle(store, parser):
    sleeps = []
    controller = _controller(store, parser, sleeps)
    decision = asyncio.run(controller.run_cycle())
    return decision, sleeps, controller


def test_successful_cycle_merges_record_and_advances():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=3))
    parser = FakeParser(ranking={(Partition.FILM, 3): "tt0111161"})

    decision, sleeps, controller = _cycle(store, parser)

    assert decision is CrawlDecision.ADVANCE
    assert sleeps == [PACING]
    assert store.writes == [CrawlCursor(partition=Partition.FILM, position=4)]
    assert store.records["tt0111161"].advisory.violence == 2
    assert [call[0] for call in parser.calls] == ["candidate", "record", "advisory"]
    assert controller.stats.advanced == 1


def test_exhausted_ranking_switches_partition():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=900))
    parser = FakeParser()

    decision, _, _ = _cycle(store, parser)

    assert decision is CrawlDecision.SWITCH_PARTITION
    assert store.writes == [CrawlCursor(partition=Partition.GAME, position=1, backoff=0)]


def test_exhausted_games_switch_back_to_films_with_backoff():
    store = FakeStore(CrawlCursor(partition=Partition.GAME, position=250))

    decision, _, _ = _cycle(store, FakeParser())

    assert decision is CrawlDecision.SWITCH_PARTITION
    assert store.writes == [CrawlCursor(partition=Partition.FILM, position=1, backoff=30)]


def test_position_past_ceiling_switches_without_fetching():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=4445))
    parser = FakeParser()

    decision, _, _ = _cycle(store, parser)

    assert decision is CrawlDecision.SWITCH_PARTITION
    assert parser.calls == []
    assert store.writes == [CrawlCursor(partition=Partition.GAME, position=1, backoff=0)]


def test_backoff_waits_long_interval_and_decrements():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=1, backoff=30))
    parser = FakeParser()

    decision, sleeps, _ = _cycle(store, parser)

    assert decision is CrawlDecision.HOLD_BACKOFF
    assert sleeps == [PACING, BACKOFF]
    assert parser.calls == []
    assert store.writes == [CrawlCursor(partition=Partition.FILM, position=1, backoff=29)]


def test_extraction_failure_holds_position():
    cursor = CrawlCursor(partition=Partition.FILM, position=8)
    store = FakeStore(cursor)
    parser = FakeParser(
        ranking={(Partition.FILM, 8): "tt0000008"},
        failure=ExtractionFailure(ExtractionFailureKind.NO_POSTER, "tt0000008 has no poster"),
    )

    decision, sleeps, controller = _cycle(store, parser)

    assert decision is CrawlDecision.HOLD_RETRY
    assert sleeps == [PACING]
    assert store.writes == [cursor]
    assert store.records == {}
    # the advisory page is never requested after the record failed
    assert ("advisory", "tt0000008") not in parser.calls
    assert controller.stats.failures == 1
    assert "no_poster" in controller.last_error


def test_upsert_failure_holds_position():
    cursor = CrawlCursor(partition=Partition.GAME, position=2)
    store = FakeStore(cursor)
    store.upsert_error = PersistenceFailure(PersistenceFailureKind.WRITE_ERROR, "disk full")
    parser = FakeParser(ranking={(Partition.GAME, 2): "tt0000002"})

    decision, _, _ = _cycle(store, parser)

    assert decision is CrawlDecision.HOLD_RETRY
    assert store.writes == [cursor]


def test_unparsable_ranked_page_holds_position():
    cursor = CrawlCursor(partition=Partition.FILM, position=1200)
    store = FakeStore(cursor)

    async def fetch(url):
        return '<div class="lister-item-image"><a href="/name/nm0000209/">Tim Robbins</a></div>'

    decision, _, _ = _cycle(store, ImdbPageParser(fetch, base_url="https://imdb.test"))

    assert decision is CrawlDecision.HOLD_RETRY
    assert store.writes == [cursor]


def test_unexpected_parser_error_is_contained():
    cursor = CrawlCursor(partition=Partition.FILM, position=5)
    store = FakeStore(cursor)
    parser = FakeParser(
        ranking={(Partition.FILM, 5): "tt0000005"}, failure=KeyError("src")
    )

    decision, _, _ = _cycle(store, parser)

    assert decision is CrawlDecision.HOLD_RETRY
    assert store.writes == [cursor]


def test_missing_cursor_retries_without_writing():
    store = FakeStore(cursor=None)
    parser = FakeParser()

    decision, sleeps, _ = _cycle(store, parser)

    assert decision is CrawlDecision.HOLD_RETRY
    assert sleeps == [PACING, RETRY]
    assert store.writes == []
    assert parser.calls == []


def test_unreadable_cursor_retries_without_writing():
    store = FakeStore(CrawlCursor())
    store.read_error = PersistenceFailure(PersistenceFailureKind.READ_ERROR, "locked")

    decision, _, _ = _cycle(store, FakeParser())

    assert decision is CrawlDecision.HOLD_RETRY
    assert store.writes == []


def test_cursor_write_failure_is_not_fatal():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=1))
    store.write_error = PersistenceFailure(PersistenceFailureKind.WRITE_ERROR, "readonly")
    parser = FakeParser(ranking={(Partition.FILM, 1): "tt0000001"})

    decision, _, controller = _cycle(store, parser)

    assert decision is CrawlDecision.ADVANCE
    assert "readonly" in controller.last_error


def test_each_cycle_writes_the_cursor_once():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=1))
    parser = FakeParser(
        ranking={(Partition.FILM, 1): "tt0000001", (Partition.FILM, 2): "tt0000002"}
    )
    sleeps = []
    controller = _controller(store, parser, sleeps)

    async def run():
        return [await controller.run_cycle() for _ in range(4)]

    decisions = asyncio.run(run())

    assert decisions == [
        CrawlDecision.ADVANCE,
        CrawlDecision.ADVANCE,
        CrawlDecision.SWITCH_PARTITION,
        CrawlDecision.SWITCH_PARTITION,
    ]
    assert len(store.writes) == 4
    assert store.cursor == CrawlCursor(partition=Partition.FILM, position=1, backoff=30)
    assert set(store.records) == {"tt0000001", "tt0000002"}


def test_cancelled_cycle_leaves_cursor_untouched():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=1))
    started = None

    class BlockingParser(FakeParser):
        async def find_next_candidate(self, partition, position):
            started.set()
            await asyncio.Event().wait()

    async def run():
        nonlocal started
        started = asyncio.Event()
        controller = _controller(store, BlockingParser(), [])
        task = asyncio.create_task(controller.run_cycle())
        await started.wait()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(run()) is True
    assert store.writes == []


def test_loop_survives_unexpected_errors_until_cancelled():
    store = FakeStore(CrawlCursor(partition=Partition.FILM, position=1))
    store.read_error = RuntimeError("connection reset")
    parser = FakeParser(ranking={(Partition.FILM, 1): "tt0000001"})
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) >= 3:
            raise asyncio.CancelledError()

    controller = CrawlController(
        store, parser, sleep=sleep, pacing_interval=PACING, retry_delay=RETRY
    )
    asyncio.run(controller.start())

    assert controller.is_running is False
    assert controller.last_error == "connection reset"
    # first cycle crashed on the cursor read, second advanced, third was cancelled
    assert store.writes == [CrawlCursor(partition=Partition.FILM, position=2)]
    assert controller.get_status()["stats"]["cycles"] == 2
