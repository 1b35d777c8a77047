import time
from typing import Dict, List, Optional, Tuple

from databases import Database
from pydantic import ValidationError

from favorite.catalog.models import (ADVISORY_CATEGORIES, RESERVED_IDENTIFIERS,
                                     Advisory, CatalogRecord, CrawlCursor)
from favorite.catalog.query import QuerySpec
from favorite.core.errors import (PersistenceFailure, PersistenceFailureKind,
                                  TransientCursorFailure)
from favorite.core.logger import logger

TITLE_COLUMNS = (
    "id, title, type, release_year, rating, popularity, poster_url, synopsis, "
    "nudity, violence, profanity, substance, fear"
)


def escape_like(term: str):
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_filter(query: QuerySpec) -> Tuple[str, Dict]:
    """Compile a QuerySpec into a WHERE clause over ``titles t`` and its bound values."""
    reserved = {f"reserved_{i}": value for i, value in enumerate(RESERVED_IDENTIFIERS)}
    clauses = [f"t.id NOT IN ({', '.join(':' + name for name in reserved)})"]
    values = dict(reserved)

    clauses.append("t.type = :media_type")
    values["media_type"] = query.media_type

    for i, genre in enumerate(query.include_genres):
        clauses.append(
            f"EXISTS (SELECT 1 FROM title_genres g WHERE g.title_id = t.id AND g.genre = :include_{i})"
        )
        values[f"include_{i}"] = genre

    if query.exclude_genres:
        placeholders = []
        for i, genre in enumerate(query.exclude_genres):
            placeholders.append(f":exclude_{i}")
            values[f"exclude_{i}"] = genre
        clauses.append(
            f"NOT EXISTS (SELECT 1 FROM title_genres g WHERE g.title_id = t.id AND g.genre IN ({', '.join(placeholders)}))"
        )

    for category, ceiling in query.advisory_ceilings.items():
        if category not in ADVISORY_CATEGORIES:
            continue
        clauses.append(f"t.{category} <= :ceiling_{category}")
        values[f"ceiling_{category}"] = ceiling

    for i, term in enumerate(query.title_terms):
        clauses.append(f"LOWER(t.title) LIKE :term_{i} ESCAPE '\\'")
        values[f"term_{i}"] = f"%{escape_like(term.lower())}%"

    return " AND ".join(clauses), values


class CatalogStore:
    def __init__(self, db: Database):
        self.db = db

    async def upsert(self, record: CatalogRecord):
        if record.id in RESERVED_IDENTIFIERS:
            raise PersistenceFailure(
                PersistenceFailureKind.WRITE_ERROR,
                f"'{record.id}' is a reserved identifier",
            )

        try:
            async with self.db.transaction():
                await self.db.execute(
                    f"""
                        INSERT INTO titles ({TITLE_COLUMNS}, timestamp)
                        VALUES (:id, :title, :type, :release_year, :rating, :popularity, :poster_url, :synopsis,
                                :nudity, :violence, :profanity, :substance, :fear, :timestamp)
                        ON CONFLICT (id) DO UPDATE SET
                            title = excluded.title,
                            type = excluded.type,
                            release_year = excluded.release_year,
                            rating = excluded.rating,
                            popularity = excluded.popularity,
                            poster_url = excluded.poster_url,
                            synopsis = excluded.synopsis,
                            nudity = excluded.nudity,
                            violence = excluded.violence,
                            profanity = excluded.profanity,
                            substance = excluded.substance,
                            fear = excluded.fear,
                            timestamp = excluded.timestamp
                    """,
                    {
                        "id": record.id,
                        "title": record.title,
                        "type": record.type.value,
                        "release_year": record.release_year,
                        "rating": record.rating,
                        "popularity": record.popularity,
                        "poster_url": record.poster_url,
                        "synopsis": record.synopsis or "",
                        **record.advisory.model_dump(),
                        "timestamp": int(time.time()),
                    },
                )
                await self.db.execute(
                    "DELETE FROM title_genres WHERE title_id = :title_id",
                    {"title_id": record.id},
                )
                if record.genres:
                    await self.db.execute_many(
                        "INSERT INTO title_genres (title_id, genre) VALUES (:title_id, :genre)",
                        [{"title_id": record.id, "genre": genre} for genre in record.genres],
                    )
        except Exception as e:
            raise PersistenceFailure(
                PersistenceFailureKind.WRITE_ERROR,
                f"record {record.id} could not be upserted: {e}",
            ) from e

        await self._merge_genres()
        return True

    async def _merge_genres(self):
        # Best effort: any genre used by a stored title but absent from the
        # index is added here, so a failed merge heals on a later upsert.
        try:
            rows = await self.db.fetch_all(
                """
                    SELECT DISTINCT genre FROM title_genres
                    WHERE genre NOT IN (SELECT genre FROM genres)
                """
            )
            missing = [row["genre"] for row in rows]
            if not missing:
                return

            await self.db.execute_many(
                "INSERT INTO genres (genre) VALUES (:genre) ON CONFLICT (genre) DO NOTHING",
                [{"genre": genre} for genre in missing],
            )
            logger.log("DATABASE", f"Genre index grew by {len(missing)}: {', '.join(missing)}")
        except Exception as e:
            logger.warning(f"Genre index could not be updated: {e}")

    async def get(self, record_id: str) -> Optional[CatalogRecord]:
        try:
            row = await self.db.fetch_one(
                f"SELECT {TITLE_COLUMNS} FROM titles WHERE id = :id", {"id": record_id}
            )
            if row is None:
                return None
            genres = await self._fetch_genres([record_id])
        except Exception as e:
            raise PersistenceFailure(PersistenceFailureKind.READ_ERROR, str(e)) from e

        return self._row_to_record(row, genres.get(record_id, []))

    async def read_cursor(self) -> CrawlCursor:
        try:
            row = await self.db.fetch_one(
                "SELECT partition, position, backoff FROM crawl_cursor WHERE id = 1"
            )
        except Exception as e:
            raise PersistenceFailure(
                PersistenceFailureKind.READ_ERROR, f"cursor could not be read: {e}"
            ) from e

        if row is None:
            raise TransientCursorFailure("crawl cursor does not exist yet")

        try:
            return CrawlCursor(
                partition=row["partition"],
                position=row["position"],
                backoff=row["backoff"],
            )
        except ValidationError as e:
            raise TransientCursorFailure(f"crawl cursor is unreadable: {e}") from e

    async def write_cursor(self, cursor: CrawlCursor):
        try:
            await self.db.execute(
                """
                    INSERT INTO crawl_cursor (id, partition, position, backoff)
                    VALUES (1, :partition, :position, :backoff)
                    ON CONFLICT (id) DO UPDATE SET
                        partition = excluded.partition,
                        position = excluded.position,
                        backoff = excluded.backoff
                """,
                {
                    "partition": cursor.partition.value,
                    "position": cursor.position,
                    "backoff": cursor.backoff,
                },
            )
        except Exception as e:
            raise PersistenceFailure(
                PersistenceFailureKind.WRITE_ERROR, f"cursor could not be set: {e}"
            ) from e
        return True

    async def search(self, query: QuerySpec, skip: int, limit: int):
        where, values = build_filter(query)

        try:
            rows = await self.db.fetch_all(
                f"""
                    SELECT {TITLE_COLUMNS} FROM titles t
                    WHERE {where}
                    ORDER BY t.popularity DESC, t.rating DESC, t.id ASC
                    LIMIT :limit OFFSET :skip
                """,
                {**values, "limit": limit, "skip": skip},
            )
            count = await self.db.fetch_val(
                f"SELECT COUNT(*) FROM titles t WHERE {where}", values
            )
            genres = await self._fetch_genres([row["id"] for row in rows])
            genre_index = await self.db.fetch_all("SELECT genre FROM genres ORDER BY genre")
        except Exception as e:
            raise PersistenceFailure(
                PersistenceFailureKind.READ_ERROR, f"records could not be searched: {e}"
            ) from e

        return {
            "count": int(count or 0),
            "items": [self._row_to_record(row, genres.get(row["id"], [])) for row in rows],
            "genres": [row["genre"] for row in genre_index],
        }

    async def _fetch_genres(self, record_ids: List[str]) -> Dict[str, List[str]]:
        if not record_ids:
            return {}

        placeholders = {f"id_{i}": record_id for i, record_id in enumerate(record_ids)}
        rows = await self.db.fetch_all(
            f"""
                SELECT title_id, genre FROM title_genres
                WHERE title_id IN ({', '.join(':' + name for name in placeholders)})
            """,
            placeholders,
        )

        genres: Dict[str, List[str]] = {}
        for row in rows:
            genres.setdefault(row["title_id"], []).append(row["genre"])
        return genres

    @staticmethod
    def _row_to_record(row, genres: List[str]):
        return CatalogRecord(
            id=row["id"],
            title=row["title"],
            type=row["type"],
            release_year=row["release_year"],
            genres=genres,
            rating=row["rating"],
            popularity=row["popularity"],
            poster_url=row["poster_url"],
            synopsis=row["synopsis"],
            advisory=Advisory(
                **{category: row[category] for category in ADVISORY_CATEGORIES}
            ),
        )
