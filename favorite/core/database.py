import os
import traceback

from databases import Database

from favorite.core.logger import logger
from favorite.core.models import database, settings

DATABASE_VERSION = "1.0"


async def setup_database(db: Database = database):
    try:
        if settings.DATABASE_TYPE == "sqlite" and db is database:
            directory = os.path.dirname(settings.DATABASE_PATH)
            if directory:
                os.makedirs(directory, exist_ok=True)

            if not os.path.exists(settings.DATABASE_PATH):
                open(settings.DATABASE_PATH, "a").close()

        if not db.is_connected:
            await db.connect()

        await create_schema(db)
    except Exception as e:
        logger.error(f"Error setting up the database: {e}")
        logger.exception(traceback.format_exc())
        raise


async def create_schema(db: Database):
    await db.execute(
        """
            CREATE TABLE IF NOT EXISTS db_version (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                version TEXT
            )
        """
    )

    current_version = await db.fetch_val("SELECT version FROM db_version WHERE id = 1")
    if current_version != DATABASE_VERSION:
        logger.log(
            "DATABASE",
            f"Schema version {current_version} -> {DATABASE_VERSION}",
        )
        await db.execute(
            """
                INSERT INTO db_version VALUES (1, :version)
                ON CONFLICT (id) DO UPDATE SET version = :version
            """,
            {"version": DATABASE_VERSION},
        )

    await db.execute(
        """
            CREATE TABLE IF NOT EXISTS titles (
                id TEXT PRIMARY KEY,
                title TEXT,
                type TEXT,
                release_year TEXT,
                rating INTEGER,
                popularity DOUBLE PRECISION,
                poster_url TEXT,
                synopsis TEXT,
                nudity INTEGER,
                violence INTEGER,
                profanity INTEGER,
                substance INTEGER,
                fear INTEGER,
                timestamp INTEGER
            )
        """
    )

    await db.execute(
        """
            CREATE TABLE IF NOT EXISTS title_genres (
                title_id TEXT,
                genre TEXT,
                PRIMARY KEY (title_id, genre)
            )
        """
    )

    await db.execute(
        """
            CREATE TABLE IF NOT EXISTS genres (
                genre TEXT PRIMARY KEY
            )
        """
    )

    await db.execute(
        """
            CREATE TABLE IF NOT EXISTS crawl_cursor (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                partition TEXT,
                position INTEGER,
                backoff INTEGER
            )
        """
    )

    await db.execute(
        """
            CREATE INDEX IF NOT EXISTS idx_titles_type_ranking
            ON titles (type, popularity DESC, rating DESC)
        """
    )

    await db.execute(
        """
            CREATE INDEX IF NOT EXISTS idx_title_genres_genre
            ON title_genres (genre, title_id)
        """
    )

    # a fresh catalog starts crawling films from the top of the ranking
    await db.execute(
        """
            INSERT INTO crawl_cursor (id, partition, position, backoff)
            VALUES (1, 'film', 1, 0)
            ON CONFLICT (id) DO NOTHING
        """
    )


async def teardown_database(db: Database = database):
    try:
        await db.disconnect()
    except Exception as e:
        logger.error(f"Error tearing down the database: {e}")
        logger.exception(traceback.format_exc())
