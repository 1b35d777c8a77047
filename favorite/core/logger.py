import sys

from loguru import logger

from favorite.core.log_levels import CUSTOM_LOG_LEVELS, STANDARD_LOG_LEVELS
from favorite.core.models import settings


def setupLogger(level: str):
    # Configure custom log levels
    for level_name, level_config in CUSTOM_LOG_LEVELS.items():
        logger.level(
            level_name,
            no=level_config["no"],
            icon=level_config["icon"],
            color=level_config["loguru_color"],
        )

    # Configure standard log levels (override defaults)
    for level_name, level_config in STANDARD_LOG_LEVELS.items():
        logger.level(
            level_name, icon=level_config["icon"], color=level_config["loguru_color"]
        )

    log_format = (
        "<white>{time:YYYY-MM-DD}</white> <magenta>{time:HH:mm:ss}</magenta> | "
        "<level>{level.icon}</level> <level>{level}</level> | "
        "<cyan>{module}</cyan>.<cyan>{function}</cyan> - <level>{message}</level>"
    )

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": level,
                "format": log_format,
                "backtrace": False,
                "diagnose": False,
                "enqueue": True,
            }
        ]
    )


setupLogger(settings.LOG_LEVEL)


def log_startup_info(settings):
    logger.log(
        "FAVORITE",
        f"Server started on http://{settings.FASTAPI_HOST}:{settings.FASTAPI_PORT} - {settings.FASTAPI_WORKERS} workers",
    )

    database_display = (
        settings.DATABASE_PATH
        if settings.DATABASE_TYPE == "sqlite"
        else settings.DATABASE_URL.split("@")[-1]
    )
    logger.log("FAVORITE", f"Database ({settings.DATABASE_TYPE}): {database_display}")
    logger.log("FAVORITE", f"Title Index: {settings.IMDB_URL}")

    crawler_display = (
        f" - Pacing: {settings.CRAWLER_PACING_INTERVAL}s - Retry Delay: {settings.CRAWLER_RETRY_DELAY}s - Backoff Interval: {settings.CRAWLER_BACKOFF_INTERVAL}s - Position Ceiling: {settings.CRAWLER_POSITION_CEILING}"
        if settings.CRAWLER_ENABLED
        else ""
    )
    logger.log("FAVORITE", f"Crawler: {bool(settings.CRAWLER_ENABLED)}{crawler_display}")

    logger.log(
        "FAVORITE",
        f"Search: Max Limit {settings.SEARCH_MAX_LIMIT} - Max Terms {settings.SEARCH_MAX_TERMS}",
    )

    if settings.CRAWLER_ENABLED and settings.FASTAPI_WORKERS > 1:
        logger.warning(
            "Crawler is enabled with more than one worker; each worker would run its own crawl loop and race on the cursor. Run a single crawling process."
        )
