import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from favorite.api.endpoints import base, crawler, search
from favorite.catalog.store import CatalogStore
from favorite.core.database import setup_database, teardown_database
from favorite.core.logger import logger
from favorite.core.models import database, settings
from favorite.crawler.imdb import ImdbPageParser
from favorite.crawler.worker import CrawlController
from favorite.utils.http_client import http_client_manager


class LoguruMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Exception during request processing: {e}")
            raise
        finally:
            process_time = time.time() - start_time
            logger.log(
                "API",
                f"{request.method} {request.url.path} - {response.status_code if 'response' in locals() else '500'} - {process_time:.2f}s",
            )
        return response


def log_unhandled_exception(loop, context):
    error = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if error is not None:
        logger.opt(exception=error).error(f"{message}: {error}")
    else:
        logger.error(message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    asyncio.get_running_loop().set_exception_handler(log_unhandled_exception)

    await setup_database()
    await http_client_manager.init()

    store = CatalogStore(database)
    app.state.store = store
    app.state.crawler = None

    crawler_task = None
    if settings.CRAWLER_ENABLED:
        parser = ImdbPageParser(http_client_manager.fetch_text)
        app.state.crawler = CrawlController(store, parser)
        crawler_task = asyncio.create_task(app.state.crawler.start())

    try:
        yield
    finally:
        if crawler_task:
            await app.state.crawler.stop()
            crawler_task.cancel()
            try:
                await crawler_task
            except asyncio.CancelledError:
                pass

        await http_client_manager.close()
        await teardown_database()


app = FastAPI(
    title="Favorite",
    summary="Searchable catalog of acclaimed films, series and games with content advisories.",
    lifespan=lifespan,
    redoc_url=None,
)


app.add_middleware(LoguruMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(base.router)
app.include_router(search.router)
app.include_router(crawler.router)
