import uvicorn, dotenv

dotenv.load_dotenv()

from favorite.core.logger import log_startup_info
from favorite.core.models import settings

if __name__ == "__main__":
    log_startup_info(settings)
    uvicorn.run(
        "favorite.main:app",
        host=settings.FASTAPI_HOST,
        port=settings.FASTAPI_PORT,
        # the crawl controller must run in a single process
        workers=settings.FASTAPI_WORKERS,
        log_config=None,
    )
