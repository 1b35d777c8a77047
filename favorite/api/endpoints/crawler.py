from fastapi import APIRouter, Request

router = APIRouter()


@router.get(
    "/crawler/status",
    tags=["Crawler"],
    summary="Crawler Status",
    description="Returns the crawl controller state, its cursor and cycle statistics.",
)
async def crawler_status(request: Request):
    crawler = getattr(request.app.state, "crawler", None)
    if crawler is None:
        return {"running": False, "enabled": False}

    return {"enabled": True, **crawler.get_status()}
