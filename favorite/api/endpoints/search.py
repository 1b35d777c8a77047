from typing import List

import orjson
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from favorite.catalog.models import CatalogRecord
from favorite.catalog.query import sanitize_params, translate_params
from favorite.core.errors import PersistenceFailure
from favorite.core.logger import logger

MAX_BODY_SIZE = 1024

router = APIRouter()


class SearchResponse(BaseModel):
    count: int
    items: List[CatalogRecord]
    tags: List[str]
    limit: int


async def _search(request: Request, params: dict):
    search = translate_params(sanitize_params(params))

    try:
        result = await request.app.state.store.search(
            search.query, search.skip, search.limit
        )
    except PersistenceFailure as e:
        logger.error(f"Search failed: {e}")
        return JSONResponse(status_code=503, content={"detail": "out of service"})

    return SearchResponse(
        count=result["count"],
        items=result["items"],
        tags=result["genres"],
        limit=search.limit,
    )


async def _read_body(request: Request) -> dict:
    body = await request.body()
    if not body:
        return {}

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(
        ("application/x-www-form-urlencoded", "multipart/form-data")
    ):
        form = await request.form()
        return {key: value for key, value in form.items()}

    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


@router.get(
    "/search",
    tags=["Catalog"],
    summary="Search Catalog",
    description="Filters the catalog with query parameters (type, genre, notgenre, advisory ceilings, search, skip, limit).",
    response_model=SearchResponse,
)
async def search_get(request: Request):
    # repeated parameters keep their last value
    return await _search(request, dict(request.query_params))


def _declared_too_large(request: Request) -> bool:
    content_length = request.headers.get("content-length", "")
    return content_length.isdigit() and int(content_length) > MAX_BODY_SIZE


@router.post(
    "/search",
    tags=["Catalog"],
    summary="Search Catalog",
    description="Filters the catalog with a JSON or form body using the same keys as GET /search.",
    response_model=SearchResponse,
)
async def search_post(request: Request):
    # bodies without a usable content-length are measured after reading
    if _declared_too_large(request) or len(await request.body()) > MAX_BODY_SIZE:
        return JSONResponse(status_code=413, content={"detail": "request too large"})

    return await _search(request, await _read_body(request))
