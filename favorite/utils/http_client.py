import asyncio
from typing import Optional

import aiohttp

from favorite.core.errors import ExtractionFailure, ExtractionFailureKind
from favorite.core.models import settings


class HttpClientManager:
    def __init__(self):
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def init(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session

        async with self._lock:
            if self._session and not self._session.closed:
                return self._session

            timeout = aiohttp.ClientTimeout(total=settings.HTTP_CLIENT_TIMEOUT_TOTAL)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "User-Agent": settings.HTTP_CLIENT_USER_AGENT,
                    "Accept-Language": "en-US,en;q=0.9",
                },
            )
            return self._session

    async def get_session(self) -> aiohttp.ClientSession:
        return await self.init()

    async def fetch_text(self, url: str) -> str:
        session = await self.get_session()
        try:
            async with session.get(url) as response:
                response.raise_for_status()
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExtractionFailure(
                ExtractionFailureKind.FETCH_ERROR, f"{url}: {e!r}"
            ) from e

    async def close(self) -> None:
        async with self._lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None


http_client_manager = HttpClientManager()
