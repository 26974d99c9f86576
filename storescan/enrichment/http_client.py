"""HTTP client for store catalog APIs and artwork downloads."""
import asyncio
import logging
import ssl
from typing import Optional

import aiohttp
import certifi

from ..utils.settings import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class StoreHttpError(Exception):
    """Non-success HTTP status from a store endpoint."""

    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status} for {url}")
        self.url = url
        self.status = status


class StoreHttpClient:
    """
    Thin aiohttp wrapper shared by every enricher of one scan.

    The session is created lazily and must be closed with ``close()`` (or by
    using the client as an async context manager).
    """

    def __init__(self, timeout: float = 15.0, user_agent: str = DEFAULT_USER_AGENT,
                 max_retries: int = 2, backoff_factor: float = 1.0):
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context, limit_per_host=5)
            self.session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": self.user_agent}
            )
        return self.session

    async def get_bytes(self, url: str) -> bytes:
        """
        GET a URL and return the body.

        Rate limiting (429) is retried with exponential backoff; any other
        non-200 status raises StoreHttpError.
        """
        session = await self._get_session()

        for attempt in range(self.max_retries + 1):
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                if resp.status == 200:
                    return await resp.read()
                if resp.status == 429 and attempt < self.max_retries:
                    wait_time = self.backoff_factor * (2 ** attempt)
                    logger.debug(f"[HTTP] Rate limited on {url}, backing off {wait_time}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise StoreHttpError(url, resp.status)

        raise StoreHttpError(url, 429)

    async def get_text(self, url: str) -> str:
        body = await self.get_bytes(url)
        return body.decode("utf-8", errors="replace")

    async def close(self):
        """Close the session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
