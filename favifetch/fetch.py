from __future__ import annotations

import asyncio
import concurrent.futures
import time
from typing import Dict, Optional, Tuple, Union

import httpx

from .cache_sqlite import ResolutionCache, request_key
from .errors import HTMLParseFailure, InvalidImageData, TransportError
from .log import get_logger
from .model import CachedResponse

log = get_logger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,*/*;q=0.8"
IMAGE_ACCEPT = "image/*,*/*;q=0.8"
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15"


def _mime_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return "utf-8"


def decode_html(body: bytes, content_type: str, *, url: str) -> str:
    try:
        return body.decode(_charset(content_type))
    except (UnicodeDecodeError, LookupError) as e:
        raise HTMLParseFailure(url, str(e)) from e


class IconFetcher:
    """Cached HTTP GETs for pages and icon images.

    The underlying `httpx.AsyncClient` is created on first use and bound to
    the event loop that created it. `invalidate()` may be called from any
    thread; `aclose()` must run on that loop.
    """

    def __init__(
        self,
        cache: ResolutionCache,
        *,
        timeout_s: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._invalidated = False
        self._closing: Optional[Union[asyncio.Future, concurrent.futures.Future]] = None
        self.network_requests = 0

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    def _headers(self, accept: str) -> Dict[str, str]:
        return {"Accept": accept, "User-Agent": self.user_agent}

    def _session(self, url: str) -> httpx.AsyncClient:
        if self._invalidated:
            raise TransportError(url)
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(self.timeout_s, connect=self.timeout_s),
                transport=self._transport,
            )
            self._loop = asyncio.get_running_loop()
        return self._client

    @staticmethod
    def _entry(key: str, r: httpx.Response, content_type: str) -> CachedResponse:
        return CachedResponse(
            request_key=key,
            url=str(r.url),
            body=r.content,
            content_type=content_type,
            stored_at=time.time(),
        )

    async def _get(self, url: str, headers: Dict[str, str]) -> httpx.Response:
        client = self._session(url)
        self.network_requests += 1
        try:
            return await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(url, e) from e
        except RuntimeError as e:
            # httpx refuses requests on a client closed by invalidate().
            if self._invalidated:
                raise TransportError(url, e) from e
            raise

    async def fetch_image(self, url: str) -> bytes:
        headers = self._headers(IMAGE_ACCEPT)
        key = request_key("GET", url, headers)
        cached = await asyncio.to_thread(self.cache.get, key)
        if cached is not None and cached.body:
            log.debug("Cache hit for %s", url)
            return cached.body

        r = await self._get(url, headers)
        content_type = r.headers.get("content-type", "")
        if r.status_code != 200:
            raise InvalidImageData(url, f"HTTP {r.status_code}")
        if not r.content:
            raise InvalidImageData(url, "empty body")
        if not _mime_type(content_type).startswith("image/"):
            raise InvalidImageData(url, f"content-type {content_type or '<none>'}")

        await asyncio.to_thread(self.cache.put, self._entry(key, r, content_type))
        return r.content

    async def fetch_page(self, url: str) -> Tuple[str, str]:
        """Fetch HTML at `url`; returns `(text, final_url)`."""
        headers = self._headers(HTML_ACCEPT)
        key = request_key("GET", url, headers)
        cached = await asyncio.to_thread(self.cache.get, key)
        if cached is not None and cached.body:
            log.debug("Cache hit for page %s", url)
            return decode_html(cached.body, cached.content_type, url=url), cached.url

        r = await self._get(url, headers)
        content_type = r.headers.get("content-type", "")
        text = decode_html(r.content, content_type, url=url)
        if r.status_code == 200 and r.content:
            await asyncio.to_thread(self.cache.put, self._entry(key, r, content_type))
        return text, str(r.url)

    def invalidate(self) -> None:
        """Refuse further requests and schedule the session for closing."""
        self._invalidated = True
        client, loop = self._client, self._loop
        if client is None or loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._closing = loop.create_task(client.aclose())
        else:
            try:
                self._closing = asyncio.run_coroutine_threadsafe(client.aclose(), loop)
            except RuntimeError:
                log.debug("Event loop already stopped; HTTP session left to the garbage collector")

    async def aclose(self) -> None:
        self._invalidated = True
        if self._closing is not None:
            await asyncio.wrap_future(self._closing)
            self._closing = None
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
