from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

from .candidates import DEFAULT_FALLBACK_SERVICE, fallback_service_candidates, standard_location_candidates
from .errors import FaviconError, NoIconFound, TransportError
from .fetch import IconFetcher
from .html_icons import extract_icon_link
from .log import get_logger
from .url_norm import host_of, normalize_target_url, with_www

log = get_logger(__name__)

# Transport failures worth one more page fetch against the www. host.
_WWW_RETRY_CAUSES = (httpx.UnsupportedProtocol, httpx.ConnectError)


class StrategyChain:
    """HTML declaration -> well-known paths -> fallback lookup service.

    Every strategy failure is logged and falls through to the next one; only
    total exhaustion surfaces, as NoIconFound. Cancellation is never caught.
    """

    def __init__(
        self,
        fetcher: IconFetcher,
        *,
        fallback_service_url: str = DEFAULT_FALLBACK_SERVICE,
        fallback_icon_size: int = 64,
        fallback_public_suffix_only: bool = True,
    ):
        self.fetcher = fetcher
        self.fallback_service_url = fallback_service_url
        self.fallback_icon_size = fallback_icon_size
        self.fallback_public_suffix_only = fallback_public_suffix_only

    @property
    def strategies(self) -> List[Callable[[str], Awaitable[Optional[bytes]]]]:
        return [self.try_html, self.try_standard_locations, self.try_fallback_service]

    async def resolve_icon(self, url: str) -> bytes:
        target = normalize_target_url(url)
        for strategy in self.strategies:
            try:
                data = await strategy(target)
            except FaviconError as e:
                log.debug("%s failed for %s: %s", strategy.__name__, target, e)
                continue
            if data:
                log.debug("%s resolved icon for %s (%d bytes)", strategy.__name__, target, len(data))
                return data
        raise NoIconFound(target)

    async def try_html(self, url: str) -> Optional[bytes]:
        try:
            html, final_url = await self.fetcher.fetch_page(url)
        except TransportError as e:
            if not isinstance(e.cause, _WWW_RETRY_CAUSES) or host_of(url).startswith("www."):
                raise
            log.debug("Retrying page fetch for %s with www. host", url)
            html, final_url = await self.fetcher.fetch_page(with_www(url))

        icon_url = extract_icon_link(html, final_url)
        if icon_url is None:
            log.debug("No icon link declared in %s", final_url)
            return None
        return await self.fetcher.fetch_image(icon_url)

    async def try_standard_locations(self, url: str) -> Optional[bytes]:
        return await self._first_image(standard_location_candidates(url))

    async def try_fallback_service(self, url: str) -> Optional[bytes]:
        candidates = fallback_service_candidates(
            url,
            service_url=self.fallback_service_url,
            size=self.fallback_icon_size,
            public_suffix_only=self.fallback_public_suffix_only,
        )
        return await self._first_image(candidates)

    async def _first_image(self, candidates: Sequence[str]) -> Optional[bytes]:
        for candidate in candidates:
            try:
                return await self.fetcher.fetch_image(candidate)
            except FaviconError as e:
                log.debug("Candidate %s rejected: %s", candidate, e)
        return None
