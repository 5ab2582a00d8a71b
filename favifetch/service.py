from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, Optional, Set

import httpx

from .cache_sqlite import ResolutionCache
from .config import Settings
from .errors import FaviconError
from .events import IconEventChannel
from .fetch import IconFetcher
from .log import get_logger
from .model import FetchTarget, IconResolvedEvent
from .strategy import StrategyChain
from .tasks import TaskManager

log = get_logger(__name__)

_BATCH_DONE = object()


class FaviconService:
    """Owns the HTTP session, resolution cache, task registry and event channel.

    Use as `async with FaviconService(settings) as svc:` or call `aclose()`;
    `shutdown()` is the synchronous variant for termination hooks running
    outside the event loop.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        cache: Optional[ResolutionCache] = None,
        cache_path: Path | str | None = None,
        recreate_cache: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        events: Optional[IconEventChannel] = None,
    ):
        self.settings = settings if settings is not None else Settings()
        s = self.settings
        if cache is None:
            cache = ResolutionCache(
                cache_path if cache_path is not None else s.resolved_cache_path(),
                memory_capacity=s.memory_cache_bytes,
                disk_capacity=s.disk_cache_bytes,
                recreate=recreate_cache,
            )
        self.cache = cache
        self.fetcher = IconFetcher(
            cache,
            timeout_s=s.request_timeout_s,
            user_agent=s.user_agent,
            transport=transport,
        )
        self.chain = StrategyChain(
            self.fetcher,
            fallback_service_url=s.fallback_service_url,
            fallback_icon_size=s.fallback_icon_size,
            fallback_public_suffix_only=s.fallback_public_suffix_only,
        )
        self.tasks = TaskManager(shutdown_wait_s=s.shutdown_wait_s)
        self.events = events if events is not None else IconEventChannel()
        self.max_concurrent = max(1, int(s.max_concurrent))

    async def __aenter__(self) -> "FaviconService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def resolve(self, url: str) -> bytes:
        """Resolve one icon; raises NoIconFound (or InvalidURL) on failure."""
        return await self.chain.resolve_icon(url)

    async def refresh(self, targets: Iterable[FetchTarget]) -> int:
        """Resolve a batch, publishing events only; returns the resolved count."""
        resolved = 0

        def _count(_event: IconResolvedEvent) -> None:
            nonlocal resolved
            resolved += 1

        targets = list(targets)
        await self._run_batch(targets, _count)
        log.info("Resolved %d/%d favicon(s)", resolved, len(targets))
        return resolved

    async def resolve_batch(self, targets: Iterable[FetchTarget]) -> AsyncIterator[IconResolvedEvent]:
        """Yield events for this batch as jobs succeed (also published on `events`)."""
        queue: asyncio.Queue = asyncio.Queue()

        async def _drive() -> None:
            try:
                await self._run_batch(targets, queue.put_nowait)
            finally:
                queue.put_nowait(_BATCH_DONE)

        runner = asyncio.ensure_future(_drive())
        try:
            while True:
                item = await queue.get()
                if item is _BATCH_DONE:
                    break
                yield item
            await runner
        finally:
            if not runner.done():
                # Consumer stopped early: take this batch's own jobs down with it.
                runner.cancel()
                await asyncio.wait([runner])

    async def _run_batch(
        self,
        targets: Iterable[FetchTarget],
        deliver: Callable[[IconResolvedEvent], None],
    ) -> None:
        pending: Set[asyncio.Task] = set()
        stagger = self.settings.batch_stagger_s
        try:
            for target in targets:
                if len(pending) >= self.max_concurrent:
                    _done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if stagger > 0:
                    await asyncio.sleep(stagger)
                task = self.tasks.submit(self._job(target, deliver))
                if task is None:
                    log.debug("Shutdown in progress; not admitting remaining targets")
                    break
                pending.add(task)
            if pending:
                await asyncio.wait(pending)
        except asyncio.CancelledError:
            pending = {t for t in pending if not t.done()}
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.wait(pending, timeout=self.tasks.shutdown_wait_s)
            raise

    async def _job(self, target: FetchTarget, deliver: Callable[[IconResolvedEvent], None]) -> None:
        try:
            data = await self.chain.resolve_icon(target.url)
        except FaviconError as e:
            log.debug("No icon for %r (%s): %s", target.id, target.url, e)
            return
        event = IconResolvedEvent(id=target.id, image_bytes=data)

        def _emit() -> None:
            self.events.publish(event)
            deliver(event)

        self.tasks.run_unless_shutting_down(_emit)

    def shutdown(self) -> bool:
        """Cancel all jobs and invalidate the session, bounded by `shutdown_wait_s`."""
        acknowledged = self.tasks.shutdown_and_cancel_all()
        self.fetcher.invalidate()
        self.cache.close()
        return acknowledged

    async def aclose(self) -> None:
        await self.tasks.aclose()
        await self.fetcher.aclose()
        self.cache.close()
