import asyncio
import threading
from pathlib import Path

import httpx
import pytest

from conftest import ICO_BYTES, PNG_BYTES, image, page
from favifetch.cache_sqlite import ResolutionCache
from favifetch.errors import HTMLParseFailure, InvalidImageData, TransportError
from favifetch.fetch import HTML_ACCEPT, IMAGE_ACCEPT, IconFetcher


def _fetcher(handler, cache=None, **kw) -> IconFetcher:
    return IconFetcher(cache if cache is not None else ResolutionCache(None), transport=httpx.MockTransport(handler), **kw)


@pytest.mark.asyncio
async def test_second_identical_fetch_is_served_from_cache():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return image(ICO_BYTES, "image/x-icon")

    fetcher = _fetcher(handler)
    try:
        first = await fetcher.fetch_image("https://example.com/favicon.ico")
        second = await fetcher.fetch_image("https://example.com/favicon.ico")
    finally:
        await fetcher.aclose()

    assert first == second == ICO_BYTES
    assert calls == ["https://example.com/favicon.ico"]
    assert fetcher.network_requests == 1


@pytest.mark.asyncio
async def test_disk_cache_hit_needs_no_network(tmp_path: Path):
    db = tmp_path / "cache.sqlite"
    warm = _fetcher(lambda request: image(), cache=ResolutionCache(db))
    await warm.fetch_image("https://example.com/favicon.png")
    await warm.aclose()
    warm.cache.close()

    def handler(request):
        raise AssertionError("should be served from disk cache")

    cold = _fetcher(handler, cache=ResolutionCache(db))
    try:
        assert await cold.fetch_image("https://example.com/favicon.png") == PNG_BYTES
    finally:
        await cold.aclose()
        cold.cache.close()


@pytest.mark.asyncio
async def test_requests_carry_browser_headers():
    seen = {}

    def handler(request):
        seen[request.url.path] = (request.headers["accept"], request.headers["user-agent"])
        if request.url.path == "/":
            return page("<html></html>")
        return image()

    fetcher = _fetcher(handler, user_agent="Mozilla/5.0 test")
    try:
        await fetcher.fetch_page("https://example.com/")
        await fetcher.fetch_image("https://example.com/i.png")
    finally:
        await fetcher.aclose()

    assert seen["/"] == (HTML_ACCEPT, "Mozilla/5.0 test")
    assert seen["/i.png"] == (IMAGE_ACCEPT, "Mozilla/5.0 test")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, content=PNG_BYTES, headers={"content-type": "image/png"}),
        httpx.Response(200, content=b"", headers={"content-type": "image/png"}),
        httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"}),
        httpx.Response(200, content=PNG_BYTES),
    ],
)
async def test_non_image_responses_are_rejected_and_not_cached(response):
    fetcher = _fetcher(lambda request: response)
    try:
        with pytest.raises(InvalidImageData):
            await fetcher.fetch_image("https://example.com/favicon.ico")
    finally:
        await fetcher.aclose()
    assert len(fetcher.cache) == 0


@pytest.mark.asyncio
async def test_content_type_parameters_are_ignored():
    fetcher = _fetcher(lambda request: image(PNG_BYTES, "IMAGE/PNG; charset=binary"))
    try:
        assert await fetcher.fetch_image("https://example.com/a.png") == PNG_BYTES
    finally:
        await fetcher.aclose()


@pytest.mark.asyncio
async def test_transport_failures_are_wrapped():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    fetcher = _fetcher(handler)
    try:
        with pytest.raises(TransportError) as info:
            await fetcher.fetch_image("https://down.example/favicon.ico")
    finally:
        await fetcher.aclose()
    assert isinstance(info.value.cause, httpx.ConnectError)


@pytest.mark.asyncio
async def test_fetch_page_returns_final_url_after_redirect():
    def handler(request):
        if request.url.host == "example.com":
            return httpx.Response(301, headers={"location": "https://www.example.com/home"})
        return page('<link rel="icon" href="/i.png">')

    fetcher = _fetcher(handler)
    try:
        text, final_url = await fetcher.fetch_page("https://example.com")
    finally:
        await fetcher.aclose()
    assert "rel=\"icon\"" in text
    assert final_url == "https://www.example.com/home"


@pytest.mark.asyncio
async def test_undecodable_page_raises_html_parse_failure():
    body = b"\xff\xfe\xfa not utf-8"
    fetcher = _fetcher(lambda request: httpx.Response(200, content=body, headers={"content-type": "text/html"}))
    try:
        with pytest.raises(HTMLParseFailure):
            await fetcher.fetch_page("https://example.com/")
    finally:
        await fetcher.aclose()


@pytest.mark.asyncio
async def test_declared_charset_is_honoured():
    body = '<link rel="icon" href="/café.ico">'.encode("latin-1")
    fetcher = _fetcher(
        lambda request: httpx.Response(200, content=body, headers={"content-type": "text/html; charset=ISO-8859-1"})
    )
    try:
        text, _ = await fetcher.fetch_page("https://example.com/")
    finally:
        await fetcher.aclose()
    assert "café" in text


@pytest.mark.asyncio
async def test_invalidated_fetcher_refuses_requests():
    fetcher = _fetcher(lambda request: image())
    await fetcher.fetch_image("https://example.com/a.png")
    fetcher.invalidate()
    with pytest.raises(TransportError):
        await fetcher.fetch_image("https://example.com/b.png")
    await fetcher.aclose()


@pytest.mark.asyncio
async def test_injected_empty_cache_is_the_one_used(tmp_path: Path):
    cache = ResolutionCache(tmp_path / "cache.sqlite")
    assert len(cache) == 0
    fetcher = _fetcher(lambda request: image(), cache=cache)
    try:
        await fetcher.fetch_image("https://example.com/favicon.png")
    finally:
        await fetcher.aclose()
    assert fetcher.cache is cache
    assert len(cache) == 1
    cache.close()


class _ThreadRecordingCache(ResolutionCache):
    def __init__(self):
        super().__init__(None)
        self.threads = []

    def get(self, key):
        self.threads.append(threading.get_ident())
        return super().get(key)

    def put(self, entry):
        self.threads.append(threading.get_ident())
        super().put(entry)


@pytest.mark.asyncio
async def test_cache_lookups_run_off_the_event_loop_thread():
    cache = _ThreadRecordingCache()

    def handler(request):
        if request.url.path == "/":
            return page("<html></html>")
        return image()

    fetcher = _fetcher(handler, cache=cache)
    try:
        await fetcher.fetch_image("https://example.com/favicon.png")
        await fetcher.fetch_page("https://example.com/")
    finally:
        await fetcher.aclose()

    assert len(cache.threads) == 4
    assert threading.get_ident() not in cache.threads


@pytest.mark.asyncio
async def test_invalidate_on_loop_keeps_the_close_task():
    fetcher = _fetcher(lambda request: image())
    await fetcher.fetch_image("https://example.com/a.png")
    fetcher.invalidate()
    closing = fetcher._closing
    assert isinstance(closing, asyncio.Task)
    await fetcher.aclose()
    assert closing.done()
    assert fetcher._closing is None
