import sys
from pathlib import Path

import httpx
import pytest

# Allow `import favifetch` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
ICO_BYTES = b"\x00\x00\x01\x00" + b"\x01" * 28


@pytest.fixture(autouse=True)
def _block_real_network(monkeypatch):
    """Tests must never reach the real network; use httpx.MockTransport."""

    async def _blocked(*_args, **_kwargs):
        raise AssertionError("real HTTP request attempted during tests")

    monkeypatch.setattr(httpx.AsyncHTTPTransport, "handle_async_request", _blocked)


def image(body: bytes = PNG_BYTES, content_type: str = "image/png") -> httpx.Response:
    return httpx.Response(200, content=body, headers={"content-type": content_type})


def page(html: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, text=html, headers={"content-type": "text/html; charset=utf-8"})


def not_found() -> httpx.Response:
    return httpx.Response(404, text="nope", headers={"content-type": "text/html"})
