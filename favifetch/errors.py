from __future__ import annotations

from typing import Optional


class FaviconError(Exception):
    """Base class for every failure raised while resolving an icon."""


class InvalidURL(FaviconError):
    def __init__(self, url: str, reason: str = "invalid URL"):
        super().__init__(f"{reason}: {url!r}")
        self.url = url


class TransportError(FaviconError):
    def __init__(self, url: str, cause: Optional[BaseException] = None):
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "session closed"
        super().__init__(f"network error for {url}: {detail}")
        self.url = url
        self.cause = cause


class NoIconFound(FaviconError):
    def __init__(self, url: str):
        super().__init__(f"no favicon found for {url}")
        self.url = url


class InvalidImageData(FaviconError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"invalid image data from {url}: {reason}")
        self.url = url
        self.reason = reason


class HTMLParseFailure(FaviconError):
    def __init__(self, url: str, reason: str = "body is not decodable text"):
        super().__init__(f"failed to parse HTML from {url}: {reason}")
        self.url = url
