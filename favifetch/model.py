from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable


@dataclass(frozen=True)
class FetchTarget:
    """One `(id, url)` pair submitted for icon resolution.

    `id` is an opaque correlation key owned by the caller.
    """

    id: Hashable
    url: str


@dataclass(frozen=True)
class IconResolvedEvent:
    id: Hashable
    image_bytes: bytes


@dataclass
class CachedResponse:
    request_key: str
    url: str
    body: bytes
    content_type: str
    stored_at: float

    @property
    def size(self) -> int:
        return len(self.body)
