from __future__ import annotations

from typing import Optional

_SIGNATURES = (
    (b"\x00\x00\x01\x00", "ico"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"BM", "bmp"),
)

EXTENSIONS = {
    "ico": ".ico",
    "png": ".png",
    "gif": ".gif",
    "jpeg": ".jpg",
    "bmp": ".bmp",
    "webp": ".webp",
    "svg": ".svg",
}


def sniff_image_type(data: bytes) -> Optional[str]:
    if not data:
        return None
    for magic, kind in _SIGNATURES:
        if data.startswith(magic):
            return kind
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    head = data[:512].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "svg"
    return None


def extension_for(data: bytes) -> str:
    return EXTENSIONS.get(sniff_image_type(data) or "", ".ico")
