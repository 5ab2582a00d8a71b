from __future__ import annotations

import html as html_lib
import re
from typing import List, Optional
from urllib.parse import urljoin

# Explicit icon links outweigh generic apple-touch / mask icons.
_ICON_LINK_PATTERNS: List[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"""<link[^>]+rel=["'](?:shortcut )?icon["'][^>]+href=["'](?P<url>[^"']+)["']""",
        r"""<link[^>]+href=["'](?P<url>[^"']+)["'][^>]+rel=["'](?:shortcut )?icon["']""",
        r"""<link[^>]+rel=["']apple-touch-icon["'][^>]+href=["'](?P<url>[^"']+)["']""",
        r"""<link[^>]+rel=["']icon["'][^>]+href=["'](?P<url>[^"']+)["']""",
        r"""<link[^>]+rel=["']mask-icon["'][^>]+href=["'](?P<url>[^"']+)["']""",
    )
]


def extract_icon_link(html: str, base_url: str) -> Optional[str]:
    """Find the best icon link declared in `html` and make it absolute.

    Single-pass, non-validating scan: the first pattern with a match decides.
    `data:` URIs yield None since there is nothing to fetch.
    """
    if not html:
        return None
    for pattern in _ICON_LINK_PATTERNS:
        m = pattern.search(html)
        if not m:
            continue
        return _absolute_icon_url(m.group("url"), base_url)
    return None


def _absolute_icon_url(href: str, base_url: str) -> Optional[str]:
    cleaned = html_lib.unescape(href).strip()
    if not cleaned or cleaned.lower().startswith("data:"):
        return None
    if cleaned.lower().startswith("http"):
        return cleaned
    if cleaned.startswith("//"):
        return "https:" + cleaned
    return urljoin(base_url, cleaned)
