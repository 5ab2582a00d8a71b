from __future__ import annotations

from typing import List
from urllib.parse import quote, urlencode

from .url_norm import clean_host, has_public_suffix, host_of, host_variants

WELL_KNOWN_PATHS = (
    "/favicon.ico",
    "/favicon.png",
    "/assets/favicon.ico",
    "/static/favicon.ico",
    "/images/favicon.ico",
)

SCHEMES = ("https", "http")

DEFAULT_FALLBACK_SERVICE = "https://www.google.com/s2/favicons"


def standard_location_candidates(url: str) -> List[str]:
    """Every scheme x host variant x well-known path, https and www. first."""
    host = host_of(url)
    out: List[str] = []
    for scheme in SCHEMES:
        for h in host_variants(host):
            for path in WELL_KNOWN_PATHS:
                out.append(f"{scheme}://{h}{path}")
    return out


def fallback_service_candidates(
    url: str,
    *,
    service_url: str = DEFAULT_FALLBACK_SERVICE,
    size: int = 64,
    public_suffix_only: bool = True,
) -> List[str]:
    """Lookup-service URLs for each host variant.

    With `public_suffix_only`, hosts the service cannot know about (localhost,
    bare IPs, intranet names) yield no candidates.
    """
    host = clean_host(host_of(url))
    if not host or (public_suffix_only and not has_public_suffix(host)):
        return []
    out: List[str] = []
    for domain in host_variants(host):
        query = urlencode({"domain": domain, "sz": size}, quote_via=quote)
        out.append(f"{service_url}?{query}")
    return out
