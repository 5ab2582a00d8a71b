from __future__ import annotations

import string
from typing import List
from urllib.parse import urlparse

import tldextract  # type: ignore

from .errors import InvalidURL

# Bundled public suffix snapshot only; never fetch the list over the network.
_TLD = tldextract.TLDExtract(suffix_list_urls=())


def normalize_target_url(url: str) -> str:
    """Return `url` with a scheme, prefixing `https://` when it has none.

    Raises InvalidURL when no host can be recovered.
    """
    raw = (url or "").strip()
    if not raw:
        raise InvalidURL(url, "empty URL")
    if "://" not in raw:
        raw = "https://" + raw.lstrip("/")
    try:
        p = urlparse(raw)
        host = p.hostname
    except ValueError as e:
        raise InvalidURL(url, str(e)) from e
    if not p.scheme or not host:
        raise InvalidURL(url, "no host")
    return raw


def host_of(url: str) -> str:
    return (urlparse(normalize_target_url(url)).hostname or "").lower()


def with_www(url: str) -> str:
    """Same URL with `www.` prefixed to its host (unchanged if already there)."""
    p = urlparse(url)
    host = p.hostname or ""
    if not host or host.startswith("www."):
        return url
    userinfo, sep, hostport = p.netloc.rpartition("@")
    return p._replace(netloc=f"{userinfo}{sep}www.{hostport}").geturl()


def host_variants(host: str) -> List[str]:
    """`www.`-prefixed form first, then the bare host."""
    if host.startswith("www."):
        return [host, host[4:]]
    return ["www." + host, host]


def clean_host(host: str) -> str:
    h = host.strip()
    for prefix in ("http://", "https://"):
        if h.lower().startswith(prefix):
            h = h[len(prefix):]
    return h.strip(string.punctuation + string.whitespace)


def has_public_suffix(host: str) -> bool:
    ext = _TLD(host)
    return bool(ext.domain and ext.suffix)
