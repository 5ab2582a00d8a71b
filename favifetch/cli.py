from __future__ import annotations

import argparse
import asyncio
import re
import time
from pathlib import Path
from typing import List

from . import __version__
from .cache_sqlite import ResolutionCache
from .config import Settings, load_settings
from .errors import InvalidURL, NoIconFound
from .log import LogConfig, get_logger, setup_logging
from .model import FetchTarget, IconResolvedEvent
from .service import FaviconService
from .sniff import extension_for, sniff_image_type

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="favifetch",
        description="Best-effort favicon resolution for bookmarks (HTML, well-known paths, lookup service).",
    )
    p.add_argument("-V", "--version", action="version", version=f"favifetch {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    res = sub.add_parser("resolve", help="Resolve the icon for a single URL.")
    res.add_argument("url", help="Site URL (scheme optional).")
    res.add_argument("--out", default=None, help="Write icon bytes to this path.")
    res.add_argument("--skip-cache", action="store_true", help="Recreate the resolution cache before running.")

    ref = sub.add_parser("refresh", help="Resolve icons for a list of bookmarks with bounded concurrency.")
    ref.add_argument("--targets", required=True, help="Text file: one 'id url' (or bare url) per line.")
    ref.add_argument("--out-dir", required=True, help="Directory receiving <id><ext> icon files.")
    ref.add_argument("--skip-cache", action="store_true", help="Recreate the resolution cache before running.")

    sub.add_parser("cache-clear", help="Drop every cached response.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color, library_level=cfg.library_log_level))

    if args.cmd == "resolve":
        return _cmd_resolve(args, cfg)
    if args.cmd == "refresh":
        return _cmd_refresh(args, cfg)
    if args.cmd == "cache-clear":
        return _cmd_cache_clear(cfg)
    return 2


def _cmd_resolve(args, cfg: Settings) -> int:
    async def _run() -> bytes:
        async with FaviconService(cfg, recreate_cache=args.skip_cache) as svc:
            return await svc.resolve(args.url)

    try:
        data = asyncio.run(_run())
    except InvalidURL as e:
        log.error("%s", e)
        return 2
    except NoIconFound as e:
        log.warning("%s", e)
        return 1

    kind = sniff_image_type(data) or "unknown"
    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(data)
        log.info("Wrote %d byte %s icon to %s", len(data), kind, out)
    else:
        print(f"{args.url}\t{kind}\t{len(data)} bytes")
    return 0


def _cmd_refresh(args, cfg: Settings) -> int:
    t0 = time.time()
    targets_path = Path(args.targets)
    if not targets_path.exists():
        log.error("Targets file not found: %s", targets_path)
        return 2
    targets = parse_targets(targets_path.read_text(encoding="utf-8"))
    if not targets:
        log.warning("No targets in %s", targets_path)
        return 0

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    def _write(event: IconResolvedEvent) -> None:
        dest = out_dir / (_safe_name(event.id) + extension_for(event.image_bytes))
        dest.write_bytes(event.image_bytes)
        log.debug("Wrote %s", dest)

    async def _run() -> int:
        async with FaviconService(cfg, recreate_cache=args.skip_cache) as svc:
            svc.events.subscribe(_write)
            return await svc.refresh(targets)

    log.info("Refreshing %d favicon(s) (max_concurrent=%d)...", len(targets), cfg.max_concurrent)
    try:
        resolved = asyncio.run(_run())
    except KeyboardInterrupt:
        log.warning("Interrupted; in-flight jobs cancelled.")
        return 130
    log.info("Done: %d/%d resolved in %d ms.", resolved, len(targets), int((time.time() - t0) * 1000))
    return 0


def _cmd_cache_clear(cfg: Settings) -> int:
    path = cfg.resolved_cache_path()
    with ResolutionCache(path, memory_capacity=0, disk_capacity=cfg.disk_cache_bytes) as cache:
        n = len(cache)
        cache.clear()
    log.info("Cleared %d cached response(s) from %s", n, path)
    return 0


def parse_targets(text: str) -> List[FetchTarget]:
    out: List[FetchTarget] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) == 1:
            out.append(FetchTarget(id=parts[0], url=parts[0]))
        else:
            out.append(FetchTarget(id=parts[0], url=parts[1].strip()))
    return out


def _safe_name(target_id) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", str(target_id)).strip("._") or "icon"
