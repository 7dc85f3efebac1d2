# /providers/sync/plex/_watchlist.py
# MediaSync - Plex Discover watchlist (read, add, remove)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Mapping, Sequence

from ms_platform.media import NormalizedStatus
from ms_platform.models import WatchlistItem
from ms_platform.timeutil import utcnow

from .._mod_base import ModuleError
from ._common import PlexContext, _log, discover_key, ids_from_discover, library_find, media_type_of, plex_time
from ._search import discover_search

URL_WATCHLIST = "library/sections/watchlist/all"
URL_ADD = "actions/addToWatchlist"
URL_REMOVE = "actions/removeFromWatchlist"


def _with_guids(ctx: PlexContext, row: Mapping[str, Any]) -> Mapping[str, Any]:
    """List rows may omit Guid; the metadata endpoint always has them."""
    if row.get("Guid") or not row.get("ratingKey"):
        return row
    try:
        mc = (ctx.discover("GET", f"library/metadata/{row['ratingKey']}", "discover:metadata") or {}).get("MediaContainer") or {}
    except ModuleError as e:
        _log("watchlist", "warn", "metadata fetch failed", rating_key=row.get("ratingKey"), error=str(e))
        return row
    meta = mc.get("Metadata") or []
    return {**row, **meta[0]} if meta and isinstance(meta[0], Mapping) else row


def fetch(ctx: PlexContext) -> list[WatchlistItem]:
    out: list[WatchlistItem] = []
    for row in ctx.discover_pages(URL_WATCHLIST, "watchlist:index", {"includeGuids": 1}):
        row = _with_guids(ctx, row)
        ids = ids_from_discover(row)
        added = plex_time(row.get("watchlistedAt")) or plex_time(row.get("addedAt")) or utcnow()
        out.append(
            WatchlistItem(
                imdb_id=ids.imdb_id or "",
                title=str(row.get("title") or ""),
                year=row.get("year"),
                date_added=added,
                media_type=media_type_of(row.get("type")),
                source="plex",
                status=NormalizedStatus.WATCHLIST,
                ids=ids,
            )
        )
    _log("watchlist", "info", "fetched", count=len(out))
    return out


def resolve_rating_key(ctx: PlexContext, item: WatchlistItem) -> str | None:
    """Discover ratingKey: cached id, then the local library guid, then a Discover search."""
    ids = item.bundle()
    if ids.plex_rating_key and not str(ids.plex_rating_key).isdigit():
        return str(ids.plex_rating_key)
    local = library_find(ctx, ids, item.media_type)
    rk = discover_key(getattr(local, "guid", None)) if local is not None else None
    if rk:
        return rk
    for hit in discover_search(ctx, item.title, item.year, item.media_type):
        if hit.plex_rating_key and (hit.imdb_id == ids.imdb_id or not ids.imdb_id):
            return hit.plex_rating_key
    return None


def _act(ctx: PlexContext, path: str, what: str, items: Sequence[WatchlistItem]) -> int:
    done = missing = 0
    for it in items:
        if it.media_type.is_episode:
            continue
        rk = resolve_rating_key(ctx, it)
        if not rk:
            missing += 1
            continue
        ctx.discover("PUT", path, what, {"ratingKey": rk})
        done += 1
    if missing:
        _log("watchlist", "warn", "items without a Discover key skipped", count=missing, action=what)
    return done


def add(ctx: PlexContext, items: Sequence[WatchlistItem]) -> int:
    n = _act(ctx, URL_ADD, "watchlist:add", items)
    _log("watchlist", "info", "added", count=n)
    return n


def remove(ctx: PlexContext, items: Sequence[WatchlistItem]) -> int:
    n = _act(ctx, URL_REMOVE, "watchlist:remove", items)
    _log("watchlist", "info", "removed", count=n)
    return n
