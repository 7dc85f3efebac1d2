# /providers/sync/plex/_history.py
# MediaSync - Plex server play history (read) and markPlayed (write)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from plexapi.exceptions import BadRequest, NotFound

from ms_platform.id_map import MediaIds
from ms_platform.models import WatchHistory

from ._common import PlexContext, _log, ids_from_item, library_find, media_type_of, plex_time


def _title_of(entry: Any) -> str | None:
    show = getattr(entry, "grandparentTitle", None)
    title = getattr(entry, "title", None)
    if getattr(entry, "type", None) == "episode" and show:
        return f"{show}: {title}" if title else show
    return title


def fetch(ctx: PlexContext, *, account_id: int | None = None) -> list[WatchHistory]:
    if ctx.server is None:
        _log("history", "info", "no server bound; history skipped")
        return []
    kw: dict[str, Any] = {"maxresults": None}
    if account_id is not None:
        kw["accountID"] = account_id
    resolved: dict[str, MediaIds | None] = {}
    out: list[WatchHistory] = []
    gone = 0
    for entry in ctx.server.history(**kw):
        kind = getattr(entry, "type", None)
        if kind not in ("movie", "episode"):
            continue
        when = plex_time(getattr(entry, "viewedAt", None))
        if when is None:
            continue
        rk = str(getattr(entry, "ratingKey", "") or "")
        if rk and rk not in resolved:
            try:
                resolved[rk] = ids_from_item(ctx.server.fetchItem(int(rk)))
            except (NotFound, BadRequest, ValueError):
                resolved[rk] = None
                gone += 1
        ids = resolved.get(rk)
        mt = media_type_of(kind, getattr(entry, "parentIndex", None), getattr(entry, "index", None))
        if ids is None:
            # item left the library; title-only entries are resolved in the id pass
            ids = MediaIds(title=_title_of(entry), media_type=mt, show_title=getattr(entry, "grandparentTitle", None))
        out.append(
            WatchHistory(
                imdb_id=ids.imdb_id or "",
                watched_at=when,
                media_type=mt,
                source="plex",
                title=_title_of(entry),
                year=getattr(entry, "year", None) or ids.year,
                ids=ids,
            )
        )
    _log("history", "info", "fetched", count=len(out), missing_items=gone or None)
    return out


def add(ctx: PlexContext, items: Sequence[WatchHistory]) -> int:
    done = missing = 0
    for h in items:
        if h.media_type.is_show:
            continue
        item = library_find(ctx, h.bundle(), h.media_type)
        if item is None:
            missing += 1
            continue
        if getattr(item, "isPlayed", False):
            continue
        try:
            item.markPlayed()
        except (NotFound, BadRequest) as e:
            _log("history", "warn", "markPlayed failed", title=getattr(item, "title", None), error=str(e))
            continue
        done += 1
    if missing:
        _log("history", "info", "history for titles not in the library skipped", count=missing)
    _log("history", "info", "marked played", count=done)
    return done
