# /providers/sync/trakt/_history.py
# MediaSync - Trakt watch history (paged read, chunked add)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Sequence

from ms_platform.models import WatchHistory
from ms_platform.timeutil import parse_datetime

from .._mod_common import chunked
from ._common import PAGE_LIMIT, TraktClient, _log, body_size, build_body, parse_media, stamp

URL_HISTORY = "sync/history"


def fetch(client: TraktClient) -> list[WatchHistory]:
    out: list[WatchHistory] = []
    seen: set[tuple[str, str]] = set()
    for row in client.paged(URL_HISTORY, "history", {"extended": "full"}):
        parsed = parse_media(row)
        when = parse_datetime(row.get("watched_at"))
        if parsed is None or when is None:
            continue
        mt, ids, title, year = parsed
        key = (ids.get_any_id() or title, row.get("watched_at") or "")
        if key in seen:
            continue
        seen.add(key)
        out.append(
            WatchHistory(
                imdb_id=ids.imdb_id or "",
                watched_at=when,
                media_type=mt,
                source="trakt",
                title=title or None,
                year=year,
                ids=ids,
            )
        )
    _log("history", "info", "fetched", count=len(out))
    return out


def add(client: TraktClient, items: Sequence[WatchHistory]) -> int:
    """Movies and episodes only; a show entry would mark every episode watched."""
    shows = sum(1 for h in items if h.media_type.is_show)
    if shows:
        _log("history", "warn", "show entries skipped", count=shows)
    sent = 0
    for batch in chunked(list(items), PAGE_LIMIT):
        body = build_body(batch, stamp("watched_at", "watched_at"), kinds=("movies", "episodes"))
        if not body:
            continue
        client.post(URL_HISTORY, "history:add", body)
        sent += body_size(body)
    _log("history", "info", "added", count=sent)
    return sent
