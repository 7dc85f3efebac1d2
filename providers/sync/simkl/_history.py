# /providers/sync/simkl/_history.py
# MediaSync - Simkl watch history (items carrying last_watched_at)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from ms_platform.models import WatchHistory
from ms_platform.timeutil import format_datetime, parse_datetime

from ._common import SimklClient, _log, body_size, build_body, iter_rows, media_ids

URL_HISTORY = "sync/history"


def parse(payload: Any) -> list[WatchHistory]:
    out: list[WatchHistory] = []
    for row, node, mt in iter_rows(payload):
        when = parse_datetime(row.get("last_watched_at"))
        if when is None:
            continue
        ids = media_ids(node, mt)
        if ids.is_empty():
            continue
        out.append(
            WatchHistory(
                imdb_id=ids.imdb_id or "",
                watched_at=when,
                media_type=mt,
                source="simkl",
                title=node.get("title"),
                year=node.get("year"),
                ids=ids,
            )
        )
    _log("history", "info", "parsed", count=len(out))
    return out


def add(client: SimklClient, items: Sequence[WatchHistory]) -> int:
    skipped = sum(1 for h in items if h.media_type.is_episode)
    if skipped:
        _log("history", "debug", "episode entries skipped", count=skipped)
    body = build_body(items, lambda h: {"watched_at": format_datetime(h.watched_at)})
    if not body:
        return 0
    client.post(URL_HISTORY, "history:add", body)
    n = body_size(body)
    _log("history", "info", "added", count=n)
    return n
