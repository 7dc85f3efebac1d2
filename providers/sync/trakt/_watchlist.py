# /providers/sync/trakt/_watchlist.py
# MediaSync - Trakt watchlist read/add/remove
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from ms_platform.media import NormalizedStatus
from ms_platform.models import WatchlistItem
from ms_platform.timeutil import parse_datetime, utcnow

from ._common import TraktClient, _log, body_size, build_body, parse_media

URL_ALL = "sync/watchlist"
URL_REMOVE = "sync/watchlist/remove"


def fetch(client: TraktClient) -> list[WatchlistItem]:
    rows = client.get(URL_ALL, "watchlist", {"sort": "added,asc"})
    out: list[WatchlistItem] = []
    skipped = 0
    for row in rows if isinstance(rows, list) else []:
        parsed = parse_media(row)
        if parsed is None:
            skipped += 1
            continue
        mt, ids, title, year = parsed
        out.append(
            WatchlistItem(
                imdb_id=ids.imdb_id or "",
                title=title,
                year=year,
                date_added=parse_datetime(row.get("listed_at")) or utcnow(),
                media_type=mt,
                source="trakt",
                status=NormalizedStatus.WATCHLIST,
                ids=ids,
            )
        )
    _log("watchlist", "info", "fetched", count=len(out), skipped=skipped or None)
    return out


def add(client: TraktClient, items: Sequence[WatchlistItem]) -> dict[str, Any]:
    body = build_body(items)
    if not body:
        return {}
    res = client.post(URL_ALL, "watchlist:add", body)
    _log("watchlist", "info", "added", sent=body_size(body), not_found=_not_found(res))
    return res


def remove(client: TraktClient, items: Sequence[WatchlistItem]) -> dict[str, Any]:
    body = build_body(items)
    if not body:
        return {}
    res = client.post(URL_REMOVE, "watchlist:remove", body)
    _log("watchlist", "info", "removed", sent=body_size(body), not_found=_not_found(res))
    return res


def _not_found(res: Any) -> int | None:
    nf = (res or {}).get("not_found") if isinstance(res, dict) else None
    if not isinstance(nf, dict):
        return None
    n = sum(len(v) for v in nf.values() if isinstance(v, list))
    return n or None
