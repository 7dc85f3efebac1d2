# /providers/sync/simkl/_watchlist.py
# MediaSync - Simkl lists (plantowatch/watching/completed/hold/dropped)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from ms_platform.models import WatchlistItem
from ms_platform.timeutil import parse_datetime, utcnow

from .._mod_base import StatusMappingConfig
from ._activities import Window
from ._common import SimklClient, _log, body_size, build_body, iter_rows, media_ids

URL_ALL_ITEMS = "sync/all-items/"
URL_ADD = "sync/add-to-list"
URL_REMOVE = "sync/history/remove"
DEFAULT_LIST = "plantowatch"


def fetch_all_items(client: SimklClient, window: Window) -> Any:
    if not window.changed:
        return {}
    params = {"extended": "full"}
    if window.date_from:
        params["date_from"] = window.date_from
    return client.get(URL_ALL_ITEMS, "all-items", params)


def parse(payload: Any, status_map: StatusMappingConfig) -> list[WatchlistItem]:
    out: list[WatchlistItem] = []
    for row, node, mt in iter_rows(payload):
        ids = media_ids(node, mt)
        if ids.is_empty():
            continue
        out.append(
            WatchlistItem(
                imdb_id=ids.imdb_id or "",
                title=str(node.get("title") or ""),
                year=node.get("year"),
                date_added=parse_datetime(row.get("added_to_watchlist_at")) or utcnow(),
                media_type=mt,
                source="simkl",
                status=status_map.normalize(row.get("status")),
                ids=ids,
            )
        )
    _log("watchlist", "info", "parsed", count=len(out))
    return out


def add(client: SimklClient, items: Sequence[WatchlistItem], status_map: StatusMappingConfig) -> int:
    """Each item lands on the list its normalized status maps to."""
    body = build_body(items, lambda it: {"to": status_map.native(it.status, DEFAULT_LIST) or DEFAULT_LIST})
    if not body:
        return 0
    client.post(URL_ADD, "watchlist:add", body)
    n = body_size(body)
    _log("watchlist", "info", "added", count=n)
    return n


def remove(client: SimklClient, items: Sequence[WatchlistItem]) -> int:
    body = build_body(items)
    if not body:
        return 0
    client.post(URL_REMOVE, "watchlist:remove", body)
    n = body_size(body)
    _log("watchlist", "info", "removed", count=n)
    return n
