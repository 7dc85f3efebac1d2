# /providers/sync/trakt/_search.py
# MediaSync - Trakt id lookup (title/year search and imdb reverse lookup)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import re
from typing import Any, Callable

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType

from .._mod_base import ModuleError
from ._common import TraktClient, _log, parse_media

LOOKUP_PRIORITY = 80


def search_title(title: str) -> str:
    """Commas confuse Trakt's text search; collapse them into spaces."""
    return re.sub(r"\s+", " ", title.replace(",", " ")).strip()


def _search_kind(media_type: MediaType) -> str | None:
    if media_type.is_movie:
        return "movie"
    if media_type.is_show:
        return "show"
    return None


def _best(rows: Any, year: int | None) -> tuple[MediaType, MediaIds, str, int | None] | None:
    hits = [p for p in (parse_media(r) for r in rows if isinstance(r, dict)) if p is not None] if isinstance(rows, list) else []
    if not hits:
        return None
    if year is not None:
        for h in hits:
            if h[3] == year:
                return h
    return hits[0]


class TraktLookup:
    """IdLookupProvider backed by /search."""

    def __init__(self, client: TraktClient, available: Callable[[], bool]):
        self.client = client
        self._available = available

    def provider_name(self) -> str:
        return "trakt"

    def priority(self) -> int:
        return LOOKUP_PRIORITY

    def is_available(self) -> bool:
        return bool(self._available())

    def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        kind = _search_kind(media_type)
        q = search_title(title or "")
        if kind is None or not q:
            return None
        params: dict[str, Any] = {"query": q}
        if year:
            params["year"] = int(year)
        try:
            rows = self.client.get(f"search/{kind}", "search", params)
        except ModuleError as e:
            _log("search", "warn", "title search failed", title=title, error=str(e))
            return None
        hit = _best(rows, year)
        if hit is None:
            _log("search", "debug", "no match", title=title, year=year)
            return None
        return hit[1] if not hit[1].is_empty() else None

    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        kind = _search_kind(media_type) or "movie"
        try:
            rows = self.client.get(f"search/imdb/{imdb_id}", "search", {"type": kind})
        except ModuleError as e:
            _log("search", "warn", "imdb lookup failed", imdb_id=imdb_id, error=str(e))
            return None
        hit = _best(rows, None)
        if hit is None:
            return None
        _mt, ids, title, year = hit
        return title, year, ids
