# /providers/sync/simkl/_search.py
# MediaSync - Simkl id lookup (/search/{movie|tv}, /search/id)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Callable, Mapping

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType

from .._mod_base import ModuleError
from ._common import SimklClient, _log, media_ids

LOOKUP_PRIORITY = 70


def _kind(media_type: MediaType) -> str | None:
    if media_type.is_movie:
        return "movie"
    if media_type.is_show:
        return "tv"
    return None


def _pick(rows: Any, year: int | None) -> Mapping[str, Any] | None:
    hits = [r for r in rows if isinstance(r, Mapping)] if isinstance(rows, list) else []
    if not hits:
        return None
    if year is not None:
        for r in hits:
            if r.get("year") == year:
                return r
    return hits[0]


class SimklLookup:
    def __init__(self, client: SimklClient, available: Callable[[], bool]):
        self.client = client
        self._available = available

    def provider_name(self) -> str:
        return "simkl"

    def priority(self) -> int:
        return LOOKUP_PRIORITY

    def is_available(self) -> bool:
        return bool(self._available())

    def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        kind = _kind(media_type)
        if kind is None or not (title or "").strip():
            return None
        try:
            rows = self.client.get(f"search/{kind}", "search", {"q": title.strip(), "extended": "full"})
        except ModuleError as e:
            _log("search", "warn", "title search failed", title=title, error=str(e))
            return None
        hit = _pick(rows, year)
        if hit is None:
            return None
        ids = media_ids(hit, media_type)
        return None if ids.is_empty() else ids

    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        try:
            rows = self.client.get("search/id", "search", {"imdb": imdb_id})
        except ModuleError as e:
            _log("search", "warn", "imdb lookup failed", imdb_id=imdb_id, error=str(e))
            return None
        hit = _pick(rows, None)
        if hit is None:
            return None
        ids = media_ids(hit, media_type)
        if not ids.imdb_id:
            ids.imdb_id = imdb_id
        return str(hit.get("title") or ""), hit.get("year"), ids
