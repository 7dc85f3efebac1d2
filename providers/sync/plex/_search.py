# /providers/sync/plex/_search.py
# MediaSync - Plex id lookup: local library first, then Discover search
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Callable, Mapping

from plexapi.exceptions import BadRequest, NotFound

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType

from .._mod_base import ModuleError
from ._common import PlexContext, _log, ids_from_discover, ids_from_item

LOOKUP_PRIORITY = 50
URL_SEARCH = "library/search"


def _search_rows(payload: Any) -> list[Mapping[str, Any]]:
    mc = (payload or {}).get("MediaContainer") or {} if isinstance(payload, Mapping) else {}
    rows: list[Mapping[str, Any]] = []
    for group in mc.get("SearchResults") or []:
        for hit in (group or {}).get("SearchResult") or []:
            meta = (hit or {}).get("Metadata")
            if isinstance(meta, Mapping):
                rows.append(meta)
    rows.extend(m for m in (mc.get("Metadata") or []) if isinstance(m, Mapping))
    return rows


def discover_search(ctx: PlexContext, title: str, year: int | None, media_type: MediaType) -> list[MediaIds]:
    if media_type.is_episode or not (title or "").strip():
        return []
    params = {
        "query": title.strip(),
        "limit": 10,
        "searchTypes": "movies" if media_type.is_movie else "tv",
        "searchProviders": "discover",
        "includeMetadata": 1,
    }
    try:
        payload = ctx.discover("GET", URL_SEARCH, "discover:search", params)
    except ModuleError as e:
        _log("search", "warn", "discover search failed", title=title, error=str(e))
        return []
    want = "movie" if media_type.is_movie else "show"
    hits = [ids_from_discover(r) for r in _search_rows(payload) if str(r.get("type") or "") == want]
    if year is not None:
        hits.sort(key=lambda h: 0 if h.year == year else 1)
    return hits


def library_search(ctx: PlexContext, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
    if media_type.is_episode or not (title or "").strip():
        return None
    libtype = "movie" if media_type.is_movie else "show"
    want = title.strip().lower()
    for section in ctx.sections((libtype,)):
        try:
            hits = section.search(title=title, libtype=libtype)
        except (NotFound, BadRequest) as e:
            _log("search", "debug", "library search failed", section=getattr(section, "title", None), error=str(e))
            continue
        for it in hits:
            if str(getattr(it, "title", "")).strip().lower() != want:
                continue
            if year is not None and getattr(it, "year", None) not in (None, year):
                continue
            ids = ids_from_item(it)
            if not ids.is_empty():
                return ids
    return None


class PlexLookup:
    def __init__(self, ctx_of: Callable[[], PlexContext | None]):
        self._ctx_of = ctx_of

    def provider_name(self) -> str:
        return "plex"

    def priority(self) -> int:
        return LOOKUP_PRIORITY

    def is_available(self) -> bool:
        return self._ctx_of() is not None

    def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        ctx = self._ctx_of()
        if ctx is None:
            return None
        local = library_search(ctx, title, year, media_type)
        remote = next(iter(discover_search(ctx, title, year, media_type)), None)
        if local is None:
            return remote
        # local and Discover describe the same title; keep local first
        local.merge(remote)
        return local

    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        ctx = self._ctx_of()
        if ctx is None or ctx.server is None:
            return None
        kind = "movie" if media_type.is_movie else "show"
        for section in ctx.sections((kind,)):
            try:
                it = section.getGuid(f"imdb://{imdb_id}")
            except (NotFound, BadRequest):
                continue
            if it is not None:
                ids = ids_from_item(it)
                return str(getattr(it, "title", "") or ""), getattr(it, "year", None), ids
        return None
