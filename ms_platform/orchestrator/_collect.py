# /ms_platform/orchestrator/_collect.py
# MediaSync - collection fan-out, identifier pass and rating normalization
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Mapping, Sequence

from providers.sync._log import log as _plog
from providers.sync._mod_base import Capability

from ..cache import CacheManager
from ..id_resolver import IdResolver
from ..models import DATA_TYPES, ExcludedItem, Rating, WatchHistory
from ._handles import AdapterHandle
from ._types import ErrorBuffer, SourceData

__all__ = ["enabled_data_types", "collect_all", "id_pass", "normalize_ratings"]

_FLAGS = {
    "watchlist": "sync_watchlist",
    "ratings": "sync_ratings",
    "reviews": "sync_reviews",
    "watch_history": "sync_watch_history",
}


def _log(source: str, level: str, msg: str, **fields: Any) -> None:
    _plog("collect", source, level, msg, **fields)


def enabled_data_types(cfg: Mapping[str, Any]) -> list[str]:
    s = dict(cfg.get("sync") or {})
    return [dt for dt in DATA_TYPES if bool(s.get(_FLAGS[dt], True))]


def _collect_one(
    handle: AdapterHandle,
    data_types: Sequence[str],
    cache: CacheManager | None,
    errors: ErrorBuffer,
    use_cache: bool,
) -> SourceData:
    data = SourceData()
    if use_cache and cache is not None:
        for dt in data_types:
            data.set(dt, cache.load_collect(handle.name, dt))
        _log(handle.name, "info", "loaded from collect cache", **data.counts())
        return data

    def _read(dt: str) -> tuple[str, list[Any]]:
        try:
            return dt, handle.read(dt)
        except Exception as e:
            errors.add(f"{handle.name} {dt}", e)
            _log(handle.name, "error", "collect failed", data_type=dt, error=str(e))
            return dt, []

    with ThreadPoolExecutor(max_workers=max(1, len(data_types)), thread_name_prefix=f"ms-{handle.name}") as ex:
        for dt, items in ex.map(_read, data_types):
            data.set(dt, items)
            if cache is not None:
                cache.save_collect(handle.name, dt, items)
    _log(handle.name, "info", "collected", **data.counts())
    return data


def collect_all(
    handles: Sequence[AdapterHandle],
    data_types: Sequence[str],
    *,
    cache: CacheManager | None,
    errors: ErrorBuffer,
    use_cache: Sequence[str] = (),
    max_workers: int = 8,
) -> dict[str, SourceData]:
    """Returns collected data keyed by source, in the order of `handles`."""
    if not handles:
        return {}
    cached = {s.lower() for s in use_cache}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(handles))), thread_name_prefix="ms-collect") as ex:
        futs = [ex.submit(_collect_one, h, data_types, cache, errors, h.name in cached) for h in handles]
        return {h.name: f.result() for h, f in zip(handles, futs)}


# --- identifier pass ---------------------------------------------------------

def _meta(rec: Any) -> tuple[str | None, int | None]:
    ids = rec.ids
    title = getattr(rec, "title", None) or (ids.title if ids else None)
    year = getattr(rec, "year", None)
    if year is None and ids is not None:
        year = ids.year
    return title, year


def _with_meta(rec: Any) -> Any:
    ids = rec.bundle()
    title, year = _meta(rec)
    ids.title = ids.title or title
    ids.year = ids.year if ids.year is not None else year
    ids.media_type = ids.media_type or rec.media_type
    return ids


def id_pass(
    collected: Mapping[str, SourceData],
    resolver: IdResolver,
    cache: CacheManager | None = None,
) -> int:
    """Cache carried ids, enrich from the cache, resolve title-only records. Returns dropped history count."""
    dropped = 0
    for source, data in collected.items():
        for dt in DATA_TYPES:
            kept: list[Any] = []
            excluded: list[ExcludedItem] = []
            for rec in data.get(dt):
                if rec.has_identifier():
                    resolver.cache_ids(_with_meta(rec))
                    rec.enrich(resolver.enrich_from_cache(rec.bundle()))
                    kept.append(rec)
                    continue
                title, year = _meta(rec)
                if title:
                    found, _ = resolver.resolve_ids_for_item(title, year, rec.media_type)
                    rec.enrich(found)
                    kept.append(rec)
                elif isinstance(rec, WatchHistory):
                    excluded.append(ExcludedItem.of(rec, "no identifier or title"))
                else:
                    kept.append(rec)
            if excluded:
                dropped += len(excluded)
                if cache is not None:
                    cache.save_excluded(source, excluded)
                _log(source, "warn", "history entries without ids or title dropped", count=len(excluded))
            data.set(dt, kept)
    resolver.save_if_dirty()
    return dropped


def normalize_ratings(collected: Mapping[str, SourceData], handles: Mapping[str, AdapterHandle]) -> None:
    for source, data in collected.items():
        h = handles.get(source)
        facet = h.capability(Capability.RATING_NORMALIZATION) if h is not None else None
        if facet is None:
            continue
        data.ratings = [_normalized(r, facet) for r in data.ratings]


def _normalized(r: Rating, facet: Any) -> Rating:
    return replace(r, rating=int(facet.normalize(r.rating, 10)))
