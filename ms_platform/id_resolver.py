# /ms_platform/id_resolver.py
# MediaSync - title/year -> cross-service ids, fanned out over lookup providers
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Sequence

from providers.sync._log import log as _plog
from providers.sync._mod_base import IdLookupProvider, atomic_write_json, read_json_or

from .id_cache import IdCache, title_key
from .id_map import MediaIds
from .media import MediaType

__all__ = ["IdResolver", "COOLDOWN_SECONDS"]

COOLDOWN_SECONDS = 7 * 24 * 3600
_STOP = object()


def _log(level: str, msg: str, **fields: Any) -> None:
    _plog("resolver", "ids", level, msg, **fields)


class IdResolver:
    """
    First provider (by priority) answers synchronously; the rest enrich the cache
    in the background through a queue drained by one worker thread.
    """

    def __init__(
        self,
        cache: IdCache,
        providers: Sequence[IdLookupProvider] = (),
        *,
        cooldown_path: Path | None = None,
        max_workers: int = 4,
        clock: Any = time.time,
    ):
        self.cache = cache
        self._providers: list[IdLookupProvider] = list(providers)
        self._cooldown_path = cooldown_path
        self._clock = clock
        self._cool_lock = threading.Lock()
        self._cooldown: dict[str, float] = {}
        self._cool_dirty = False
        if cooldown_path is not None:
            raw = read_json_or(cooldown_path, {})
            if isinstance(raw, dict):
                self._cooldown = {str(k): float(v) for k, v in raw.items() if isinstance(v, (int, float))}

        self._workers = max(1, int(max_workers))
        self._pool = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="ms-idlookup")
        self.stream: "queue.Queue[Any]" = queue.Queue()
        self._drainer = threading.Thread(target=self._drain, name="ms-iddrain", daemon=True)
        self._drainer.start()
        self._closed = False

    # --- providers -----------------------------------------------------------

    def add_provider(self, provider: IdLookupProvider) -> None:
        self._providers.append(provider)

    def providers(self) -> list[IdLookupProvider]:
        live: list[IdLookupProvider] = []
        for p in self._providers:
            try:
                if p.is_available():
                    live.append(p)
            except Exception as e:
                _log("warn", "provider availability check failed", provider=_name(p), error=str(e))
        # stable: equal priorities keep registration order
        return sorted(live, key=lambda p: -int(p.priority()))

    # --- cooldown ------------------------------------------------------------

    @staticmethod
    def _cool_key(provider: str, title: str, year: int | None, media_type: MediaType) -> str:
        return f"{provider}|{title_key(title, year, media_type)}"

    def _cooling(self, key: str) -> bool:
        with self._cool_lock:
            ts = self._cooldown.get(key)
            if ts is None:
                return False
            if self._clock() - ts >= COOLDOWN_SECONDS:
                self._cooldown.pop(key, None)
                self._cool_dirty = True
                return False
            return True

    def _mark_miss(self, key: str) -> None:
        with self._cool_lock:
            self._cooldown[key] = float(self._clock())
            self._cool_dirty = True

    # --- lookups -------------------------------------------------------------

    def _query(self, provider: IdLookupProvider, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        key = self._cool_key(_name(provider), title, year, media_type)
        try:
            found = provider.lookup_ids(title, year, media_type)
        except Exception as e:
            _log("warn", "lookup failed", provider=_name(provider), title=title, year=year, error=str(e))
            return None
        if found is None or found.is_empty():
            self._mark_miss(key)
            _log("debug", "lookup miss", provider=_name(provider), title=title, year=year)
            return None
        if not found.title:
            found.title = title
        if found.year is None:
            found.year = year
        if found.media_type is None:
            found.media_type = media_type
        return found

    def resolve_ids_for_item(
        self, title: str, year: int | None, media_type: MediaType
    ) -> tuple[MediaIds | None, "queue.Queue[Any]"]:
        hit = self.cache.find_by_title_year(title, year, media_type)
        if hit is not None and not hit.is_empty():
            return hit, self.stream

        todo = [
            p for p in self.providers()
            if not self._cooling(self._cool_key(_name(p), title, year, media_type))
        ]
        result: MediaIds | None = None
        while todo and result is None:
            p = todo.pop(0)
            result = self._query(p, title, year, media_type)
            if result is not None:
                self.cache.insert(result)
                _log("debug", "resolved", provider=_name(p), title=title, year=year, key=result.get_any_id())

        if result is not None and not self._closed:
            for p in todo:
                self._pool.submit(self._background, p, title, year, media_type)
        return result, self.stream

    def _background(self, provider: IdLookupProvider, title: str, year: int | None, media_type: MediaType) -> None:
        found = self._query(provider, title, year, media_type)
        if found is not None:
            self.stream.put(found)

    def _drain(self) -> None:
        while True:
            item = self.stream.get()
            try:
                if item is _STOP:
                    return
                self.cache.insert(item)
            except Exception as e:
                _log("warn", "background merge failed", error=str(e))
            finally:
                self.stream.task_done()

    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        hit = self.cache.find_by_imdb(imdb_id)
        if hit is not None and hit.title:
            return hit.title, hit.year, hit
        for p in self.providers():
            try:
                found = p.lookup_by_imdb_id(imdb_id, media_type)
            except Exception as e:
                _log("warn", "imdb lookup failed", provider=_name(p), imdb=imdb_id, error=str(e))
                continue
            if found is None:
                continue
            title, year, ids = found
            ids.imdb_id = ids.imdb_id or imdb_id
            ids.title = ids.title or title
            ids.year = ids.year if ids.year is not None else year
            self.cache.insert(ids)
            return title, year, ids
        return None

    # --- cache passthroughs --------------------------------------------------

    def find_by_any_id(self, key: str | None) -> MediaIds | None:
        return self.cache.find_by_any_id(key)

    def cache_ids(self, ids: MediaIds | None) -> bool:
        return self.cache.insert(ids)

    def enrich_from_cache(self, ids: MediaIds | None) -> MediaIds | None:
        if ids is None:
            return None
        for key in ids.all_keys():
            hit = self.cache.find_by_any_id(key)
            if hit is not None:
                out = ids.copy()
                out.merge(hit)
                return out
        return ids

    # --- lifecycle -----------------------------------------------------------

    def wait(self) -> None:
        """Block until every background lookup has been merged."""
        self._pool.shutdown(wait=True)
        self.stream.join()
        self._pool = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="ms-idlookup")

    def save_if_dirty(self) -> None:
        self.cache.save_if_dirty()
        with self._cool_lock:
            if not self._cool_dirty or self._cooldown_path is None:
                return
            atomic_write_json(self._cooldown_path, dict(self._cooldown))
            self._cool_dirty = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=True)
        self.stream.join()
        self.stream.put(_STOP)
        self._drainer.join(timeout=5)
        self.save_if_dirty()


def _name(p: Any) -> str:
    try:
        return str(p.provider_name())
    except Exception:
        return type(p).__name__
