# /ms_platform/id_cache.py
# MediaSync - persistent cross-reference cache of identifier bundles
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import gzip
import json
import os
import threading
from pathlib import Path
from typing import Any, Iterable

from providers.sync._log import log as _plog

from .id_map import MediaIds, normalize_id
from .media import MediaType

__all__ = ["IdCache", "CACHE_VERSION", "title_key"]

CACHE_VERSION = 1

# (field, index name) for every id-keyed index
_ID_INDICES: tuple[tuple[str, str], ...] = (
    ("imdb_id", "imdb"),
    ("trakt_id", "trakt"),
    ("simkl_id", "simkl"),
    ("tmdb_id", "tmdb"),
    ("tvdb_id", "tvdb"),
    ("slug", "slug"),
    ("plex_rating_key", "plex"),
)


def _log(level: str, msg: str, **fields: Any) -> None:
    _plog("idcache", "cache", level, msg, **fields)


def _kind(mt: MediaType | None) -> str:
    return mt.kind if mt is not None else "movie"


def title_key(title: str | None, year: int | None, media_type: MediaType | None) -> str | None:
    t = (title or "").lower().strip()
    if not t:
        return None
    return f"{t}|{year if year is not None else ''}|{_kind(media_type)}"


class IdCache:
    """
    Entries are stored once; every index maps a key to the entry number.
    Inserts merge into an existing entry (fill-only) so cross-references only grow.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._lock = threading.RLock()
        self._entries: list[MediaIds] = []
        self._idx: dict[str, dict[Any, int]] = {name: {} for _, name in _ID_INDICES}
        self._by_title_year: dict[str, int] = {}
        self._dirty = False

    # --- size / state --------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            for d in self._idx.values():
                d.clear()
            self._by_title_year.clear()
            self._dirty = True

    # --- lookups -------------------------------------------------------------

    def _get(self, index: str, key: Any) -> MediaIds | None:
        if key in (None, ""):
            return None
        with self._lock:
            pos = self._idx[index].get(key)
            return self._entries[pos].copy() if pos is not None else None

    def find_by_imdb(self, imdb_id: str) -> MediaIds | None:
        return self._get("imdb", normalize_id("imdb", imdb_id))

    def find_by_trakt(self, trakt_id: int) -> MediaIds | None:
        return self._get("trakt", normalize_id("trakt", trakt_id))

    def find_by_simkl(self, simkl_id: int) -> MediaIds | None:
        return self._get("simkl", normalize_id("simkl", simkl_id))

    def find_by_tmdb(self, tmdb_id: int) -> MediaIds | None:
        return self._get("tmdb", normalize_id("tmdb", tmdb_id))

    def find_by_tvdb(self, tvdb_id: int) -> MediaIds | None:
        return self._get("tvdb", normalize_id("tvdb", tvdb_id))

    def find_by_slug(self, slug: str) -> MediaIds | None:
        return self._get("slug", normalize_id("slug", slug))

    def find_by_plex_key(self, rating_key: str) -> MediaIds | None:
        return self._get("plex", str(rating_key) if rating_key not in (None, "") else None)

    def find_by_any_id(self, key: str | None) -> MediaIds | None:
        """Accepts "tt…" or "kind:value" keys as produced by MediaIds.all_keys()."""
        k = (key or "").strip()
        if not k:
            return None
        if k.lower().startswith("tt"):
            return self.find_by_imdb(k)
        kind, _, val = k.partition(":")
        kind = kind.lower()
        if not val:
            return None
        if kind == "imdb":
            return self.find_by_imdb(val)
        if kind in ("trakt", "simkl", "tmdb", "tvdb"):
            return self._get(kind, normalize_id(kind, val))
        if kind == "slug":
            return self.find_by_slug(val)
        if kind == "plex":
            return self.find_by_plex_key(val)
        return None

    def find_by_title_year(self, title: str | None, year: int | None, media_type: MediaType | None) -> MediaIds | None:
        tk = title_key(title, year, media_type)
        if tk is None:
            return None
        with self._lock:
            pos = self._by_title_year.get(tk)
            return self._entries[pos].copy() if pos is not None else None

    # --- writes --------------------------------------------------------------

    def _locate(self, ids: MediaIds) -> int | None:
        for f, name in _ID_INDICES:
            v = getattr(ids, f)
            if v in (None, ""):
                continue
            pos = self._idx[name].get(v)
            if pos is not None:
                return pos
        tk = title_key(ids.title, ids.year, ids.media_type)
        if tk is not None and ids.is_empty():
            return self._by_title_year.get(tk)
        if tk is not None:
            pos = self._by_title_year.get(tk)
            if pos is not None and self._compatible(self._entries[pos], ids):
                return pos
        return None

    @staticmethod
    def _compatible(a: MediaIds, b: MediaIds) -> bool:
        # Same title/year may still be a different item; refuse when any shared id kind disagrees.
        for f, _ in _ID_INDICES:
            va, vb = getattr(a, f), getattr(b, f)
            if va not in (None, "") and vb not in (None, "") and va != vb:
                return False
        return True

    def _index(self, pos: int) -> None:
        e = self._entries[pos]
        for f, name in _ID_INDICES:
            v = getattr(e, f)
            if v not in (None, ""):
                self._idx[name].setdefault(v, pos)
        tk = title_key(e.title, e.year, e.media_type)
        if tk is not None:
            self._by_title_year.setdefault(tk, pos)

    def insert(self, ids: MediaIds | None) -> bool:
        """Add or enrich an entry. Returns True when the cache changed."""
        if ids is None or ids.is_empty():
            return False
        with self._lock:
            pos = self._locate(ids)
            if pos is None:
                self._entries.append(ids.copy())
                pos = len(self._entries) - 1
                changed = True
            else:
                changed = self._entries[pos].merge(ids)
            if changed:
                self._index(pos)
                self._dirty = True
            return changed

    def merge_ids(self, ids: MediaIds | None) -> MediaIds | None:
        """Insert, then hand back the cache's (possibly richer) view of the entry."""
        if ids is None:
            return None
        with self._lock:
            self.insert(ids)
            pos = self._locate(ids)
            if pos is None:
                return ids.copy()
            out = ids.copy()
            out.merge(self._entries[pos])
            return out

    def insert_many(self, items: Iterable[MediaIds]) -> int:
        return sum(1 for ids in items if self.insert(ids))

    def rebuild_title_year_index(self) -> None:
        with self._lock:
            self._by_title_year.clear()
            for pos, e in enumerate(self._entries):
                tk = title_key(e.title, e.year, e.media_type)
                if tk is not None:
                    self._by_title_year.setdefault(tk, pos)

    def entries(self) -> list[MediaIds]:
        with self._lock:
            return [e.copy() for e in self._entries]

    # --- persistence ---------------------------------------------------------

    def _to_payload(self) -> dict[str, Any]:
        return {"version": CACHE_VERSION, "entries": [e.to_dict() for e in self._entries]}

    def save(self, path: Path | None = None) -> None:
        p = path or self.path
        if p is None:
            return
        with self._lock:
            payload = self._to_payload()
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp = p.with_name(p.name + f".{os.getpid()}.tmp")
            with gzip.open(tmp, "wt", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, separators=(",", ":"))
            os.replace(tmp, p)
            self._dirty = False
        _log("debug", "id cache saved", path=str(p), entries=len(payload["entries"]))

    def save_if_dirty(self) -> bool:
        with self._lock:
            if not self._dirty:
                return False
            self.save()
            return True

    def load(self, path: Path | None = None) -> "IdCache":
        p = path or self.path
        if p is None or not p.exists():
            return self
        try:
            with gzip.open(p, "rt", encoding="utf-8") as f:
                payload = json.load(f)
            if not isinstance(payload, dict) or int(payload.get("version") or 0) != CACHE_VERSION:
                raise ValueError(f"incompatible cache version {payload.get('version') if isinstance(payload, dict) else None!r}")
            rows = payload.get("entries") or []
        except (OSError, ValueError, EOFError) as e:
            bak = p.with_name(p.name + ".bak")
            os.replace(p, bak)
            _log("warn", "id cache unreadable; backed up and starting empty", path=str(p), backup=str(bak), error=str(e))
            return self
        with self._lock:
            self.clear()
            for row in rows:
                ids = MediaIds.from_dict(row)
                if not ids.is_empty():
                    self._entries.append(ids)
                    self._index(len(self._entries) - 1)
            self._dirty = False
        _log("debug", "id cache loaded", path=str(p), entries=len(self._entries))
        return self
