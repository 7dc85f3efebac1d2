# /ms_platform/id_map.py
# Identifier bundle shared by every record.
# - Normalize/clean IDs from Trakt, Simkl, Plex GUIDs and IMDb exports.
# - Fill-only merge (a set primary ID is never replaced).
# - Keys for joins and dedup ("tt…", "trakt:N", "simkl:N", ...).
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping

from .media import MediaType

__all__ = [
    "ID_FIELDS",
    "MediaIds",
    "ids_from_guid",
    "match_by_any_id",
    "normalize_id",
]

# (field, key prefix) in lookup priority order; imdb is the bare primary key.
ID_FIELDS: tuple[tuple[str, str], ...] = (
    ("imdb_id", ""),
    ("trakt_id", "trakt"),
    ("simkl_id", "simkl"),
    ("tmdb_id", "tmdb"),
    ("tvdb_id", "tvdb"),
    ("slug", "slug"),
    ("plex_rating_key", "plex"),
)
_NUMERIC = {"trakt_id", "simkl_id", "tmdb_id", "tvdb_id"}
_META_FIELDS = ("title", "year", "media_type", "show_title", "episode_title", "original_air_date")

_CLEAN_SENTINELS = {"none", "null", "nan", "undefined", "unknown", "0", ""}


def _norm_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def normalize_id(key: str, val: Any) -> str | int | None:
    """Normalize one provider ID so values from different services compare equal."""
    k = (key or "").lower().strip().removesuffix("_id")
    s = _norm_str(val)
    if not s or s.lower() in _CLEAN_SENTINELS:
        return None
    if k in ("tmdb", "tvdb", "trakt", "simkl"):
        digits = re.sub(r"\D+", "", s)
        return int(digits) if digits else None
    if k == "imdb":
        m = re.search(r"(tt\d+)", s.lower())
        if m:
            return m.group(1)
        digits = re.sub(r"\D+", "", s)
        return f"tt{digits}" if digits else None
    if k == "slug":
        return s.strip("/").lower()
    return s


# Plex returns many GUID spellings in <Guid id="...">
_GUID_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"com\.plexapp\.agents\.imdb://(?P<v>tt\d+)", re.I), "imdb"),
    (re.compile(r"com\.plexapp\.agents\.themoviedb://(?P<v>\d+)", re.I), "tmdb"),
    (re.compile(r"com\.plexapp\.agents\.thetvdb://(?P<v>\d+)", re.I), "tvdb"),
    (re.compile(r"imdb://(?:title/)?(?P<v>tt\d+)", re.I), "imdb"),
    (re.compile(r"tmdb://(?:(?:movie|show|tv)/)?(?P<v>\d+)", re.I), "tmdb"),
    (re.compile(r"tvdb://(?:(?:series|show|tv)/)?(?P<v>\d+)", re.I), "tvdb"),
)


def ids_from_guid(guid: str | None) -> dict[str, str | int]:
    out: dict[str, str | int] = {}
    g = _norm_str(guid)
    if not g:
        return out
    for rx, label in _GUID_PATTERNS:
        m = rx.search(g)
        if not m or label in out:
            continue
        norm = normalize_id(label, m.group("v"))
        if norm is not None:
            out[label] = norm
    return out


@dataclass
class MediaIds:
    imdb_id: str | None = None
    trakt_id: int | None = None
    simkl_id: int | None = None
    tmdb_id: int | None = None
    tvdb_id: int | None = None
    slug: str | None = None
    plex_rating_key: str | None = None
    title: str | None = None
    year: int | None = None
    media_type: MediaType | None = None
    show_title: str | None = None
    episode_title: str | None = None
    original_air_date: str | None = None

    # --- construction --------------------------------------------------------

    @classmethod
    def from_ids(cls, ids: Mapping[str, Any] | None, **meta: Any) -> "MediaIds":
        """Build from a provider `ids` object ({"imdb": ..., "tmdb": ..., "trakt": ...})."""
        out = cls(**{k: v for k, v in meta.items() if v is not None})
        if not isinstance(ids, Mapping):
            return out
        for key, val in ids.items():
            k = str(key).lower()
            if k in ("imdb", "trakt", "simkl", "tmdb", "tvdb"):
                setattr(out, f"{k}_id", normalize_id(k, val))
            elif k == "slug":
                out.slug = normalize_id("slug", val)  # type: ignore[assignment]
            elif k in ("plex", "ratingkey", "rating_key"):
                out.plex_rating_key = _norm_str(val)
        return out

    @classmethod
    def from_guids(cls, guids: Iterable[str], **meta: Any) -> "MediaIds":
        found: dict[str, Any] = {}
        for g in guids or ():
            for k, v in ids_from_guid(g).items():
                found.setdefault(k, v)
        return cls.from_ids(found, **meta)

    # --- predicates ----------------------------------------------------------

    def is_empty(self) -> bool:
        return all(getattr(self, f) in (None, "") for f, _ in ID_FIELDS)

    def get_any_id(self) -> str | None:
        if self.imdb_id:
            return self.imdb_id
        for f, prefix in ID_FIELDS[1:5]:
            v = getattr(self, f)
            if v is not None:
                return f"{prefix}:{v}"
        return self.slug or None

    def all_keys(self) -> list[str]:
        keys: list[str] = []
        for f, prefix in ID_FIELDS:
            v = getattr(self, f)
            if v in (None, ""):
                continue
            keys.append(str(v) if not prefix else f"{prefix}:{v}")
        return keys

    def get_best_id_for_source(self, source: str) -> str | None:
        s = (source or "").lower()
        if s == "trakt" and self.trakt_id is not None:
            return f"trakt:{self.trakt_id}"
        if s == "simkl" and self.simkl_id is not None:
            return f"simkl:{self.simkl_id}"
        if s == "plex" and self.plex_rating_key:
            return f"plex:{self.plex_rating_key}"
        return self.get_any_id()

    # --- merging -------------------------------------------------------------

    def merge(self, other: "MediaIds | None") -> bool:
        """Fill-only merge; returns True when anything was adopted."""
        if other is None:
            return False
        changed = False
        for f in fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(other, f.name)
            if mine in (None, "") and theirs not in (None, ""):
                setattr(self, f.name, theirs)
                changed = True
        return changed

    def copy(self) -> "MediaIds":
        return MediaIds(**{f.name: getattr(self, f.name) for f in fields(self)})

    # --- wire forms ----------------------------------------------------------

    def to_ids(self) -> dict[str, Any]:
        """Provider-style `ids` object, only set values."""
        out: dict[str, Any] = {}
        if self.imdb_id:
            out["imdb"] = self.imdb_id
        for f, prefix in (("trakt_id", "trakt"), ("simkl_id", "simkl"), ("tmdb_id", "tmdb"), ("tvdb_id", "tvdb")):
            v = getattr(self, f)
            if v is not None:
                out[prefix] = int(v)
        if self.slug:
            out["slug"] = self.slug
        return out

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if v in (None, ""):
                continue
            out[f.name] = v.to_json() if isinstance(v, MediaType) else v
        return out

    @classmethod
    def from_dict(cls, d: Mapping[str, Any] | None) -> "MediaIds":
        out = cls()
        if not isinstance(d, Mapping):
            return out
        for f in fields(out):
            if f.name not in d or d[f.name] in (None, ""):
                continue
            v = d[f.name]
            if f.name == "media_type":
                v = MediaType.from_json(v)
            elif f.name in _NUMERIC or f.name == "year":
                try:
                    v = int(v)
                except (TypeError, ValueError):
                    continue
            setattr(out, f.name, v)
        return out


def match_by_any_id(a: MediaIds | None, b: MediaIds | None) -> bool:
    if a is None or b is None:
        return False
    for f, _ in ID_FIELDS:
        va = getattr(a, f)
        vb = getattr(b, f)
        if va not in (None, "") and va == vb:
            return True
    return False
