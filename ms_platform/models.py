# /ms_platform/models.py
# MediaSync - canonical records exchanged between adapters and the pipeline
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from .id_map import MediaIds, match_by_any_id
from .media import MediaType, NormalizedStatus, RatingSource
from .timeutil import format_datetime, parse_datetime, utcnow

__all__ = [
    "MediaType",
    "NormalizedStatus",
    "RatingSource",
    "MediaIds",
    "WatchlistItem",
    "Rating",
    "Review",
    "WatchHistory",
    "ExcludedItem",
    "DATA_TYPES",
    "record_from_dict",
]

DATA_TYPES: tuple[str, ...] = ("watchlist", "ratings", "reviews", "watch_history")


class _Keyed:
    """Identity helpers shared by every record (needs `imdb_id` and `ids`)."""

    imdb_id: str
    ids: MediaIds | None

    def bundle(self) -> MediaIds:
        ids = self.ids.copy() if self.ids else MediaIds()
        if self.imdb_id and not ids.imdb_id:
            ids.imdb_id = self.imdb_id
        return ids

    def has_identifier(self) -> bool:
        return bool(self.imdb_id) or (self.ids is not None and not self.ids.is_empty())

    def primary_key(self) -> str | None:
        if self.imdb_id:
            return self.imdb_id
        return self.ids.get_any_id() if self.ids else None

    def keys(self) -> set[str]:
        return set(self.bundle().all_keys())

    def same_item(self, other: "_Keyed") -> bool:
        if self.imdb_id and other.imdb_id and self.imdb_id == other.imdb_id:
            return True
        return match_by_any_id(self.ids, other.ids)

    def enrich(self, ids: MediaIds | None) -> None:
        if ids is None:
            return
        if self.ids is None:
            self.ids = ids.copy()
        else:
            self.ids.merge(ids)
        if not self.imdb_id and self.ids.imdb_id:
            self.imdb_id = self.ids.imdb_id


def _ids_to_dict(ids: MediaIds | None) -> dict[str, Any] | None:
    return ids.to_dict() if ids is not None else None


def _ids_from(d: Mapping[str, Any]) -> MediaIds | None:
    raw = d.get("ids")
    return MediaIds.from_dict(raw) if isinstance(raw, Mapping) else None


def _int_or_none(v: Any) -> int | None:
    try:
        return int(v) if v not in (None, "") else None
    except (TypeError, ValueError):
        return None


@dataclass
class WatchlistItem(_Keyed):
    imdb_id: str
    title: str
    year: int | None = None
    date_added: datetime = field(default_factory=utcnow)
    media_type: MediaType = field(default_factory=MediaType.movie)
    source: str = ""
    status: NormalizedStatus | None = None
    ids: MediaIds | None = None

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    def to_dict(self) -> dict[str, Any]:
        return {
            "imdb_id": self.imdb_id,
            "title": self.title,
            "year": self.year,
            "date_added": format_datetime(self.date_added),
            "media_type": self.media_type.to_json(),
            "source": self.source,
            "status": self.status.value if self.status else None,
            "ids": _ids_to_dict(self.ids),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "WatchlistItem":
        return cls(
            imdb_id=str(d.get("imdb_id") or ""),
            title=str(d.get("title") or ""),
            year=_int_or_none(d.get("year")),
            date_added=parse_datetime(d.get("date_added")) or utcnow(),
            media_type=MediaType.from_json(d.get("media_type")),
            source=str(d.get("source") or ""),
            status=NormalizedStatus.parse(d.get("status")),
            ids=_ids_from(d),
        )


@dataclass
class Rating(_Keyed):
    imdb_id: str
    rating: int
    date_added: datetime = field(default_factory=utcnow)
    media_type: MediaType = field(default_factory=MediaType.movie)
    source: RatingSource = RatingSource.TRAKT
    ids: MediaIds | None = None

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    @property
    def source_tag(self) -> str:
        return self.source.value

    @property
    def title(self) -> str | None:
        return self.ids.title if self.ids else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "imdb_id": self.imdb_id,
            "rating": self.rating,
            "date_added": format_datetime(self.date_added),
            "media_type": self.media_type.to_json(),
            "source": self.source.value,
            "ids": _ids_to_dict(self.ids),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Rating":
        return cls(
            imdb_id=str(d.get("imdb_id") or ""),
            rating=int(d.get("rating") or 0),
            date_added=parse_datetime(d.get("date_added")) or utcnow(),
            media_type=MediaType.from_json(d.get("media_type")),
            source=RatingSource.parse(d.get("source") or "trakt"),
            ids=_ids_from(d),
        )


@dataclass
class Review(_Keyed):
    imdb_id: str
    content: str
    date_added: datetime = field(default_factory=utcnow)
    media_type: MediaType = field(default_factory=MediaType.movie)
    source: str = ""
    is_spoiler: bool = False
    ids: MediaIds | None = None
    title: str | None = None
    year: int | None = None

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    def to_dict(self) -> dict[str, Any]:
        return {
            "imdb_id": self.imdb_id,
            "content": self.content,
            "date_added": format_datetime(self.date_added),
            "media_type": self.media_type.to_json(),
            "source": self.source,
            "is_spoiler": self.is_spoiler,
            "ids": _ids_to_dict(self.ids),
            "title": self.title,
            "year": self.year,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Review":
        return cls(
            imdb_id=str(d.get("imdb_id") or ""),
            content=str(d.get("content") or ""),
            date_added=parse_datetime(d.get("date_added")) or utcnow(),
            media_type=MediaType.from_json(d.get("media_type")),
            source=str(d.get("source") or ""),
            is_spoiler=bool(d.get("is_spoiler")),
            ids=_ids_from(d),
            title=d.get("title"),
            year=_int_or_none(d.get("year")),
        )


@dataclass
class WatchHistory(_Keyed):
    imdb_id: str
    watched_at: datetime = field(default_factory=utcnow)
    media_type: MediaType = field(default_factory=MediaType.movie)
    source: str = ""
    title: str | None = None
    year: int | None = None
    ids: MediaIds | None = None

    @property
    def timestamp(self) -> datetime:
        return self.watched_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "imdb_id": self.imdb_id,
            "title": self.title,
            "year": self.year,
            "watched_at": format_datetime(self.watched_at),
            "media_type": self.media_type.to_json(),
            "source": self.source,
            "ids": _ids_to_dict(self.ids),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "WatchHistory":
        return cls(
            imdb_id=str(d.get("imdb_id") or ""),
            watched_at=parse_datetime(d.get("watched_at")) or utcnow(),
            media_type=MediaType.from_json(d.get("media_type")),
            source=str(d.get("source") or ""),
            title=d.get("title"),
            year=_int_or_none(d.get("year")),
            ids=_ids_from(d),
        )


@dataclass
class ExcludedItem:
    reason: str
    source: str
    media_type: str = "movie"
    title: str | None = None
    imdb_id: str | None = None
    rating_key: str | None = None
    date_added: datetime | None = None

    @classmethod
    def of(cls, record: Any, reason: str) -> "ExcludedItem":
        ids = getattr(record, "ids", None)
        src = getattr(record, "source", "")
        title = getattr(record, "title", None) or (ids.title if ids else None)
        return cls(
            reason=reason,
            source=src.value if isinstance(src, RatingSource) else str(src or ""),
            media_type=str(getattr(record, "media_type", "movie")),
            title=title,
            imdb_id=getattr(record, "imdb_id", None) or None,
            rating_key=ids.plex_rating_key if ids else None,
            date_added=getattr(record, "date_added", None) if isinstance(record, WatchlistItem) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "imdb_id": self.imdb_id,
            "rating_key": self.rating_key,
            "media_type": self.media_type,
            "reason": self.reason,
            "source": self.source,
            "date_added": format_datetime(self.date_added),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ExcludedItem":
        return cls(
            reason=str(d.get("reason") or ""),
            source=str(d.get("source") or ""),
            media_type=str(d.get("media_type") or "movie"),
            title=d.get("title"),
            imdb_id=d.get("imdb_id"),
            rating_key=d.get("rating_key"),
            date_added=parse_datetime(d.get("date_added")),
        )


_RECORD_TYPES: dict[str, Any] = {
    "watchlist": WatchlistItem,
    "ratings": Rating,
    "reviews": Review,
    "watch_history": WatchHistory,
}


def record_from_dict(data_type: str, d: Mapping[str, Any]) -> Any:
    return _RECORD_TYPES[data_type].from_dict(d)
