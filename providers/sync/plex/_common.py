# /providers/sync/plex/_common.py
# MediaSync - Plex shared helpers: Discover REST, GUID ids, library lookups
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

import requests
from plexapi.exceptions import BadRequest, NotFound

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType

from .._log import for_provider
from .._mod_common import raise_for_status, request_with_retries, safe_json

__all__ = [
    "DISCOVER",
    "CLIENT_ID",
    "PlexContext",
    "plex_headers",
    "plex_time",
    "media_type_of",
    "guids_of",
    "ids_from_item",
    "ids_from_discover",
    "discover_key",
    "candidate_guids",
    "library_find",
]

DISCOVER = "https://discover.provider.plex.tv"
CLIENT_ID = f"mediasync-{uuid.uuid4().hex[:8]}"
PAGE_SIZE = 100

_log = for_provider("plex")


def plex_headers(token: str | None, extra: Mapping[str, str] | None = None) -> dict[str, str]:
    h: dict[str, str] = {
        "Accept": "application/json",
        "X-Plex-Product": "MediaSync",
        "X-Plex-Version": "1.0",
        "X-Plex-Client-Identifier": CLIENT_ID,
    }
    if token:
        h["X-Plex-Token"] = token
    if extra:
        h.update({str(k): str(v) for k, v in extra.items()})
    return h


@dataclass
class PlexContext:
    """Everything feature modules need: HTTP session for Discover, plexapi account and server."""

    session: requests.Session
    token: str
    server: Any = None
    account: Any = None
    timeout: float = 10.0
    max_retries: int = 3
    _sections: list[Any] | None = field(default=None, repr=False)

    def discover(self, method: str, path: str, what: str, params: Mapping[str, Any] | None = None) -> Any:
        resp = request_with_retries(
            self.session,
            method,
            f"{DISCOVER}/{path.lstrip('/')}",
            headers=plex_headers(self.token),
            params=dict(params or {}),
            timeout=self.timeout,
            max_retries=self.max_retries,
        )
        raise_for_status(resp, "plex", what)
        return safe_json(resp)

    def discover_pages(self, path: str, what: str, params: Mapping[str, Any] | None = None) -> Iterator[Mapping[str, Any]]:
        start = 0
        while True:
            q = {**dict(params or {}), "X-Plex-Container-Start": start, "X-Plex-Container-Size": PAGE_SIZE}
            mc = (self.discover("GET", path, what, q) or {}).get("MediaContainer") or {}
            rows = mc.get("Metadata") or []
            yield from (r for r in rows if isinstance(r, Mapping))
            total = int(mc.get("totalSize") or mc.get("size") or 0)
            start += len(rows)
            if not rows or start >= total:
                return

    def sections(self, kinds: Iterable[str] = ("movie", "show")) -> list[Any]:
        if self.server is None:
            return []
        if self._sections is None:
            self._sections = list(self.server.library.sections())
        want = set(kinds)
        return [s for s in self._sections if getattr(s, "type", None) in want]


def plex_time(v: Any) -> datetime | None:
    """plexapi hands out naive local datetimes; pin them to UTC via the epoch."""
    if v is None:
        return None
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return datetime.fromtimestamp(v.timestamp(), tz=timezone.utc).replace(microsecond=0)
        return v.astimezone(timezone.utc)
    try:
        return datetime.fromtimestamp(int(v), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def media_type_of(kind: str | None, season: Any = None, episode: Any = None) -> MediaType:
    k = str(kind or "").lower()
    if k == "episode":
        return MediaType.for_episode(int(season or 0), int(episode or 0))
    if k in ("show", "season"):
        return MediaType.show()
    return MediaType.movie()


def discover_key(guid: str | None) -> str | None:
    """plex://movie/5d77… -> 5d77… (the Discover ratingKey)."""
    g = str(guid or "")
    if not g.startswith("plex://"):
        return None
    return g.rsplit("/", 1)[-1] or None


def guids_of(obj: Any) -> list[str]:
    if isinstance(obj, Mapping):
        raw = obj.get("Guid") or []
        out = [str(g.get("id")) for g in raw if isinstance(g, Mapping) and g.get("id")]
        if obj.get("guid"):
            out.append(str(obj["guid"]))
        return out
    out = [str(getattr(g, "id", "")) for g in (getattr(obj, "guids", None) or []) if getattr(g, "id", None)]
    if getattr(obj, "guid", None):
        out.append(str(obj.guid))
    return out


def ids_from_item(item: Any) -> MediaIds:
    """MediaIds for a plexapi library item; episodes carry their show and position."""
    kind = getattr(item, "type", None)
    mt = media_type_of(kind, getattr(item, "parentIndex", None), getattr(item, "index", None))
    title = getattr(item, "title", None)
    meta: dict[str, Any] = {"title": title, "year": getattr(item, "year", None), "media_type": mt}
    if mt.is_episode:
        show = getattr(item, "grandparentTitle", None)
        meta.update(
            title=f"{show}: {title}" if show else title,
            show_title=show,
            episode_title=title,
            original_air_date=(item.originallyAvailableAt.strftime("%Y-%m-%d") if getattr(item, "originallyAvailableAt", None) else None),
        )
    guids = guids_of(item)
    ids = MediaIds.from_guids(guids, **meta)
    ids.plex_rating_key = next((k for k in (discover_key(g) for g in guids) if k), None)
    return ids


def ids_from_discover(row: Mapping[str, Any]) -> MediaIds:
    mt = media_type_of(row.get("type"))
    guids = guids_of(row)
    ids = MediaIds.from_guids(guids, title=row.get("title"), year=row.get("year"), media_type=mt)
    ids.plex_rating_key = str(row.get("ratingKey") or "") or discover_key(row.get("guid"))
    return ids


def candidate_guids(ids: MediaIds) -> list[str]:
    out: list[str] = []
    if ids.plex_rating_key and not str(ids.plex_rating_key).isdigit():
        kind = "show" if ids.media_type is not None and ids.media_type.is_show else "movie"
        out.append(f"plex://{kind}/{ids.plex_rating_key}")
    if ids.imdb_id:
        out.append(f"imdb://{ids.imdb_id}")
    if ids.tmdb_id is not None:
        out.append(f"tmdb://{ids.tmdb_id}")
    if ids.tvdb_id is not None:
        out.append(f"tvdb://{ids.tvdb_id}")
    return out


def _by_guid(sections: Iterable[Any], ids: MediaIds) -> Any | None:
    for section in sections:
        for guid in candidate_guids(ids):
            try:
                item = section.getGuid(guid)
            except (NotFound, BadRequest):
                continue
            if item is not None:
                return item
    return None


def _show_by_title(sections: Iterable[Any], title: str) -> Any | None:
    want = title.strip().lower()
    for section in sections:
        for hit in section.search(title=title, libtype="show"):
            if str(getattr(hit, "title", "")).strip().lower() == want:
                return hit
    return None


def library_find(ctx: PlexContext, ids: MediaIds, media_type: MediaType) -> Any | None:
    """Local library item for a record; episodes go through their show (by title) and position."""
    if ctx.server is None:
        return None
    if not media_type.is_episode:
        return _by_guid(ctx.sections(("movie",) if media_type.is_movie else ("show",)), ids)
    if not media_type.position_known or not ids.show_title:
        return None
    show = _show_by_title(ctx.sections(("show",)), ids.show_title)
    if show is None:
        return None
    try:
        return show.episode(season=media_type.season, episode=media_type.episode)
    except (NotFound, BadRequest):
        return None
