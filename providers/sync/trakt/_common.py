# /providers/sync/trakt/_common.py
# MediaSync - Trakt shared helpers: headers, id objects, request bodies, client
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Sequence

import requests

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType
from ms_platform.timeutil import format_datetime

from .._log import for_provider
from .._mod_common import raise_for_status, request_with_retries, safe_json

TRAKT_BASE = "https://api.trakt.tv"
API_VERSION = "2"
PAGE_LIMIT = 100
MIN_REVIEW_WORDS = 5

_log = for_provider("trakt")

# ── headers ───────────────────────────────────────────────────────────────────

def build_headers(client_id: str, access_token: str | None = None) -> Dict[str, str]:
    h = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "trakt-api-version": API_VERSION,
        "trakt-api-key": str(client_id or "").strip(),
    }
    token = str(access_token or "").strip()
    if token:
        h["Authorization"] = f"Bearer {token}"
    return h

# ── ids / kinds ───────────────────────────────────────────────────────────────

def media_ids_from_trakt(ids: Mapping[str, Any] | None, **meta: Any) -> MediaIds:
    return MediaIds.from_ids(ids or {}, **meta)


def ids_for_trakt(rec: Any) -> Dict[str, Any]:
    """Trakt `ids` object for a record; slug is dropped for episodes."""
    ids = rec.bundle().to_ids()
    ids.pop("simkl", None)
    if rec.media_type.is_episode:
        ids.pop("slug", None)
    return ids


def pick_trakt_kind(media_type: MediaType) -> str:
    if media_type.is_episode:
        return "episodes"
    if media_type.is_show:
        return "shows"
    return "movies"


def parse_media(row: Mapping[str, Any]) -> tuple[MediaType, MediaIds, str, int | None] | None:
    """Pull (type, ids, title, year) out of a typed Trakt row; None for unknown types."""
    t = str(row.get("type") or "").lower()
    if t == "movie":
        m = row.get("movie") or {}
        title, year = str(m.get("title") or ""), m.get("year")
        mt = MediaType.movie()
        ids = media_ids_from_trakt(m.get("ids"), title=title, year=year, media_type=mt)
        return mt, ids, title, year
    if t == "show":
        s = row.get("show") or {}
        title, year = str(s.get("title") or ""), s.get("year")
        mt = MediaType.show()
        ids = media_ids_from_trakt(s.get("ids"), title=title, year=year, media_type=mt)
        return mt, ids, title, year
    if t == "episode":
        e = row.get("episode") or {}
        s = row.get("show") or {}
        mt = MediaType.for_episode(e.get("season") or 0, e.get("number") or 0)
        title = f"{s.get('title') or ''}: {e.get('title') or ''}".strip(": ")
        year = s.get("year")
        ids = media_ids_from_trakt(
            e.get("ids"),
            title=title,
            year=year,
            media_type=mt,
            show_title=s.get("title"),
            episode_title=e.get("title"),
            original_air_date=(str(e.get("first_aired"))[:10] if e.get("first_aired") else None),
        )
        return mt, ids, title, year
    return None

# ── bodies ────────────────────────────────────────────────────────────────────

def build_body(
    items: Iterable[Any],
    extra: Callable[[Any], Mapping[str, Any]] | None = None,
    *,
    kinds: Sequence[str] = ("movies", "shows", "episodes"),
) -> Dict[str, Any]:
    """Group records into {"movies": [...], "shows": [...], "episodes": [...]} with ids (+extra fields)."""
    out: Dict[str, list] = {}
    for it in items or []:
        ids = ids_for_trakt(it)
        if not ids:
            continue
        kind = pick_trakt_kind(it.media_type)
        if kind not in kinds:
            continue
        entry: Dict[str, Any] = {"ids": ids}
        if extra is not None:
            entry.update(extra(it))
        out.setdefault(kind, []).append(entry)
    return out


def body_size(body: Mapping[str, Any]) -> int:
    return sum(len(v) for v in body.values() if isinstance(v, list))


def stamp(field: str, attr: str) -> Callable[[Any], Mapping[str, Any]]:
    return lambda rec: {field: format_datetime(getattr(rec, attr))}

# ── client ────────────────────────────────────────────────────────────────────

class TraktClient:
    """Thin REST wrapper: headers, retries and error mapping for every feature module."""

    def __init__(
        self,
        session: requests.Session,
        client_id: str,
        *,
        token: Callable[[], str | None],
        timeout: float = 15.0,
        max_retries: int = 3,
        base: str = TRAKT_BASE,
    ):
        self.session = session
        self.client_id = client_id
        self._token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.base = base.rstrip("/")

    def url(self, path: str) -> str:
        return f"{self.base}/{path.lstrip('/')}"

    def request(self, method: str, path: str, what: str, **kw: Any) -> requests.Response:
        resp = request_with_retries(
            self.session,
            method,
            self.url(path),
            headers=build_headers(self.client_id, self._token()),
            timeout=self.timeout,
            max_retries=self.max_retries,
            **kw,
        )
        raise_for_status(resp, "trakt", what)
        return resp

    def get(self, path: str, what: str, params: Mapping[str, Any] | None = None) -> Any:
        return safe_json(self.request("GET", path, what, params=dict(params or {})))

    def post(self, path: str, what: str, body: Mapping[str, Any]) -> Any:
        return safe_json(self.request("POST", path, what, json=dict(body)))

    def paged(self, path: str, what: str, params: Mapping[str, Any] | None = None, *, limit: int = PAGE_LIMIT) -> Iterator[Mapping[str, Any]]:
        page = 1
        while True:
            q = dict(params or {})
            q.update(page=page, limit=limit)
            resp = self.request("GET", path, what, params=q)
            rows = safe_json(resp)
            if not isinstance(rows, list):
                _log(what, "warn", "unexpected page payload", page=page)
                return
            yield from (r for r in rows if isinstance(r, Mapping))
            try:
                pages = int(resp.headers.get("X-Pagination-Page-Count") or 1)
            except ValueError:
                pages = 1
            if page >= pages or not rows:
                return
            page += 1
