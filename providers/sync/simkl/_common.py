# /providers/sync/simkl/_common.py
# MediaSync - Simkl shared helpers: headers, id objects, bodies, client
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

import requests

from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType

from .._log import for_provider
from .._mod_common import raise_for_status, request_with_retries, safe_json

SIMKL_BASE = "https://api.simkl.com"
# all-items buckets; anime rows carry a `show` node like tv rows
BUCKETS: tuple[tuple[str, str, MediaType], ...] = (
    ("movies", "movie", MediaType.movie()),
    ("shows", "show", MediaType.show()),
    ("anime", "show", MediaType.show()),
)

_log = for_provider("simkl")

# ---------- headers

def build_headers(client_id: str, access_token: str | None = None) -> Dict[str, str]:
    h = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "simkl-api-key": str(client_id or "").strip(),
    }
    token = str(access_token or "").strip()
    if token:
        h["Authorization"] = f"Bearer {token}"
    return h

# ---------- ids / rows

def node_of(row: Mapping[str, Any], node_key: str) -> Mapping[str, Any] | None:
    n = row.get(node_key) or (row.get("anime") if node_key == "show" else None)
    return n if isinstance(n, Mapping) else None


def media_ids(node: Mapping[str, Any], media_type: MediaType) -> MediaIds:
    ids = dict(node.get("ids") or {})
    if "simkl_id" in ids and "simkl" not in ids:
        ids["simkl"] = ids.pop("simkl_id")
    return MediaIds.from_ids(ids, title=node.get("title"), year=node.get("year"), media_type=media_type)


def iter_rows(payload: Any) -> Iterable[tuple[Mapping[str, Any], Mapping[str, Any], MediaType]]:
    """Yield (row, media node, media type) over the movies/shows/anime buckets."""
    if not isinstance(payload, Mapping):
        return
    for bucket, node_key, mt in BUCKETS:
        for row in payload.get(bucket) or []:
            if not isinstance(row, Mapping):
                continue
            node = node_of(row, node_key)
            if node is not None:
                yield row, node, mt


def ids_for_simkl(rec: Any) -> Dict[str, Any]:
    ids = rec.bundle().to_ids()
    ids.pop("trakt", None)
    return ids


def bucket_for(media_type: MediaType) -> str | None:
    if media_type.is_movie:
        return "movies"
    if media_type.is_show:
        return "shows"
    return None


def build_body(items: Iterable[Any], extra: Callable[[Any], Mapping[str, Any]] | None = None) -> Dict[str, Any]:
    """{"movies": [...], "shows": [...]}; Simkl takes no episode-level entries here."""
    out: Dict[str, list] = {}
    for it in items or []:
        bucket = bucket_for(it.media_type)
        ids = ids_for_simkl(it)
        if bucket is None or not ids:
            continue
        entry: Dict[str, Any] = {"ids": ids}
        title = getattr(it, "title", None)
        if title:
            entry["title"] = title
        year = getattr(it, "year", None)
        if year:
            entry["year"] = year
        if extra is not None:
            entry.update(extra(it))
        out.setdefault(bucket, []).append(entry)
    return out


def body_size(body: Mapping[str, Any]) -> int:
    return sum(len(v) for v in body.values() if isinstance(v, list))

# ---------- client

class SimklClient:
    def __init__(
        self,
        session: requests.Session,
        client_id: str,
        *,
        token: Callable[[], str | None],
        timeout: float = 15.0,
        max_retries: int = 3,
        base: str = SIMKL_BASE,
    ):
        self.session = session
        self.client_id = client_id
        self._token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.base = base.rstrip("/")

    def request(self, method: str, path: str, what: str, **kw: Any) -> Any:
        resp = request_with_retries(
            self.session,
            method,
            f"{self.base}/{path.lstrip('/')}",
            headers=build_headers(self.client_id, self._token()),
            timeout=self.timeout,
            max_retries=self.max_retries,
            **kw,
        )
        raise_for_status(resp, "simkl", what)
        return safe_json(resp)

    def get(self, path: str, what: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.request("GET", path, what, params=dict(params or {}))

    def post(self, path: str, what: str, body: Mapping[str, Any] | None = None, params: Mapping[str, Any] | None = None) -> Any:
        return self.request("POST", path, what, json=dict(body or {}), params=dict(params or {}))
