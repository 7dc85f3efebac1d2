# /providers/sync/simkl/_ratings.py
# MediaSync - Simkl ratings (1..10)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Sequence

from ms_platform.media import RatingSource
from ms_platform.models import Rating
from ms_platform.timeutil import format_datetime, parse_datetime, utcnow

from ._activities import Window
from ._common import SimklClient, _log, body_size, build_body, iter_rows, media_ids

URL_RATINGS = "sync/ratings"


def fetch(client: SimklClient, window: Window) -> list[Rating]:
    if not window.changed:
        return []
    params = {"date_from": window.date_from} if window.date_from else None
    payload = client.post(URL_RATINGS, "ratings", params=params)
    out: list[Rating] = []
    for row, node, mt in iter_rows(payload):
        try:
            value = int(row.get("user_rating") or 0)
        except (TypeError, ValueError):
            continue
        ids = media_ids(node, mt)
        if value <= 0 or ids.is_empty():
            continue
        out.append(
            Rating(
                imdb_id=ids.imdb_id or "",
                rating=value,
                date_added=parse_datetime(row.get("user_rated_at")) or utcnow(),
                media_type=mt,
                source=RatingSource.SIMKL,
                ids=ids,
            )
        )
    _log("ratings", "info", "fetched", count=len(out))
    return out


def add(client: SimklClient, ratings: Sequence[Rating]) -> int:
    body = build_body(ratings, lambda r: {"rating": int(r.rating), "rated_at": format_datetime(r.date_added)})
    if not body:
        return 0
    client.post(URL_RATINGS, "ratings:add", body)
    n = body_size(body)
    _log("ratings", "info", "written", count=n)
    return n
