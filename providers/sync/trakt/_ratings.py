# /providers/sync/trakt/_ratings.py
# MediaSync - Trakt ratings read/write (native 1..10 scale)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from ms_platform.media import RatingSource
from ms_platform.models import Rating
from ms_platform.timeutil import format_datetime, parse_datetime, utcnow

from ._common import TraktClient, _log, body_size, build_body, parse_media

URL_RATINGS = "sync/ratings"


def fetch(client: TraktClient) -> list[Rating]:
    rows = client.get(URL_RATINGS, "ratings")
    out: list[Rating] = []
    for row in rows if isinstance(rows, list) else []:
        parsed = parse_media(row)
        if parsed is None:
            continue
        mt, ids, _title, _year = parsed
        try:
            value = int(row.get("rating") or 0)
        except (TypeError, ValueError):
            continue
        if value <= 0:
            continue
        out.append(
            Rating(
                imdb_id=ids.imdb_id or "",
                rating=value,
                date_added=parse_datetime(row.get("rated_at")) or utcnow(),
                media_type=mt,
                source=RatingSource.TRAKT,
                ids=ids,
            )
        )
    _log("ratings", "info", "fetched", count=len(out))
    return out


def _rating_fields(r: Rating) -> dict[str, Any]:
    return {"rating": int(r.rating), "rated_at": format_datetime(r.date_added)}


def add(client: TraktClient, ratings: Sequence[Rating]) -> dict[str, Any]:
    body = build_body(ratings, _rating_fields)
    if not body:
        return {}
    res = client.post(URL_RATINGS, "ratings:add", body)
    _log("ratings", "info", "written", sent=body_size(body))
    return res
