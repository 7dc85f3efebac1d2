# /providers/sync/trakt/_reviews.py
# MediaSync - Trakt reviews (comments flagged as reviews)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Sequence

from ms_platform.models import Review
from ms_platform.timeutil import parse_datetime, utcnow

from ._common import MIN_REVIEW_WORDS, TraktClient, _log, ids_for_trakt, parse_media

URL_MINE = "users/me/comments/all/all"
URL_POST = "comments"

_SINGULAR = {"movies": "movie", "shows": "show", "episodes": "episode"}


def fetch(client: TraktClient) -> list[Review]:
    out: list[Review] = []
    for row in client.paged(URL_MINE, "reviews", {"type": "reviews"}):
        parsed = parse_media(row)
        c = row.get("comment") or {}
        text = str(c.get("comment") or "").strip()
        if parsed is None or not text:
            continue
        mt, ids, title, year = parsed
        out.append(
            Review(
                imdb_id=ids.imdb_id or "",
                content=text,
                date_added=parse_datetime(c.get("updated_at") or c.get("created_at")) or utcnow(),
                media_type=mt,
                source="trakt",
                is_spoiler=bool(c.get("spoiler")),
                ids=ids,
                title=title or None,
                year=year,
            )
        )
    _log("reviews", "info", "fetched", count=len(out))
    return out


def is_postable(review: Review) -> bool:
    return len(review.content.split()) >= MIN_REVIEW_WORDS


def post_body(review: Review) -> dict | None:
    ids = ids_for_trakt(review)
    if not ids:
        return None
    kind = "episode" if review.media_type.is_episode else ("show" if review.media_type.is_show else "movie")
    return {kind: {"ids": ids}, "comment": review.content, "spoiler": bool(review.is_spoiler)}


def add(client: TraktClient, reviews: Sequence[Review]) -> int:
    """One POST per review; returns how many were submitted."""
    sent = short = 0
    for r in reviews:
        if not is_postable(r):
            short += 1
            continue
        body = post_body(r)
        if body is None:
            continue
        client.post(URL_POST, "reviews:add", body)
        sent += 1
    if short:
        _log("reviews", "info", "reviews under the word minimum skipped", count=short, min_words=MIN_REVIEW_WORDS)
    _log("reviews", "info", "submitted", count=sent)
    return sent
