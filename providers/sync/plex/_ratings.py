# /providers/sync/plex/_ratings.py
# MediaSync - Plex library ratings (userRating 0..10)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from typing import Any, Sequence

from plexapi.exceptions import BadRequest, NotFound

from ms_platform.media import MediaType, RatingSource
from ms_platform.models import Rating
from ms_platform.timeutil import utcnow

from .._mod_base import round_half_up
from ._common import PlexContext, _log, ids_from_item, library_find, plex_time


def _rated(item: Any) -> int | None:
    v = getattr(item, "userRating", None)
    try:
        r = round_half_up(float(v)) if v is not None else 0
    except (TypeError, ValueError):
        return None
    return r if r > 0 else None


def fetch(ctx: PlexContext) -> list[Rating]:
    out: list[Rating] = []
    for section in ctx.sections():
        libtypes = ("movie",) if section.type == "movie" else ("show", "episode")
        for libtype in libtypes:
            for it in section.search(libtype=libtype, filters={"userRating>>": 0}):
                value = _rated(it)
                if value is None:
                    continue
                ids = ids_from_item(it)
                out.append(
                    Rating(
                        imdb_id=ids.imdb_id or "",
                        rating=value,
                        date_added=plex_time(getattr(it, "lastRatedAt", None)) or utcnow(),
                        media_type=ids.media_type or MediaType.movie(),
                        source=RatingSource.PLEX,
                        ids=ids,
                    )
                )
    _log("ratings", "info", "fetched", count=len(out))
    return out


def add(ctx: PlexContext, ratings: Sequence[Rating]) -> int:
    done = missing = 0
    for r in ratings:
        item = library_find(ctx, r.bundle(), r.media_type)
        if item is None:
            missing += 1
            continue
        try:
            item.rate(float(r.rating))
        except (NotFound, BadRequest) as e:
            _log("ratings", "warn", "rate failed", title=getattr(item, "title", None), error=str(e))
            continue
        done += 1
    if missing:
        _log("ratings", "info", "ratings for titles not in the library skipped", count=missing)
    _log("ratings", "info", "written", count=done)
    return done
