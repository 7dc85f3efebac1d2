# /providers/sync/imdb/_csv.py
# MediaSync - IMDb CSV export parsing (watchlist, ratings, check-ins)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, TypeVar

from ms_platform.id_map import MediaIds, normalize_id
from ms_platform.media import MediaType, NormalizedStatus, RatingSource
from ms_platform.models import Rating, WatchHistory, WatchlistItem
from ms_platform.timeutil import utcnow

from .._log import for_provider
from .._mod_base import ParseError, round_half_up

_log = for_provider("imdb")

T = TypeVar("T")

BASE_COLUMNS = ("Const", "Title", "Year", "Title Type")
RATING_COLUMNS = BASE_COLUMNS + ("Your Rating", "Date Rated")

_TITLE_TYPES: dict[str, str] = {
    "movie": "movie",
    "tv special": "movie",
    "tv movie": "movie",
    "tv short": "movie",
    "video": "movie",
    "short": "movie",
    "tv series": "show",
    "tv mini series": "show",
    "tv episode": "episode",
}


def media_type_for(title_type: str) -> MediaType | None:
    kind = _TITLE_TYPES.get((title_type or "").strip().lower())
    if kind == "movie":
        return MediaType.movie()
    if kind == "show":
        return MediaType.show()
    if kind == "episode":
        # the export has no season/episode columns
        return MediaType.for_episode()
    return None


def parse_date(value: str) -> datetime:
    """`YYYY-MM-DD` as midnight UTC. Raises ParseError."""
    try:
        d = datetime.strptime((value or "").strip(), "%Y-%m-%d")
    except ValueError as e:
        raise ParseError(f"bad date {value!r}") from e
    return d.replace(tzinfo=timezone.utc)


def _year(value: str) -> int | None:
    try:
        return int((value or "").strip())
    except ValueError:
        return None


def _rows(path: Path, required: tuple[str, ...]) -> Iterator[tuple[int, dict[str, str]]]:
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        header = [h.strip() for h in (reader.fieldnames or [])]
        missing = [c for c in required if c not in header]
        if missing:
            raise ParseError(f"{path.name}: missing required column(s) {', '.join(missing)}; have {header}")
        reader.fieldnames = header
        for n, row in enumerate(reader, start=2):
            yield n, {k: (v or "").strip() for k, v in row.items() if k}


def _parse_file(path: Path, required: tuple[str, ...], what: str, build: Callable[[dict[str, str]], T | None]) -> list[T]:
    out: list[T] = []
    bad = skipped = 0
    for line, row in _rows(path, required):
        if not row.get("Const"):
            skipped += 1
            continue
        try:
            rec = build(row)
        except ParseError as e:
            bad += 1
            _log(what, "warn", "ParseError: row skipped", file=path.name, line=line, error=str(e))
            continue
        if rec is None:
            skipped += 1
            continue
        out.append(rec)
    _log(what, "info", "parsed", file=path.name, count=len(out), skipped=skipped or None, bad=bad or None)
    return out


def _ids(row: Mapping[str, Any], mt: MediaType) -> MediaIds:
    return MediaIds(
        imdb_id=normalize_id("imdb", row.get("Const")),  # type: ignore[arg-type]
        title=row.get("Title") or None,
        year=_year(row.get("Year", "")),
        media_type=mt,
    )


def parse_watchlist(path: Path) -> list[WatchlistItem]:
    has_created = None

    def build(row: dict[str, str]) -> WatchlistItem | None:
        nonlocal has_created
        if has_created is None:
            has_created = "Created" in row
            if not has_created:
                _log("watchlist", "warn", "export has no Created column; using the current time")
        mt = media_type_for(row.get("Title Type", ""))
        if mt is None:
            return None
        created = row.get("Created")
        ids = _ids(row, mt)
        return WatchlistItem(
            imdb_id=ids.imdb_id or row["Const"],
            title=row.get("Title", ""),
            year=ids.year,
            date_added=parse_date(created) if created else utcnow(),
            media_type=mt,
            source="imdb",
            status=NormalizedStatus.WATCHLIST,
            ids=ids,
        )

    return _parse_file(path, BASE_COLUMNS, "watchlist", build)


def parse_rating_value(value: str) -> int:
    """IMDb values may carry a half point; 7.5 rounds to 8."""
    try:
        v = float((value or "").strip())
    except ValueError as e:
        raise ParseError(f"bad rating {value!r}") from e
    r = round_half_up(v)
    if not 1 <= r <= 10:
        raise ParseError(f"rating out of range {value!r}")
    return r


def parse_ratings(path: Path) -> list[Rating]:
    def build(row: dict[str, str]) -> Rating | None:
        mt = media_type_for(row.get("Title Type", ""))
        if mt is None:
            return None
        ids = _ids(row, mt)
        return Rating(
            imdb_id=ids.imdb_id or row["Const"],
            rating=parse_rating_value(row.get("Your Rating", "")),
            date_added=parse_date(row.get("Date Rated", "")),
            media_type=mt,
            source=RatingSource.IMDB,
            ids=ids,
        )

    return _parse_file(path, RATING_COLUMNS, "ratings", build)


def parse_checkins(path: Path) -> list[WatchHistory]:
    def build(row: dict[str, str]) -> WatchHistory | None:
        mt = media_type_for(row.get("Title Type", ""))
        created = row.get("Created")
        if mt is None or not created:
            return None
        ids = _ids(row, mt)
        return WatchHistory(
            imdb_id=ids.imdb_id or row["Const"],
            watched_at=parse_date(created),
            media_type=mt,
            source="imdb",
            title=row.get("Title") or None,
            year=ids.year,
            ids=ids,
        )

    return _parse_file(path, BASE_COLUMNS, "history", build)
