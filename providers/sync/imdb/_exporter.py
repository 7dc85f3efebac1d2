# /providers/sync/imdb/_exporter.py
# MediaSync - IMDb browser seam and the export-folder default
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem

from .._mod_base import NotSupportedError, SourceError

EXPORT_KINDS = ("watchlist", "ratings", "checkins")

# filename fragments IMDb uses for each export
_NAME_HINTS: dict[str, tuple[str, ...]] = {
    "watchlist": ("watchlist",),
    "ratings": ("ratings",),
    "checkins": ("checkins", "check-ins", "check_ins"),
}


@runtime_checkable
class ImdbExporter(Protocol):
    """Browser work for IMDb: producing CSV exports and performing writes."""

    def export(self, kind: str) -> Path: ...
    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None: ...
    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None: ...
    def rate(self, ratings: Sequence[Rating]) -> None: ...
    def review(self, reviews: Sequence[Review]) -> None: ...
    def check_in(self, items: Sequence[WatchHistory]) -> None: ...


class DirectoryExporter:
    """Reads CSV exports the user downloaded into one folder. Read-only."""

    def __init__(self, export_dir: str | Path):
        self.export_dir = Path(export_dir).expanduser() if export_dir else None

    def export(self, kind: str) -> Path:
        if kind not in EXPORT_KINDS:
            raise ValueError(f"unknown IMDb export kind {kind!r}")
        if self.export_dir is None or not self.export_dir.is_dir():
            raise SourceError(f"imdb: export_dir {self.export_dir!s} is not a folder", source="imdb")
        hints = _NAME_HINTS[kind]
        found = [p for p in self.export_dir.glob("*.csv") if any(h in p.name.lower() for h in hints)]
        if not found:
            raise SourceError(f"imdb: no {kind} export in {self.export_dir}", source="imdb")
        return max(found, key=lambda p: p.stat().st_mtime)

    def _read_only(self, what: str) -> None:
        raise NotSupportedError(f"imdb: {what} needs a browser exporter", source="imdb")

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        self._read_only("watchlist add")

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        self._read_only("watchlist remove")

    def rate(self, ratings: Sequence[Rating]) -> None:
        self._read_only("rating")

    def review(self, reviews: Sequence[Review]) -> None:
        self._read_only("review")

    def check_in(self, items: Sequence[WatchHistory]) -> None:
        self._read_only("check-in")
