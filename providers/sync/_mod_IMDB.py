# /providers/sync/_mod_IMDB.py
# MediaSync - IMDb sync module (CSV exports in, browser exporter out)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["NAME", "ImdbAdapter", "ImdbConfig", "build_adapter"]

import shutil
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Sequence

from ms_platform.cache import CacheManager
from ms_platform.config_base import status_mapping_for
from ms_platform.credentials import CredentialStore
from ms_platform.id_map import MediaIds, normalize_id
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from ms_platform.timeutil import utcnow

from ._log import for_provider
from ._mod_base import (
    AuthError,
    Capability,
    RateLimitError,
    ScaledRatings,
    SourceError,
    StatusMappingConfig,
)
from .imdb import _csv
from .imdb._exporter import DirectoryExporter, ImdbExporter

NAME = "imdb"
PASSWORD_KEY = "imdb_password"
REVIEW_STAMP_KEY = "imdb_reviews_last_submitted_date"
REVIEW_COOLDOWN = timedelta(days=10)
WATCHLIST_CAP = 10_000

_log = for_provider(NAME)


@dataclass
class ImdbConfig:
    username: str = ""
    export_dir: str = ""

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any]) -> "ImdbConfig":
        c = dict(cfg.get("imdb") or {})
        return cls(
            username=str(c.get("username") or "").strip(),
            export_dir=str(c.get("export_dir") or "").strip(),
        )


class ImdbAdapter:
    def __init__(
        self,
        cfg: Mapping[str, Any],
        credentials: CredentialStore,
        *,
        exporter: ImdbExporter | None = None,
        cache: CacheManager | None = None,
    ):
        self.cfg = ImdbConfig.from_cfg(cfg)
        self.credentials = credentials
        self.exporter: ImdbExporter = exporter or DirectoryExporter(self.cfg.export_dir)
        self.cache = cache or CacheManager()
        self._scale = ScaledRatings(10)
        self._status = StatusMappingConfig.from_mapping(status_mapping_for(cfg, NAME))
        self._watchlist_size: int | None = None

    def source_name(self) -> str:
        return NAME

    def authenticate(self) -> None:
        login = getattr(self.exporter, "login", None)
        if callable(login):
            password = self.credentials.get(PASSWORD_KEY)
            if not self.cfg.username or not password:
                raise AuthError("imdb: username and imdb_password are required", source=NAME)
            login(self.cfg.username, str(password))
            return
        # folder-backed exports: fail early when nothing can be read
        if isinstance(self.exporter, DirectoryExporter):
            d = self.exporter.export_dir
            if d is None or not d.is_dir():
                raise AuthError(f"imdb: export_dir {d!s} is not a folder", source=NAME)

    # --- reads ---------------------------------------------------------------

    def _export(self, kind: str) -> Path:
        src = self.exporter.export(kind)
        dst = self.cache.csv_dir(NAME) / f"{kind}.csv"
        try:
            if Path(src).resolve() != dst.resolve():
                shutil.copy2(src, dst)
        except OSError as e:
            _log("cache", "warn", "could not cache export", kind=kind, error=str(e))
        return Path(src)

    def get_watchlist(self) -> list[WatchlistItem]:
        items = _csv.parse_watchlist(self._export("watchlist"))
        self._watchlist_size = len(items)
        return items

    def get_ratings(self) -> list[Rating]:
        return _csv.parse_ratings(self._export("ratings"))

    def get_reviews(self) -> list[Review]:
        return []

    def get_watch_history(self) -> list[WatchHistory]:
        return _csv.parse_checkins(self._export("checkins"))

    # --- writes --------------------------------------------------------------

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        if not items:
            return
        if self._watchlist_size is None:
            try:
                self._watchlist_size = len(_csv.parse_watchlist(self._export("watchlist")))
            except SourceError as e:
                _log("watchlist", "warn", "current size unknown; capacity not checked", error=str(e))
        if self._watchlist_size is not None and self._watchlist_size + len(items) > WATCHLIST_CAP:
            raise RateLimitError(
                f"imdb watchlist would hold {self._watchlist_size + len(items)} items (limit {WATCHLIST_CAP})"
            )
        self.exporter.add_to_watchlist(items)
        if self._watchlist_size is not None:
            self._watchlist_size += len(items)
        _log("watchlist", "info", "added", count=len(items))

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        if not items:
            return
        self.exporter.remove_from_watchlist(items)
        if self._watchlist_size is not None:
            self._watchlist_size = max(0, self._watchlist_size - len(items))
        _log("watchlist", "info", "removed", count=len(items))

    def set_ratings(self, ratings: Sequence[Rating]) -> None:
        if ratings:
            self.exporter.rate(ratings)
            _log("ratings", "info", "written", count=len(ratings))

    def set_reviews(self, reviews: Sequence[Review]) -> None:
        if not reviews:
            return
        last = self.credentials.get_datetime(REVIEW_STAMP_KEY)
        now = utcnow()
        if last is not None and now - last < REVIEW_COOLDOWN:
            wait = (last + REVIEW_COOLDOWN - now).total_seconds()
            err = RateLimitError(f"imdb reviews on cooldown until {(last + REVIEW_COOLDOWN).date()}", retry_after=wait)
            _log("reviews", "warn", "RateLimitError: reviews skipped", count=len(reviews), error=str(err))
            raise err
        self.exporter.review(reviews)
        self.credentials.set_datetime(REVIEW_STAMP_KEY, now)
        self.credentials.save()
        _log("reviews", "info", "submitted", count=len(reviews))

    def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        if items:
            self.exporter.check_in(items)
            _log("history", "info", "checked in", count=len(items))

    # --- facets --------------------------------------------------------------

    def extract_ids(self, imdb_id: str | None, native_ids: Any) -> MediaIds | None:
        raw = native_ids.get("Const") if isinstance(native_ids, Mapping) else native_ids
        tt = normalize_id("imdb", imdb_id or raw)
        return MediaIds(imdb_id=tt) if tt else None  # type: ignore[arg-type]

    def native_id_type(self) -> str:
        return "imdb_const"

    def status_mapping(self) -> StatusMappingConfig:
        return self._status

    def capability(self, cap: Capability) -> Any | None:
        if cap is Capability.RATING_NORMALIZATION:
            return self._scale
        if cap in (Capability.ID_EXTRACTION, Capability.STATUS_MAPPING):
            return self
        return None

    def cleanup(self) -> None:
        self._watchlist_size = None
        close = getattr(self.exporter, "close", None)
        if callable(close):
            close()


def build_adapter(
    cfg: Mapping[str, Any],
    credentials: CredentialStore,
    *,
    exporters: Mapping[str, ImdbExporter] | None = None,
    cache: CacheManager | None = None,
    **_kw: Any,
) -> ImdbAdapter:
    return ImdbAdapter(cfg, credentials, exporter=(exporters or {}).get(NAME), cache=cache)
