# /ms_platform/orchestrator/_distribution.py
# MediaSync - per-target filtering, dedup and watchlist transforms
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from providers.sync._log import log as _plog

from ..cache import CacheManager
from ..credentials import CredentialStore
from ..media import NormalizedStatus
from ..models import ExcludedItem, Rating, Review, WatchHistory, WatchlistItem
from ..timeutil import format_datetime, is_after, utcnow
from ._types import DistributionResult, ResolvedData, SourceData

__all__ = [
    "DistributionOptions",
    "DistributionStrategy",
    "TraktDistribution",
    "SimklDistribution",
    "PlexDistribution",
    "ImdbDistribution",
    "strategy_for",
    "watchlist_to_history",
]

_WATCHED = (NormalizedStatus.WATCHING, NormalizedStatus.COMPLETED)


def _log(target: str, level: str, msg: str, **fields: Any) -> None:
    _plog("distribute", target, level, msg, **fields)


def _origin(rec: Any) -> str:
    src = getattr(rec, "source", "")
    return str(getattr(src, "value", src) or "unknown").lower()


def watchlist_to_history(item: WatchlistItem) -> WatchHistory:
    return WatchHistory(
        imdb_id=item.imdb_id,
        watched_at=item.date_added,
        media_type=item.media_type,
        source=item.source,
        title=item.title,
        year=item.year,
        ids=item.ids.copy() if item.ids else None,
    )


@dataclass
class DistributionOptions:
    force_full_sync: bool = False
    remove_watched_from_watchlists: bool = False
    sync_watchlist: bool = True
    sync_ratings: bool = True
    sync_reviews: bool = True
    sync_watch_history: bool = True

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "DistributionOptions":
        s = dict(cfg.get("sync") or {})
        return cls(
            force_full_sync=bool(s.get("force_full_sync")),
            remove_watched_from_watchlists=bool(s.get("remove_watched_from_watchlists")),
            sync_watchlist=bool(s.get("sync_watchlist", True)),
            sync_ratings=bool(s.get("sync_ratings", True)),
            sync_reviews=bool(s.get("sync_reviews", True)),
            sync_watch_history=bool(s.get("sync_watch_history", True)),
        )


class _KeyIndex:
    """Any-id lookup over a target's existing records, with an optional value per key."""

    def __init__(self, records: Iterable[Any], value: Callable[[Any], Any] | None = None):
        self._by_key: dict[str, set[Any]] = {}
        self._value = value
        for r in records:
            v = value(r) if value else None
            for k in r.keys():
                self._by_key.setdefault(k, set()).add(v)

    def __contains__(self, rec: Any) -> bool:
        v = self._value(rec) if self._value else None
        return any(v in self._by_key.get(k, ()) for k in rec.keys())


@dataclass
class DistributionStrategy:
    """Default rules; per-target subclasses override the watchlist split and history filter."""

    target: str
    credentials: CredentialStore | None = None
    cache: CacheManager | None = None
    native_incremental: bool = False
    now: Callable[[], datetime] | None = field(default=None, repr=False)

    # --- shared stages -------------------------------------------------------

    def _incremental(self, items: list[Any], data_type: str, opts: DistributionOptions, res: DistributionResult) -> list[Any]:
        if opts.force_full_sync or self.native_incremental or self.credentials is None:
            return items
        last = self.credentials.get_last_sync_timestamp(self.target, data_type)
        if last is None:
            return items
        kept: list[Any] = []
        for it in items:
            ts = getattr(it, "timestamp", None)
            if ts is None or is_after(ts, last):
                kept.append(it)
            else:
                res.exclude(_origin(it), ExcludedItem.of(
                    it, f"timestamp filter: {data_type} at {format_datetime(ts)} not after last sync {format_datetime(last)}"
                ))
        return kept

    def _source_filter(self, items: list[Any], res: DistributionResult) -> list[Any]:
        kept: list[Any] = []
        for it in items:
            if _origin(it) == self.target:
                res.exclude(_origin(it), ExcludedItem.of(it, f"source filter: item already exists in target source '{self.target}'"))
            else:
                kept.append(it)
        return kept

    def _identifier_filter(self, items: list[Any], res: DistributionResult) -> list[Any]:
        kept: list[Any] = []
        for it in items:
            if it.has_identifier():
                kept.append(it)
            else:
                res.exclude(_origin(it), ExcludedItem.of(it, "no identifier"))
        return kept

    def _dedup(self, items: list[Any], existing: _KeyIndex, data_type: str, res: DistributionResult) -> list[Any]:
        kept = [it for it in items if it not in existing]
        dropped = len(items) - len(kept)
        if dropped:
            res.dedup_dropped[data_type] = res.dedup_dropped.get(data_type, 0) + dropped
            _log(self.target, "info", "dedup dropped items already in target", data_type=data_type, count=dropped)
        return kept

    def _base(self, items: Sequence[Any], data_type: str, opts: DistributionOptions, res: DistributionResult) -> list[Any]:
        out = self._incremental(list(items), data_type, opts, res)
        out = self._source_filter(out, res)
        return self._identifier_filter(out, res)

    # --- per data type -------------------------------------------------------

    def prepare_watchlist(
        self,
        items: Sequence[WatchlistItem],
        existing: SourceData,
        resolved_history: Sequence[WatchHistory],
        opts: DistributionOptions,
        res: DistributionResult,
    ) -> None:
        out = self._base(items, "watchlist", opts, res)
        out = self._dedup(out, _KeyIndex(existing.watchlist), "watchlist", res)
        if opts.remove_watched_from_watchlists:
            watched = _KeyIndex(resolved_history)
            kept: list[WatchlistItem] = []
            for it in out:
                if it in watched:
                    res.exclude(_origin(it), ExcludedItem.of(it, "watched filter: item is already in watch history"))
                else:
                    kept.append(it)
            out = kept
        stay, to_history = self.split_watchlist(out, res)
        res.watchlist = stay
        res.watchlist_to_history = self._dedup(
            to_history, _KeyIndex(existing.watch_history), "watchlist_to_history", res
        )

    def split_watchlist(self, items: list[WatchlistItem], res: DistributionResult) -> tuple[list[WatchlistItem], list[WatchHistory]]:
        return items, []

    def prepare_ratings(self, items: Sequence[Rating], existing: SourceData, opts: DistributionOptions, res: DistributionResult) -> None:
        out = self._base(items, "ratings", opts, res)
        res.ratings = self._dedup(out, _KeyIndex(existing.ratings, lambda r: int(r.rating)), "ratings", res)

    def prepare_reviews(self, items: Sequence[Review], existing: SourceData, opts: DistributionOptions, res: DistributionResult) -> None:
        out = self._base(items, "reviews", opts, res)
        res.reviews = self._dedup(out, _KeyIndex(existing.reviews, lambda r: r.content), "reviews", res)

    def prepare_watch_history(
        self, items: Sequence[WatchHistory], existing: SourceData, opts: DistributionOptions, res: DistributionResult
    ) -> None:
        out = self._base(items, "watch_history", opts, res)
        out = self.filter_history(out, res)
        res.watch_history = self._dedup(out, _KeyIndex(existing.watch_history), "watch_history", res)

    def filter_history(self, items: list[WatchHistory], res: DistributionResult) -> list[WatchHistory]:
        return items

    # --- entry ---------------------------------------------------------------

    def prepare(self, resolved: ResolvedData, existing: SourceData, opts: DistributionOptions) -> DistributionResult:
        res = DistributionResult(target=self.target)
        if opts.sync_watchlist:
            self.prepare_watchlist(resolved.watchlist, existing, resolved.watch_history, opts, res)
        if opts.sync_ratings:
            self.prepare_ratings(resolved.ratings, existing, opts, res)
        if opts.sync_reviews:
            self.prepare_reviews(resolved.reviews, existing, opts, res)
        if opts.sync_watch_history:
            self.prepare_watch_history(resolved.watch_history, existing, opts, res)
        self.persist_excluded(res)
        return res

    def persist_excluded(self, res: DistributionResult) -> None:
        if self.cache is None:
            return
        for origin, rows in res.excluded.items():
            n = self.cache.save_excluded(origin, rows)
            if n:
                _log(self.target, "debug", "excluded items saved", origin=origin, count=n)

    def on_sync_complete(self, data_type: str, count: int) -> None:
        if self.credentials is None:
            return
        when = self.now() if self.now else utcnow()
        self.credentials.set_last_sync_timestamp(self.target, data_type, when)
        self.credentials.save()
        _log(self.target, "debug", "last sync stamped", data_type=data_type, count=count)


class TraktDistribution(DistributionStrategy):
    def split_watchlist(self, items, res):
        stay: list[WatchlistItem] = []
        hist: list[WatchHistory] = []
        for it in items:
            if it.status in _WATCHED:
                if it.media_type.is_show:
                    res.exclude(_origin(it), ExcludedItem.of(it, "target filter: trakt history does not take shows"))
                else:
                    hist.append(watchlist_to_history(it))
            else:
                stay.append(it)
        return stay, hist

    def filter_history(self, items, res):
        kept: list[WatchHistory] = []
        for h in items:
            if h.media_type.is_show:
                res.exclude(_origin(h), ExcludedItem.of(h, "target filter: trakt history does not take shows"))
            else:
                kept.append(h)
        return kept


class ImdbDistribution(DistributionStrategy):
    def split_watchlist(self, items, res):
        stay: list[WatchlistItem] = []
        checkins: list[WatchHistory] = []
        for it in items:
            if it.status in _WATCHED:
                checkins.append(watchlist_to_history(it))
            elif it.status in (None, NormalizedStatus.WATCHLIST):
                stay.append(it)
            else:
                res.exclude(_origin(it), ExcludedItem.of(it, f"target filter: status {it.status.value} has no imdb list"))
        return stay, checkins


class PlexDistribution(DistributionStrategy):
    def split_watchlist(self, items, res):
        stay: list[WatchlistItem] = []
        hist: list[WatchHistory] = []
        for it in items:
            if it.status in _WATCHED:
                hist.append(watchlist_to_history(it))
            elif it.status in (None, NormalizedStatus.WATCHLIST):
                stay.append(it)
            else:
                res.exclude(_origin(it), ExcludedItem.of(it, f"target filter: status {it.status.value} has no plex list"))
        return stay, hist


class SimklDistribution(DistributionStrategy):
    """Server-side activities drive Simkl's incremental sync, so no local stamps."""

    def __init__(self, target: str = "simkl", credentials: CredentialStore | None = None, cache: CacheManager | None = None, **kw: Any):
        kw["native_incremental"] = True
        super().__init__(target, credentials, cache, **kw)

    def on_sync_complete(self, data_type: str, count: int) -> None:
        return None


_STRATEGIES: dict[str, type[DistributionStrategy]] = {
    "trakt": TraktDistribution,
    "imdb": ImdbDistribution,
    "plex": PlexDistribution,
    "simkl": SimklDistribution,
}


def strategy_for(
    target: str,
    *,
    credentials: CredentialStore | None = None,
    cache: CacheManager | None = None,
    native_incremental: bool = False,
    now: Callable[[], datetime] | None = None,
) -> DistributionStrategy:
    name = (target or "").lower()
    cls = _STRATEGIES.get(name, DistributionStrategy)
    if cls is SimklDistribution:
        return SimklDistribution(name, credentials, cache, now=now)
    return cls(name, credentials, cache, native_incremental=native_incremental, now=now)
