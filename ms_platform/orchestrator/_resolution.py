# /ms_platform/orchestrator/_resolution.py
# MediaSync - per-item conflict resolution across every collected source
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..config_base import normalize_strategy, source_preference
from ..models import Rating, Review, WatchHistory, WatchlistItem
from ..timeutil import seconds_between
from ._types import ResolvedData, SourceData

__all__ = ["ResolutionPolicy", "resolve_all", "group_candidates", "rated_implies_watched"]


@dataclass(frozen=True)
class ResolutionPolicy:
    strategy: str = "Preference"
    source_preference: tuple[str, ...] = ()
    tolerance_seconds: int = 3600
    ratings_strategy: str | None = None
    watchlist_strategy: str | None = None

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "ResolutionPolicy":
        res = dict(cfg.get("resolution") or {})
        return cls(
            strategy=normalize_strategy(res.get("strategy")) or "Preference",
            source_preference=tuple(source_preference(cfg)),
            tolerance_seconds=int(res.get("timestamp_tolerance_seconds", 3600) or 0),
            ratings_strategy=normalize_strategy(res.get("ratings_strategy")),
            watchlist_strategy=normalize_strategy(res.get("watchlist_strategy")),
        )

    def rank(self, source: str) -> int:
        s = (source or "").lower()
        return self.source_preference.index(s) if s in self.source_preference else len(self.source_preference)


@dataclass
class _Candidate:
    source: str
    record: Any
    order: int


def _match_keys(rec: Any) -> set[str]:
    keys = rec.keys()
    if rec.imdb_id:
        keys.add(rec.imdb_id)
    return keys


def group_candidates(
    cands: Sequence[_Candidate], keys: Callable[[Any], Iterable[str]] = _match_keys
) -> list[list[_Candidate]]:
    """Join each candidate to the first group holding a record with a shared id; input order is kept."""
    groups: list[list[_Candidate]] = []
    by_key: dict[str, int] = {}
    for c in cands:
        ks = list(keys(c.record))
        hits = [by_key[k] for k in ks if k in by_key]
        if hits:
            gi = min(hits)
            groups[gi].append(c)
        else:
            gi = len(groups)
            groups.append([c])
        for k in ks:
            by_key.setdefault(k, gi)
    return groups


def _flatten(sources: Sequence[tuple[str, SourceData]], data_type: str) -> list[_Candidate]:
    out: list[_Candidate] = []
    for name, data in sources:
        for rec in data.get(data_type):
            out.append(_Candidate(source=name, record=rec, order=len(out)))
    return out


def _union(a: Any, b: Any) -> Any:
    """Fill-only merge of two optional bundles; `a` keeps its set ids."""
    if a is None:
        return b.copy() if b is not None else None
    out = a.copy()
    out.merge(b)
    return out


def _pick(group: Sequence[_Candidate], strategy: str, policy: ResolutionPolicy) -> _Candidate:
    oldest_first = strategy == "Oldest"
    # stable sort: ties keep input (source preference) order
    ordered = sorted(
        group,
        key=lambda c: (c.record.timestamp if oldest_first else _neg(c.record.timestamp), c.order),
    )
    best = ordered[0]
    close = [c for c in ordered if seconds_between(best.record.timestamp, c.record.timestamp) <= policy.tolerance_seconds]
    if len(close) > 1 and policy.source_preference:
        return min(close, key=lambda c: (policy.rank(c.source), c.order))
    return best


def _neg(dt: Any) -> float:
    return -dt.timestamp()


def _resolve_by_timestamp(
    sources: Sequence[tuple[str, SourceData]], data_type: str, strategy: str, policy: ResolutionPolicy
) -> list[Any]:
    out: list[Any] = []
    for group in group_candidates(_flatten(sources, data_type)):
        if len(group) == 1:
            out.append(group[0].record)
            continue
        win = _pick(group, strategy, policy).record
        ids = win.ids
        for c in group:
            ids = _union(ids, c.record.ids)
        out.append(replace(win, ids=ids))
    return out


def resolve_ratings(sources: Sequence[tuple[str, SourceData]], policy: ResolutionPolicy) -> list[Rating]:
    return _resolve_by_timestamp(sources, "ratings", policy.ratings_strategy or policy.strategy, policy)


def resolve_watchlist(sources: Sequence[tuple[str, SourceData]], policy: ResolutionPolicy) -> list[WatchlistItem]:
    strategy = policy.watchlist_strategy or policy.strategy
    if strategy != "Merge":
        return _resolve_by_timestamp(sources, "watchlist", strategy, policy)

    kept: list[WatchlistItem] = []
    for c in _flatten(sources, "watchlist"):
        item = c.record
        for i, cur in enumerate(kept):
            if not cur.same_item(item):
                continue
            win, lose = cur, item
            if item.status is not None and cur.status is None:
                win, lose = item, cur
            elif (item.status is None) == (cur.status is None) and item.date_added > cur.date_added:
                win, lose = item, cur
            kept[i] = replace(win, ids=_union(win.ids, lose.ids))
            break
        else:
            kept.append(item)
    return kept


def _dedup(records: Iterable[Any], dup: Callable[[Any, Any], bool]) -> list[Any]:
    """Keeps the first of each record sharing an id with an earlier one where `dup` holds."""
    out: list[Any] = []
    by_key: dict[str, list[int]] = {}
    for rec in records:
        ks = _match_keys(rec)
        seen = {i for k in ks for i in by_key.get(k, ())}
        if any(dup(rec, out[i]) for i in sorted(seen)):
            continue
        for k in ks:
            by_key.setdefault(k, []).append(len(out))
        out.append(rec)
    return out


def resolve_reviews(sources: Sequence[tuple[str, SourceData]]) -> list[Review]:
    out = _dedup((r for _, data in sources for r in data.reviews), lambda a, b: a.content == b.content)
    out.sort(key=lambda r: r.date_added, reverse=True)
    return out


def resolve_watch_history(sources: Sequence[tuple[str, SourceData]]) -> list[WatchHistory]:
    out = _dedup(
        (h for _, data in sources for h in data.watch_history),
        lambda a, b: abs((a.watched_at - b.watched_at).total_seconds()) <= 1,
    )
    out.sort(key=lambda h: h.watched_at, reverse=True)
    return out


def resolve_all(sources: Sequence[tuple[str, SourceData]], policy: ResolutionPolicy) -> ResolvedData:
    """`sources` must already be in source-preference order."""
    return ResolvedData(
        watchlist=resolve_watchlist(sources, policy),
        ratings=resolve_ratings(sources, policy),
        reviews=resolve_reviews(sources),
        watch_history=resolve_watch_history(sources),
    )


def rated_implies_watched(resolved: ResolvedData) -> int:
    """Append a history entry for every rated movie or episode not already watched."""
    added = 0
    watched = {k for h in resolved.watch_history for k in _match_keys(h)}
    for r in resolved.ratings:
        if r.media_type.is_show or not r.has_identifier():
            continue
        if not watched.isdisjoint(_match_keys(r)):
            continue
        ids = r.ids.copy() if r.ids else None
        resolved.watch_history.append(WatchHistory(
            imdb_id=r.imdb_id,
            watched_at=r.date_added,
            media_type=r.media_type,
            source="rated",
            title=r.title,
            year=ids.year if ids else None,
            ids=ids,
        ))
        watched |= _match_keys(r)
        added += 1
    return added
