# /ms_platform/orchestrator/_removals.py
# MediaSync - per-target watchlist removal lists
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Mapping, Sequence

from providers.sync._log import log as _plog

from ..media import NormalizedStatus
from ..models import WatchHistory, WatchlistItem
from ..timeutil import utcnow
from ._types import SourceData

__all__ = ["build_removal_lists", "filter_additions"]


def _log(level: str, msg: str, **fields: Any) -> None:
    _plog("removals", "watchlist", level, msg, **fields)


def _dedup(items: Sequence[WatchlistItem]) -> list[WatchlistItem]:
    seen: set[str] = set()
    out: list[WatchlistItem] = []
    for it in items:
        keys = it.keys()
        if keys and keys & seen:
            continue
        seen |= keys
        out.append(it)
    return out


def _find(items: Sequence[WatchlistItem], wanted: WatchlistItem) -> WatchlistItem | None:
    for it in items:
        if it.same_item(wanted):
            return it
    return None


def build_removal_lists(
    collected: Mapping[str, SourceData],
    resolved_history: Sequence[WatchHistory],
    *,
    remove_watched: bool = False,
    older_than_days: int | None = None,
    now: datetime | None = None,
) -> dict[str, list[WatchlistItem]]:
    """Removal list per target, built from each target's current watchlist."""
    watched: set[str] = set()
    if remove_watched:
        for h in resolved_history:
            watched |= h.keys()
    cutoff = (now or utcnow()) - timedelta(days=int(older_than_days)) if older_than_days else None

    out: dict[str, list[WatchlistItem]] = {}
    for target, data in collected.items():
        found: list[WatchlistItem] = []
        for it in data.watchlist:
            if remove_watched and it.keys() & watched:
                found.append(it)
            elif cutoff is not None and it.date_added < cutoff:
                found.append(it)
        out[target] = found

    simkl = collected.get("simkl")
    dropped = [it for it in (simkl.watchlist if simkl else []) if it.status == NormalizedStatus.DROPPED]
    if dropped:
        for target, data in collected.items():
            if target == "simkl":
                continue
            for d in dropped:
                if d.source == target:
                    continue
                present = _find(data.watchlist, d)
                if present is None:
                    continue
                ids = present.bundle()
                ids.merge(d.ids)
                out[target].append(replace(d, ids=ids))

    for target in list(out):
        out[target] = _dedup(out[target])
        if out[target]:
            _log("info", "removal list built", target=target, count=len(out[target]))
    return out


def filter_additions(additions: Sequence[WatchlistItem], removals: Sequence[WatchlistItem]) -> list[WatchlistItem]:
    """Drop additions that the same run is about to remove."""
    doomed: set[str] = set()
    for r in removals:
        doomed |= r.keys()
    return [a for a in additions if not (a.keys() & doomed)]
