# /ms_platform/orchestrator/_types.py
# MediaSync - data carriers passed between the orchestrator phases
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..models import ExcludedItem, Rating, Review, WatchHistory, WatchlistItem


@dataclass
class SourceData:
    watchlist: list[WatchlistItem] = field(default_factory=list)
    ratings: list[Rating] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    watch_history: list[WatchHistory] = field(default_factory=list)

    def get(self, data_type: str) -> list[Any]:
        return getattr(self, data_type)

    def set(self, data_type: str, items: list[Any]) -> None:
        setattr(self, data_type, list(items))

    def counts(self) -> dict[str, int]:
        return {
            "watchlist": len(self.watchlist),
            "ratings": len(self.ratings),
            "reviews": len(self.reviews),
            "watch_history": len(self.watch_history),
        }


@dataclass
class ResolvedData(SourceData):
    pass


@dataclass
class DistributionResult:
    """Everything one target should receive, plus what was dropped on the way."""

    target: str
    watchlist: list[WatchlistItem] = field(default_factory=list)
    watchlist_to_history: list[WatchHistory] = field(default_factory=list)
    removal_list: list[WatchlistItem] = field(default_factory=list)
    ratings: list[Rating] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    watch_history: list[WatchHistory] = field(default_factory=list)
    excluded: dict[str, list[ExcludedItem]] = field(default_factory=dict)
    dedup_dropped: dict[str, int] = field(default_factory=dict)

    def exclude(self, origin: str, item: ExcludedItem) -> None:
        self.excluded.setdefault(origin or "unknown", []).append(item)

    def excluded_count(self) -> int:
        return sum(len(v) for v in self.excluded.values())

    def buckets(self) -> dict[str, list[Any]]:
        return {
            "watchlist": self.watchlist,
            "watchlist_to_history": self.watchlist_to_history,
            "ratings": self.ratings,
            "reviews": self.reviews,
            "watch_history": self.watch_history,
            "removal_list": self.removal_list,
        }


class ErrorBuffer:
    """Thread-safe error list plus the written-items counter for one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.errors: list[str] = []
        self.synced = 0

    def add(self, where: str, err: BaseException | str) -> None:
        with self._lock:
            self.errors.append(f"{where}: {err}")

    def count(self, n: int) -> None:
        with self._lock:
            self.synced += int(n)

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self.errors)


@dataclass
class SyncResult:
    items_synced: int = 0
    duration: float = 0.0
    errors: list[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "items_synced": self.items_synced,
            "duration": round(self.duration, 3),
            "errors": list(self.errors),
            "aborted": self.aborted,
        }
