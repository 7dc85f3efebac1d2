# /tests/test_orchestrator_sync.py
# MediaSync - end-to-end orchestrator runs over fake sources
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import copy
import io
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Sequence

import pytest

from _logging import Logger
from ms_platform.cache import CacheManager
from ms_platform.config_base import load_config
from ms_platform.credentials import CredentialStore
from ms_platform.id_cache import IdCache
from ms_platform.id_resolver import IdResolver
from ms_platform.media import RatingSource
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from ms_platform.orchestrator import Orchestrator
from ms_platform.timeutil import utcnow
from providers.sync._mod_base import AuthError, Capability, NotSupportedError, ScaledRatings


def ts(s: str) -> datetime:
    return datetime.fromisoformat(s).replace(tzinfo=timezone.utc)


@dataclass
class FakeSource:
    name: str
    watchlist: list[WatchlistItem] = field(default_factory=list)
    ratings: list[Rating] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    history: list[WatchHistory] = field(default_factory=list)
    fail_auth: bool = False
    reviews_supported: bool = True
    scale: int = 0
    library: set[str] | None = None
    calls: list[tuple[str, int]] = field(default_factory=list)
    reads: int = 0
    cleaned: bool = False

    def source_name(self) -> str:
        return self.name

    def authenticate(self) -> None:
        if self.fail_auth:
            raise AuthError(f"{self.name}: bad token", source=self.name)

    def get_watchlist(self) -> list[WatchlistItem]:
        self.reads += 1
        return copy.deepcopy(self.watchlist)

    def get_ratings(self) -> list[Rating]:
        return copy.deepcopy(self.ratings)

    def get_reviews(self) -> list[Review]:
        return copy.deepcopy(self.reviews)

    def get_watch_history(self) -> list[WatchHistory]:
        return copy.deepcopy(self.history)

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        self.calls.append(("add_to_watchlist", len(items)))
        self.watchlist += [replace(i, source=self.name) for i in items]

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        self.calls.append(("remove_from_watchlist", len(items)))
        gone = [i for i in self.watchlist if any(i.same_item(x) for x in items)]
        self.watchlist = [i for i in self.watchlist if i not in gone]

    def set_ratings(self, ratings: Sequence[Rating]) -> int:
        landed = [r for r in ratings if self.library is None or r.imdb_id in self.library]
        self.calls.append(("set_ratings", len(landed)))
        self.ratings += [replace(r, source=RatingSource(self.name)) for r in landed]
        return len(landed)

    def set_reviews(self, reviews: Sequence[Review]) -> None:
        if not self.reviews_supported:
            raise NotSupportedError("no reviews", source=self.name)
        self.calls.append(("set_reviews", len(reviews)))
        self.reviews += [replace(r, source=self.name) for r in reviews]

    def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        self.calls.append(("add_watch_history", len(items)))
        self.history += [replace(h, source=self.name) for h in items]

    def cleanup(self) -> None:
        self.cleaned = True

    def capability(self, cap: Capability) -> Any | None:
        if cap is Capability.RATING_NORMALIZATION and self.scale:
            return ScaledRatings(self.scale)
        return None

    def written(self, method: str) -> int:
        return sum(n for m, n in self.calls if m == method)


def _cfg(*prefs: str, **sync: Any) -> dict[str, Any]:
    cfg = load_config(Path("/nonexistent/config.json"))
    for p in prefs:
        cfg[p]["enabled"] = True
    cfg["resolution"]["source_preference"] = list(prefs)
    cfg["resolution"]["timestamp_tolerance_seconds"] = 60
    cfg["runtime"]["max_workers"] = 2
    cfg["sync"].update(sync)
    return cfg


@pytest.fixture()
def env(tmp_path: Path):
    made: list[IdResolver] = []

    def run(cfg: dict[str, Any], sources: Sequence[FakeSource]):
        resolver = IdResolver(IdCache())
        made.append(resolver)
        orch = Orchestrator(
            cfg,
            list(sources),
            CredentialStore(tmp_path / "credentials.json"),
            CacheManager(tmp_path / "cache"),
            resolver,
            logger=Logger(stream=io.StringIO(), use_color=False),
        )
        return orch.run()

    run.cache_root = tmp_path / "cache"  # type: ignore[attr-defined]
    run.credentials_path = tmp_path / "credentials.json"  # type: ignore[attr-defined]
    yield run
    for r in made:
        r.close()


def test_rating_migrates_to_the_other_source(env) -> None:
    a = FakeSource("trakt", ratings=[Rating(imdb_id="tt0111161", rating=9, date_added=ts("2024-01-01T10:00:00"), source=RatingSource.TRAKT)])
    b = FakeSource("plex")
    out = env(_cfg("trakt", "plex"), [a, b])
    assert out.ok and not out.aborted
    assert b.written("set_ratings") == 1
    assert a.written("set_ratings") == 0
    assert [(r.imdb_id, r.rating) for r in b.ratings] == [("tt0111161", 9)]
    assert a.cleaned and b.cleaned


def test_second_run_writes_nothing(env) -> None:
    a = FakeSource(
        "trakt",
        watchlist=[WatchlistItem(imdb_id="tt1", title="One", date_added=ts("2024-01-01T10:00:00"), source="trakt")],
        ratings=[Rating(imdb_id="tt2", rating=7, date_added=ts("2024-01-02T10:00:00"), source=RatingSource.TRAKT)],
        history=[WatchHistory(imdb_id="tt3", watched_at=ts("2024-01-03T10:00:00"), source="trakt")],
    )
    b = FakeSource("plex", history=[WatchHistory(imdb_id="tt4", watched_at=ts("2024-01-04T10:00:00"), source="plex")])
    cfg = _cfg("trakt", "plex", force_full_sync=True)
    first = env(cfg, [a, b])
    assert first.items_synced == 4
    a.calls.clear()
    b.calls.clear()
    second = env(cfg, [a, b])
    assert second.items_synced == 0
    assert a.calls == [] and b.calls == []


def test_nothing_is_written_back_to_its_origin(env) -> None:
    a = FakeSource("trakt", watchlist=[WatchlistItem(imdb_id="tt1", title="One", source="trakt")])
    b = FakeSource("plex", watchlist=[WatchlistItem(imdb_id="tt2", title="Two", source="plex")])
    env(_cfg("trakt", "plex"), [a, b])
    assert [w.imdb_id for w in a.watchlist] == ["tt1", "tt2"]
    assert [w.imdb_id for w in b.watchlist] == ["tt2", "tt1"]


def test_dry_run_writes_previews_only(env) -> None:
    a = FakeSource("trakt", watchlist=[WatchlistItem(imdb_id="tt1", title="One", source="trakt")])
    b = FakeSource("plex")
    out = env(_cfg("trakt", "plex", dry_run=["plex"]), [a, b])
    assert out.items_synced == 0
    assert b.calls == []
    preview = json.loads((env.cache_root / "distribute" / "plex" / "watchlist.json").read_text("utf-8"))
    assert [p["imdb_id"] for p in preview] == ["tt1"]


def test_primary_auth_failure_aborts_before_any_read(env) -> None:
    a = FakeSource("trakt", fail_auth=True)
    b = FakeSource("plex")
    out = env(_cfg("trakt", "plex"), [a, b])
    assert out.aborted
    assert a.reads == 0 and b.reads == 0
    assert any("trakt authenticate" in e for e in out.errors)


def test_secondary_auth_failure_skips_that_source(env) -> None:
    a = FakeSource("trakt", ratings=[Rating(imdb_id="tt1", rating=5, source=RatingSource.TRAKT)])
    b = FakeSource("plex", fail_auth=True)
    out = env(_cfg("trakt", "plex"), [a, b])
    assert not out.aborted
    assert b.calls == [] and b.reads == 0
    assert len(out.errors) == 1


def test_missing_identifier_lands_in_excluded(env) -> None:
    a = FakeSource("trakt")
    d = FakeSource("plex", watchlist=[WatchlistItem(imdb_id="", title="Untraceable", source="plex")])
    env(_cfg("trakt", "plex"), [a, d])
    collected = json.loads((env.cache_root / "collect" / "plex" / "watchlist.json").read_text("utf-8"))
    assert len(collected) == 1
    assert a.written("add_to_watchlist") == 0
    excluded = json.loads((env.cache_root / "collect" / "plex" / "excluded.json").read_text("utf-8"))
    reasons = sorted(e["reason"] for e in excluded)
    assert reasons[0] == "no identifier"
    assert reasons[1].startswith("source filter:")


def test_unsupported_reviews_are_reported_not_fatal(env) -> None:
    a = FakeSource("trakt", reviews=[Review(imdb_id="tt1", content="a fine film indeed", source="trakt")],
                   ratings=[Rating(imdb_id="tt1", rating=8, source=RatingSource.TRAKT)])
    b = FakeSource("plex", reviews_supported=False)
    out = env(_cfg("trakt", "plex"), [a, b])
    assert b.written("set_ratings") == 1
    assert any("plex reviews" in e for e in out.errors)


def test_use_cache_skips_the_fetch(env) -> None:
    a = FakeSource("trakt")
    b = FakeSource("plex", watchlist=[WatchlistItem(imdb_id="tt2", title="Two", source="plex")])
    env(_cfg("trakt", "plex"), [a, b])
    assert b.reads == 1
    b.watchlist = []
    a.calls.clear()
    out = env(_cfg("trakt", "plex", use_cache=["plex"]), [a, b])
    assert out.ok
    assert b.reads == 1
    assert a.calls == []
    assert [w.imdb_id for w in a.watchlist] == ["tt2"]


def test_five_star_source_round_trips_through_the_ten_point_scale(env) -> None:
    a = FakeSource("trakt", ratings=[Rating(imdb_id="tt1", rating=7, date_added=ts("2024-01-01T10:00:00"), source=RatingSource.TRAKT)])
    b = FakeSource("plex", scale=5, ratings=[Rating(imdb_id="tt2", rating=4, date_added=ts("2024-01-02T10:00:00"), source=RatingSource.PLEX)])
    out = env(_cfg("trakt", "plex"), [a, b])
    assert out.ok
    # 7/10 lands as 3.5 stars, rounded half up
    assert [(r.imdb_id, r.rating) for r in b.ratings] == [("tt2", 4), ("tt1", 4)]
    assert [(r.imdb_id, r.rating) for r in a.ratings] == [("tt1", 7), ("tt2", 8)]


def test_last_sync_stamp_gates_the_next_run(env) -> None:
    a = FakeSource("trakt", ratings=[Rating(imdb_id="tt1", rating=9, date_added=ts("2024-01-01T10:00:00"), source=RatingSource.TRAKT)])
    b = FakeSource("plex")
    env(_cfg("trakt", "plex"), [a, b])
    assert b.written("set_ratings") == 1
    assert CredentialStore(env.credentials_path).load().get_last_sync_timestamp("plex", "ratings") is not None

    # the target lost the rating; only the stamp keeps it from being resent
    b.ratings = []
    b.calls.clear()
    a.ratings.append(Rating(imdb_id="tt2", rating=6, date_added=utcnow() + timedelta(hours=1), source=RatingSource.TRAKT))
    out = env(_cfg("trakt", "plex"), [a, b])
    assert out.items_synced == 1
    assert [r.imdb_id for r in b.ratings] == ["tt2"]
    excluded = json.loads((env.cache_root / "collect" / "trakt" / "excluded.json").read_text("utf-8"))
    assert any(e["reason"].startswith("timestamp filter:") for e in excluded)


def test_partially_written_ratings_are_not_stamped(env) -> None:
    a = FakeSource("trakt", ratings=[
        Rating(imdb_id="tt1", rating=8, date_added=ts("2024-01-01T10:00:00"), source=RatingSource.TRAKT),
        Rating(imdb_id="tt2", rating=6, date_added=ts("2024-01-02T10:00:00"), source=RatingSource.TRAKT),
    ])
    b = FakeSource("plex", library={"tt1"})
    first = env(_cfg("trakt", "plex"), [a, b])
    assert first.items_synced == 1
    assert CredentialStore(env.credentials_path).load().get_last_sync_timestamp("plex", "ratings") is None

    b.library = {"tt1", "tt2"}
    b.calls.clear()
    second = env(_cfg("trakt", "plex"), [a, b])
    assert second.items_synced == 1
    assert sorted(r.imdb_id for r in b.ratings) == ["tt1", "tt2"]
    assert CredentialStore(env.credentials_path).load().get_last_sync_timestamp("plex", "ratings") is not None
