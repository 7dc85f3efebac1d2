# /tests/test_distribution.py
# MediaSync - per-target distribution tests
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from ms_platform.cache import CacheManager
from ms_platform.credentials import CredentialStore
from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType, NormalizedStatus, RatingSource
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from ms_platform.orchestrator._distribution import (
    DistributionOptions,
    ImdbDistribution,
    PlexDistribution,
    SimklDistribution,
    TraktDistribution,
    strategy_for,
)
from ms_platform.orchestrator._types import ResolvedData, SourceData


def ts(s: str) -> datetime:
    return datetime.fromisoformat(s).replace(tzinfo=timezone.utc)


def wl(imdb: str, source: str = "plex", status=NormalizedStatus.WATCHLIST, mt=None, when="2024-03-01T10:00:00", **kw) -> WatchlistItem:
    return WatchlistItem(imdb_id=imdb, title=kw.pop("title", imdb), date_added=ts(when), source=source,
                         status=status, media_type=mt or MediaType.movie(), **kw)


def test_watched_filter_excludes_item() -> None:
    resolved = ResolvedData(
        watchlist=[wl("tt0000001")],
        watch_history=[WatchHistory(imdb_id="tt0000001", watched_at=ts("2024-01-01T10:00:00"), source="plex")],
    )
    res = TraktDistribution("trakt").prepare(resolved, SourceData(), DistributionOptions(remove_watched_from_watchlists=True))
    assert res.watchlist == []
    reasons = [e.reason for e in res.excluded["plex"]]
    assert any(r.startswith("watched filter:") for r in reasons)


def test_completed_movie_moves_to_history_on_trakt_but_stays_on_simkl() -> None:
    resolved = ResolvedData(watchlist=[wl("tt0000002", status=NormalizedStatus.COMPLETED)])
    opts = DistributionOptions()
    trakt = TraktDistribution("trakt").prepare(resolved, SourceData(), opts)
    assert trakt.watchlist == []
    assert [h.imdb_id for h in trakt.watchlist_to_history] == ["tt0000002"]

    simkl = SimklDistribution().prepare(resolved, SourceData(), opts)
    assert [w.imdb_id for w in simkl.watchlist] == ["tt0000002"]
    assert simkl.watchlist_to_history == []


def test_trakt_drops_watched_shows_from_both_buckets() -> None:
    resolved = ResolvedData(
        watchlist=[wl("tt9", status=NormalizedStatus.WATCHING, mt=MediaType.show())],
        watch_history=[WatchHistory(imdb_id="tt8", media_type=MediaType.show(), source="plex")],
    )
    res = TraktDistribution("trakt").prepare(resolved, SourceData(), DistributionOptions())
    assert res.watchlist == [] and res.watchlist_to_history == [] and res.watch_history == []
    assert res.excluded_count() == 2


def test_imdb_split_and_plex_drops_held_items() -> None:
    resolved = ResolvedData(watchlist=[
        wl("tt1", source="simkl", status=NormalizedStatus.WATCHING),
        wl("tt2", source="simkl", status=None),
        wl("tt3", source="simkl", status=NormalizedStatus.HOLD),
    ])
    imdb = ImdbDistribution("imdb").prepare(resolved, SourceData(), DistributionOptions())
    assert [h.imdb_id for h in imdb.watchlist_to_history] == ["tt1"]
    assert [w.imdb_id for w in imdb.watchlist] == ["tt2"]

    plex = PlexDistribution("plex").prepare(resolved, SourceData(), DistributionOptions())
    assert [w.imdb_id for w in plex.watchlist] == ["tt2"]
    assert plex.excluded_count() == 1


def test_missing_identifier_is_excluded(tmp_path: Path) -> None:
    cache = CacheManager(tmp_path)
    resolved = ResolvedData(watchlist=[WatchlistItem(imdb_id="", title="Only a title", source="imdb")])
    res = strategy_for("trakt", cache=cache).prepare(resolved, SourceData(), DistributionOptions())
    assert res.watchlist == []
    saved = cache.load_excluded("imdb")
    assert [e.reason for e in saved] == ["no identifier"]
    assert saved[0].title == "Only a title"


def test_source_filter_never_writes_back_to_origin() -> None:
    resolved = ResolvedData(ratings=[Rating(imdb_id="tt1", rating=7, source=RatingSource.TRAKT)])
    res = TraktDistribution("trakt").prepare(resolved, SourceData(), DistributionOptions())
    assert res.ratings == []
    assert res.excluded["trakt"][0].reason.startswith("source filter:")


def test_dedup_against_target_requires_equal_value() -> None:
    resolved = ResolvedData(
        ratings=[
            Rating(imdb_id="tt1", rating=7, source=RatingSource.PLEX),
            Rating(imdb_id="tt2", rating=5, source=RatingSource.PLEX),
        ],
        reviews=[Review(imdb_id="tt1", content="same words", source="imdb")],
    )
    existing = SourceData(
        ratings=[
            Rating(imdb_id="", rating=7, source=RatingSource.TRAKT, ids=MediaIds(imdb_id="tt1", trakt_id=1)),
            Rating(imdb_id="tt2", rating=6, source=RatingSource.TRAKT),
        ],
        reviews=[Review(imdb_id="tt1", content="same words", source="trakt")],
    )
    res = TraktDistribution("trakt").prepare(resolved, existing, DistributionOptions())
    assert [r.imdb_id for r in res.ratings] == ["tt2"]
    assert res.reviews == []
    assert res.dedup_dropped == {"ratings": 1, "reviews": 1}


def test_incremental_filter_uses_last_sync_and_date_only(tmp_path: Path) -> None:
    creds = CredentialStore(tmp_path / "c.json")
    creds.set_last_sync_timestamp("trakt", "ratings", ts("2024-03-01T12:00:00"))
    resolved = ResolvedData(ratings=[
        Rating(imdb_id="tt1", rating=7, date_added=ts("2024-03-01T11:00:00"), source=RatingSource.PLEX),
        Rating(imdb_id="tt2", rating=7, date_added=ts("2024-03-01T00:00:00"), source=RatingSource.IMDB),
        Rating(imdb_id="tt3", rating=7, date_added=ts("2024-03-02T09:00:00"), source=RatingSource.PLEX),
    ])
    strat = strategy_for("trakt", credentials=creds)
    res = strat.prepare(resolved, SourceData(), DistributionOptions())
    assert [r.imdb_id for r in res.ratings] == ["tt2", "tt3"]
    assert res.excluded["plex"][0].reason.startswith("timestamp filter:")

    full = strat.prepare(resolved, SourceData(), DistributionOptions(force_full_sync=True))
    assert len(full.ratings) == 3


def test_simkl_ignores_local_stamps(tmp_path: Path) -> None:
    creds = CredentialStore(tmp_path / "c.json")
    creds.set_last_sync_timestamp("simkl", "ratings", ts("2030-01-01T00:00:00"))
    resolved = ResolvedData(ratings=[Rating(imdb_id="tt1", rating=7, date_added=ts("2024-01-01T10:00:00"), source=RatingSource.TRAKT)])
    strat = strategy_for("simkl", credentials=creds)
    assert len(strat.prepare(resolved, SourceData(), DistributionOptions()).ratings) == 1
    strat.on_sync_complete("ratings", 1)
    assert creds.get_last_sync_timestamp("simkl", "ratings") == ts("2030-01-01T00:00:00")


def test_on_sync_complete_stamps(tmp_path: Path) -> None:
    creds = CredentialStore(tmp_path / "c.json")
    strat = strategy_for("plex", credentials=creds, now=lambda: ts("2024-06-01T08:00:00"))
    strat.on_sync_complete("watchlist", 3)
    assert CredentialStore(tmp_path / "c.json").load().get("plex_last_sync_watchlist") == "2024-06-01T08:00:00Z"


def test_every_input_is_written_excluded_or_deduped(tmp_path: Path) -> None:
    creds = CredentialStore(tmp_path / "c.json")
    creds.set_last_sync_timestamp("plex", "watchlist", ts("2024-02-01T12:00:00"))
    items = [
        wl("tt1", source="trakt", when="2024-01-01T10:00:00"),      # timestamp filter
        wl("tt2", source="plex"),                                   # source filter
        WatchlistItem(imdb_id="", title="x", source="imdb"),        # no identifier
        wl("tt4", source="trakt"),                                  # dedup
        wl("tt5", source="trakt"),                                  # watched filter
        wl("tt6", source="simkl"),                                  # written
        wl("tt7", source="simkl", status=NormalizedStatus.COMPLETED),  # split to history
    ]
    resolved = ResolvedData(
        watchlist=items,
        watch_history=[WatchHistory(imdb_id="tt5", watched_at=ts("2024-01-01T10:00:00"), source="trakt")],
    )
    existing = SourceData(watchlist=[wl("tt4", source="plex")])
    res = strategy_for("plex", credentials=creds).prepare(
        resolved, existing, DistributionOptions(remove_watched_from_watchlists=True, sync_watch_history=False)
    )
    written = len(res.watchlist) + len(res.watchlist_to_history)
    assert written + res.excluded_count() + sum(res.dedup_dropped.values()) == len(items)
    assert [w.imdb_id for w in res.watchlist] == ["tt6"]
