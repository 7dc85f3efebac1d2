# /tests/test_resolution.py
# MediaSync - conflict resolution tests
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from datetime import datetime, timezone

from ms_platform.id_map import MediaIds
from ms_platform.media import NormalizedStatus, RatingSource
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from ms_platform.orchestrator._resolution import (
    ResolutionPolicy,
    _Candidate,
    group_candidates,
    rated_implies_watched,
    resolve_all,
)
from ms_platform.orchestrator._types import SourceData


def ts(s: str) -> datetime:
    return datetime.fromisoformat(s).replace(tzinfo=timezone.utc)


def rating(imdb: str, value: int, when: str, source: RatingSource, **ids) -> Rating:
    return Rating(imdb_id=imdb, rating=value, date_added=ts(when), source=source, ids=MediaIds(imdb_id=imdb, **ids))


def policy(strategy: str = "Preference", tol: int = 60, prefs=("trakt", "plex")) -> ResolutionPolicy:
    return ResolutionPolicy(strategy=strategy, source_preference=tuple(prefs), tolerance_seconds=tol)


def test_single_source_rating_passes_through() -> None:
    a = SourceData(ratings=[rating("tt0111161", 9, "2024-01-01T10:00:00", RatingSource.TRAKT)])
    out = resolve_all([("trakt", a), ("plex", SourceData())], policy())
    assert [(r.imdb_id, r.rating) for r in out.ratings] == [("tt0111161", 9)]


def test_tie_within_tolerance_goes_to_preferred_source() -> None:
    a = SourceData(ratings=[rating("tt1", 8, "2024-01-01T00:00:00", RatingSource.TRAKT)])
    b = SourceData(ratings=[rating("tt1", 9, "2024-01-01T00:00:30", RatingSource.PLEX)])
    out = resolve_all([("trakt", a), ("plex", b)], policy())
    assert [r.rating for r in out.ratings] == [8]


def test_newest_wins_outside_tolerance_and_ids_merge() -> None:
    a = SourceData(ratings=[rating("tt1", 8, "2024-01-01T10:00:00", RatingSource.TRAKT, trakt_id=5)])
    b = SourceData(ratings=[rating("tt1", 6, "2024-03-01T10:00:00", RatingSource.PLEX, plex_rating_key="k")])
    out = resolve_all([("trakt", a), ("plex", b)], policy())
    (r,) = out.ratings
    assert r.rating == 6
    assert r.ids.trakt_id == 5
    assert r.ids.plex_rating_key == "k"


def test_oldest_strategy() -> None:
    a = SourceData(ratings=[rating("tt1", 8, "2024-01-01T10:00:00", RatingSource.TRAKT)])
    b = SourceData(ratings=[rating("tt1", 6, "2024-03-01T10:00:00", RatingSource.PLEX)])
    out = resolve_all([("trakt", a), ("plex", b)], policy("Oldest"))
    assert out.ratings[0].rating == 8


def test_date_only_stamps_compare_by_day() -> None:
    # midnight UTC on the same day as a timed rating: within any tolerance
    a = SourceData(ratings=[rating("tt1", 7, "2024-02-01T00:00:00", RatingSource.IMDB)])
    b = SourceData(ratings=[rating("tt1", 9, "2024-02-01T21:00:00", RatingSource.TRAKT)])
    out = resolve_all([("imdb", a), ("trakt", b)], policy(prefs=("imdb", "trakt")))
    assert out.ratings[0].rating == 7


def test_items_join_on_any_shared_id() -> None:
    a = SourceData(ratings=[Rating(imdb_id="", rating=5, date_added=ts("2024-01-01T10:00:00"), ids=MediaIds(tmdb_id=603))])
    b = SourceData(ratings=[rating("tt0133093", 5, "2024-01-01T10:00:10", RatingSource.PLEX, tmdb_id=603)])
    out = resolve_all([("trakt", a), ("plex", b)], policy())
    assert len(out.ratings) == 1
    assert out.ratings[0].ids.imdb_id == "tt0133093"


def test_merge_watchlist_prefers_status_then_newer() -> None:
    plain = WatchlistItem(imdb_id="tt1", title="A", date_added=ts("2024-05-01T00:00:00"), source="trakt")
    status = WatchlistItem(imdb_id="tt1", title="A", date_added=ts("2024-01-01T00:00:00"), source="simkl",
                           status=NormalizedStatus.WATCHING, ids=MediaIds(simkl_id=3))
    older = WatchlistItem(imdb_id="tt2", title="B", date_added=ts("2024-01-01T00:00:00"), source="trakt")
    newer = WatchlistItem(imdb_id="tt2", title="B", date_added=ts("2024-02-01T00:00:00"), source="plex")
    out = resolve_all(
        [("trakt", SourceData(watchlist=[plain, older])), ("simkl", SourceData(watchlist=[status])), ("plex", SourceData(watchlist=[newer]))],
        policy("Merge", prefs=("trakt", "simkl", "plex")),
    )
    by_id = {w.imdb_id: w for w in out.watchlist}
    assert by_id["tt1"].status is NormalizedStatus.WATCHING
    assert by_id["tt1"].ids.imdb_id == "tt1"
    assert by_id["tt2"].source == "plex"


def test_reviews_and_history_union_dedup() -> None:
    r1 = Review(imdb_id="tt1", content="great film", date_added=ts("2024-01-01T10:00:00"), source="trakt")
    r2 = Review(imdb_id="tt1", content="great film", date_added=ts("2024-01-02T10:00:00"), source="imdb")
    r3 = Review(imdb_id="tt2", content="meh", date_added=ts("2024-01-03T10:00:00"), source="imdb")
    h1 = WatchHistory(imdb_id="tt1", watched_at=ts("2024-01-01T10:00:00"), source="trakt")
    h2 = WatchHistory(imdb_id="tt1", watched_at=ts("2024-01-01T10:00:01"), source="plex")
    h3 = WatchHistory(imdb_id="tt1", watched_at=ts("2024-02-01T10:00:00"), source="plex")
    out = resolve_all(
        [("trakt", SourceData(reviews=[r1], watch_history=[h1])), ("plex", SourceData(reviews=[r2, r3], watch_history=[h2, h3]))],
        policy(),
    )
    assert [r.content for r in out.reviews] == ["meh", "great film"]
    assert [h.watched_at for h in out.watch_history] == [h3.watched_at, h1.watched_at]


def test_resolution_is_deterministic() -> None:
    def build():
        a = SourceData(ratings=[rating("tt1", 8, "2024-01-01T10:00:00", RatingSource.TRAKT),
                                rating("tt2", 3, "2024-01-05T10:00:00", RatingSource.TRAKT)])
        b = SourceData(ratings=[rating("tt1", 9, "2024-01-01T10:00:20", RatingSource.PLEX),
                                rating("tt3", 4, "2024-01-05T10:00:00", RatingSource.PLEX)])
        return [("trakt", a), ("plex", b)]

    first = resolve_all(build(), policy())
    second = resolve_all(build(), policy())
    assert [(r.imdb_id, r.rating) for r in first.ratings] == [(r.imdb_id, r.rating) for r in second.ratings]


def test_rated_implies_watched_skips_shows_and_existing() -> None:
    from ms_platform.media import MediaType

    out = resolve_all(
        [("trakt", SourceData(
            ratings=[
                rating("tt1", 8, "2024-01-01T10:00:00", RatingSource.TRAKT),
                Rating(imdb_id="tt2", rating=7, media_type=MediaType.show(), source=RatingSource.TRAKT),
                rating("tt3", 6, "2024-01-01T10:00:00", RatingSource.TRAKT),
            ],
            watch_history=[WatchHistory(imdb_id="tt3", watched_at=ts("2023-01-01T10:00:00"), source="trakt")],
        ))],
        policy(prefs=("trakt",)),
    )
    assert rated_implies_watched(out) == 1
    assert {h.imdb_id for h in out.watch_history} == {"tt1", "tt3"}


def test_grouping_joins_the_first_matching_group() -> None:
    recs = [
        Rating(imdb_id="", rating=5, ids=MediaIds(tmdb_id=603)),
        Rating(imdb_id="tt2", rating=6),
        Rating(imdb_id="tt2", rating=7, ids=MediaIds(tmdb_id=603)),
        Rating(imdb_id="", rating=8),
        Rating(imdb_id="", rating=9),
    ]
    groups = group_candidates([_Candidate(source="trakt", record=r, order=i) for i, r in enumerate(recs)])
    assert [[c.order for c in g] for g in groups] == [[0, 2], [1], [3], [4]]


def test_large_union_keeps_one_entry_per_item() -> None:
    base = ts("2024-01-01T00:00:00")
    a = SourceData(watch_history=[WatchHistory(imdb_id=f"tt{i}", watched_at=base) for i in range(2000)])
    b = SourceData(watch_history=[WatchHistory(imdb_id=f"tt{i}", watched_at=base) for i in range(1000, 3000)])
    out = resolve_all([("trakt", a), ("plex", b)], policy())
    assert len(out.watch_history) == 3000
