# /tests/test_payloads.py
# MediaSync - request bodies and row parsing for the HTTP-backed adapters
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from datetime import datetime, timezone

from ms_platform.config_base import status_mapping_for
from ms_platform.id_map import MediaIds
from ms_platform.media import MediaType, NormalizedStatus, RatingSource
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from providers.sync._mod_base import StatusMappingConfig
from providers.sync.plex import _common as plex
from providers.sync.simkl import _activities, _history as simkl_history, _watchlist as simkl_watchlist
from providers.sync.simkl import _common as simkl
from providers.sync.trakt import _common as trakt
from providers.sync.trakt import _reviews as trakt_reviews

WHEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_trakt_body_groups_by_kind() -> None:
    ep = MediaType.for_episode(1, 2)
    items = [
        Rating(imdb_id="tt0133093", rating=9, date_added=WHEN, source=RatingSource.PLEX, ids=MediaIds(tmdb_id=603, simkl_id=5)),
        Rating(imdb_id="tt0903747", rating=8, media_type=MediaType.show(), source=RatingSource.PLEX),
        Rating(imdb_id="", rating=7, media_type=ep, ids=MediaIds(trakt_id=73482, slug="pilot")),
        Rating(imdb_id="", rating=6),
    ]
    body = trakt.build_body(items, lambda r: {"rating": r.rating})
    assert body["movies"] == [{"ids": {"imdb": "tt0133093", "tmdb": 603}, "rating": 9}]
    assert body["shows"][0]["ids"] == {"imdb": "tt0903747"}
    # episodes are addressed by their own ids; slugs are show-level only
    assert body["episodes"] == [{"ids": {"trakt": 73482}, "rating": 7}]
    assert trakt.body_size(body) == 3


def test_trakt_history_stamp_and_kind_filter() -> None:
    h = WatchHistory(imdb_id="tt1", watched_at=WHEN)
    body = trakt.build_body([h], trakt.stamp("watched_at", "watched_at"), kinds=("movies",))
    assert body == {"movies": [{"ids": {"imdb": "tt1"}, "watched_at": "2024-05-01T12:00:00Z"}]}
    show = WatchHistory(imdb_id="tt2", media_type=MediaType.show())
    assert trakt.build_body([show], kinds=("movies",)) == {}


def test_trakt_parse_episode_row() -> None:
    row = {
        "type": "episode",
        "episode": {"season": 1, "number": 1, "title": "Pilot", "ids": {"trakt": 73482, "imdb": "tt0959621"}, "first_aired": "2008-01-20T02:00:00.000Z"},
        "show": {"title": "Breaking Bad", "year": 2008, "ids": {"trakt": 1388}},
    }
    mt, ids, title, year = trakt.parse_media(row)
    assert mt.is_episode and (mt.season, mt.episode) == (1, 1)
    assert ids.imdb_id == "tt0959621" and ids.trakt_id == 73482
    assert ids.show_title == "Breaking Bad" and ids.episode_title == "Pilot"
    assert ids.original_air_date == "2008-01-20"
    assert title == "Breaking Bad: Pilot" and year == 2008
    assert trakt.parse_media({"type": "person"}) is None


def test_trakt_review_rules() -> None:
    short = Review(imdb_id="tt1", content="too short")
    long = Review(imdb_id="tt1", content="one two three four five", is_spoiler=True)
    assert not trakt_reviews.is_postable(short)
    assert trakt_reviews.is_postable(long)
    assert trakt_reviews.post_body(long) == {"movie": {"ids": {"imdb": "tt1"}}, "comment": long.content, "spoiler": True}
    assert trakt_reviews.post_body(Review(imdb_id="", content="x")) is None


def test_simkl_body_skips_episodes_and_trakt_ids() -> None:
    items = [
        WatchlistItem(imdb_id="tt1", title="One", year=2001, ids=MediaIds(trakt_id=9, simkl_id=4)),
        WatchlistItem(imdb_id="tt2", title="Ep", media_type=MediaType.for_episode(1, 1)),
    ]
    body = simkl.build_body(items)
    assert body == {"movies": [{"ids": {"imdb": "tt1", "simkl": 4}, "title": "One", "year": 2001}]}


def test_simkl_watchlist_parse_maps_status() -> None:
    payload = {
        "movies": [{"status": "completed", "added_to_watchlist_at": "2024-01-02T03:04:05Z",
                    "movie": {"title": "Heat", "year": 1995, "ids": {"simkl_id": 53, "imdb": "tt0113277"}}}],
        "anime": [{"status": "hold", "show": {"title": "Mushishi", "ids": {"simkl": 40, "mal": "457"}}}],
        "shows": [{"status": "watching", "show": {"title": "No ids", "ids": {}}}],
    }
    smap = StatusMappingConfig.from_mapping(status_mapping_for({}, "simkl"))
    items = simkl_watchlist.parse(payload, smap)
    assert [(i.title, i.status) for i in items] == [
        ("Heat", NormalizedStatus.COMPLETED),
        ("Mushishi", NormalizedStatus.HOLD),
    ]
    assert items[0].ids.simkl_id == 53
    assert items[1].media_type.is_show


def test_simkl_history_needs_timestamp() -> None:
    payload = {"movies": [
        {"last_watched_at": "2024-02-02T20:00:00Z", "movie": {"title": "A", "ids": {"imdb": "tt1"}}},
        {"last_watched_at": None, "movie": {"title": "B", "ids": {"imdb": "tt2"}}},
    ]}
    assert [h.imdb_id for h in simkl_history.parse(payload)] == ["tt1"]


def test_simkl_activity_window() -> None:
    saved = {"all": "2024-05-01T00:00:00Z"}
    assert _activities.plan({"all": "2024-05-01T00:00:00Z"}, saved, force=False).changed is False
    w = _activities.plan({"all": "2024-05-02T00:00:00Z"}, saved, force=False)
    assert w.changed and w.date_from == "2024-05-01T00:00:00Z" and not w.full
    assert _activities.plan({"all": "x"}, None, force=False).full
    assert _activities.plan({"all": "same"}, {"all": "same"}, force=True).full


def test_plex_guid_helpers() -> None:
    assert plex.discover_key("plex://movie/5d776b59ad5437001f79c6f8") == "5d776b59ad5437001f79c6f8"
    assert plex.discover_key("imdb://tt1") is None
    ids = MediaIds(imdb_id="tt0133093", tmdb_id=603, plex_rating_key="5d776b59ad5437001f79c6f8", media_type=MediaType.movie())
    assert plex.candidate_guids(ids) == ["plex://movie/5d776b59ad5437001f79c6f8", "imdb://tt0133093", "tmdb://603"]
    # numeric keys are local library keys, not Discover guids
    assert plex.candidate_guids(MediaIds(plex_rating_key="1234")) == []


def test_plex_discover_row_ids() -> None:
    row = {"type": "movie", "title": "The Matrix", "year": 1999, "ratingKey": "5d776b59ad5437001f79c6f8",
           "Guid": [{"id": "imdb://tt0133093"}, {"id": "tmdb://603"}]}
    ids = plex.ids_from_discover(row)
    assert ids.imdb_id == "tt0133093" and ids.tmdb_id == 603
    assert ids.plex_rating_key == "5d776b59ad5437001f79c6f8"
    assert plex.media_type_of("season").is_show
    assert plex.plex_time(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
