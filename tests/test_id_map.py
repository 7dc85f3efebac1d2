# /tests/test_id_map.py
# MediaSync - identifier bundle tests
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from ms_platform.id_map import MediaIds, ids_from_guid, match_by_any_id, normalize_id
from ms_platform.media import MediaType
from ms_platform.models import WatchlistItem


def test_ids_from_guid_common_patterns() -> None:
    assert ids_from_guid("com.plexapp.agents.imdb://tt1234567") == {"imdb": "tt1234567"}
    assert ids_from_guid("com.plexapp.agents.themoviedb://12345") == {"tmdb": 12345}
    assert ids_from_guid("com.plexapp.agents.thetvdb://987") == {"tvdb": 987}
    assert ids_from_guid("imdb://title/tt7654321") == {"imdb": "tt7654321"}
    assert ids_from_guid("tmdb://movie/550") == {"tmdb": 550}
    assert ids_from_guid("tvdb://series/121361") == {"tvdb": 121361}
    assert ids_from_guid("plex://movie/5d7769e8f") == {}
    assert ids_from_guid(None) == {}


def test_normalize_id_cleans_sentinels_and_spellings() -> None:
    assert normalize_id("imdb", "https://www.imdb.com/title/TT0111161/") == "tt0111161"
    assert normalize_id("imdb_id", "0111161") == "tt0111161"
    assert normalize_id("tmdb", " 550 ") == 550
    assert normalize_id("trakt", "null") is None
    assert normalize_id("simkl", "0") is None
    assert normalize_id("slug", "/The-Matrix/") == "the-matrix"


def test_from_ids_and_to_ids() -> None:
    ids = MediaIds.from_ids({"imdb": "tt0133093", "trakt": "481", "tmdb": 603, "slug": "the-matrix-1999"}, title="The Matrix")
    assert ids.imdb_id == "tt0133093"
    assert ids.trakt_id == 481
    assert ids.title == "The Matrix"
    assert ids.to_ids() == {"imdb": "tt0133093", "trakt": 481, "tmdb": 603, "slug": "the-matrix-1999"}


def test_from_guids_takes_first_of_each_kind() -> None:
    ids = MediaIds.from_guids(["imdb://tt0000001", "tmdb://10", "imdb://tt0000002"])
    assert ids.imdb_id == "tt0000001"
    assert ids.tmdb_id == 10


def test_get_any_id_priority() -> None:
    assert MediaIds(imdb_id="tt1", trakt_id=2).get_any_id() == "tt1"
    assert MediaIds(trakt_id=2, simkl_id=3).get_any_id() == "trakt:2"
    assert MediaIds(tvdb_id=9).get_any_id() == "tvdb:9"
    assert MediaIds(slug="x").get_any_id() == "x"
    assert MediaIds().get_any_id() is None


def test_best_id_for_source() -> None:
    ids = MediaIds(imdb_id="tt1", simkl_id=5, plex_rating_key="abc")
    assert ids.get_best_id_for_source("simkl") == "simkl:5"
    assert ids.get_best_id_for_source("plex") == "plex:abc"
    assert ids.get_best_id_for_source("trakt") == "tt1"


def test_merge_is_fill_only() -> None:
    a = MediaIds(imdb_id="tt1", trakt_id=None, title="A")
    b = MediaIds(imdb_id="tt999", trakt_id=7, title="B", year=2001)
    assert a.merge(b) is True
    assert a.imdb_id == "tt1"
    assert a.trakt_id == 7
    assert a.title == "A"
    assert a.year == 2001
    assert a.merge(b) is False
    assert a.merge(None) is False


def test_match_by_any_id() -> None:
    assert match_by_any_id(MediaIds(imdb_id="tt1"), MediaIds(imdb_id="tt1", tmdb_id=3))
    assert match_by_any_id(MediaIds(tmdb_id=3), MediaIds(imdb_id="tt2", tmdb_id=3))
    assert not match_by_any_id(MediaIds(imdb_id="tt1"), MediaIds(imdb_id="tt2"))
    assert not match_by_any_id(MediaIds(), MediaIds())
    assert not match_by_any_id(None, MediaIds(imdb_id="tt1"))


def test_dict_round_trip_keeps_media_type() -> None:
    ids = MediaIds(imdb_id="tt1", trakt_id=4, media_type=MediaType.for_episode(1, 2), show_title="Show")
    back = MediaIds.from_dict(ids.to_dict())
    assert back == ids
    assert MediaIds.from_dict({"trakt_id": "x"}).trakt_id is None


def test_record_bundle_carries_primary_id() -> None:
    item = WatchlistItem(imdb_id="tt0133093", title="The Matrix", year=1999)
    bundle = item.bundle()
    assert bundle.imdb_id == "tt0133093"
    assert item.has_identifier()
    assert not WatchlistItem(imdb_id="", title="Nothing").has_identifier()
