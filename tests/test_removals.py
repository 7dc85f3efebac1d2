# /tests/test_removals.py
# MediaSync - watchlist removal list tests
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from datetime import datetime, timezone

from ms_platform.id_map import MediaIds
from ms_platform.media import NormalizedStatus
from ms_platform.models import WatchHistory, WatchlistItem
from ms_platform.orchestrator._removals import build_removal_lists, filter_additions
from ms_platform.orchestrator._types import SourceData

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def wl(imdb: str, source: str, when: str = "2024-05-01", status=None, **ids) -> WatchlistItem:
    return WatchlistItem(
        imdb_id=imdb,
        title=imdb,
        date_added=datetime.fromisoformat(when).replace(tzinfo=timezone.utc),
        source=source,
        status=status,
        ids=MediaIds(imdb_id=imdb or None, **ids) if (imdb or ids) else None,
    )


def test_watched_items_leave_target_watchlist() -> None:
    collected = {"trakt": SourceData(watchlist=[wl("tt0000001", "trakt"), wl("tt2", "trakt")])}
    history = [WatchHistory(imdb_id="tt0000001", source="plex")]
    out = build_removal_lists(collected, history, remove_watched=True, now=NOW)
    assert [i.imdb_id for i in out["trakt"]] == ["tt0000001"]

    off = build_removal_lists(collected, history, remove_watched=False, now=NOW)
    assert off["trakt"] == []


def test_age_limit() -> None:
    collected = {"plex": SourceData(watchlist=[wl("tt1", "plex", "2023-01-01"), wl("tt2", "plex", "2024-05-20")])}
    out = build_removal_lists(collected, [], older_than_days=90, now=NOW)
    assert [i.imdb_id for i in out["plex"]] == ["tt1"]


def test_simkl_dropped_removed_from_other_targets() -> None:
    collected = {
        "simkl": SourceData(watchlist=[wl("", "simkl", status=NormalizedStatus.DROPPED, simkl_id=7, tmdb_id=55)]),
        "trakt": SourceData(watchlist=[wl("tt55", "trakt", tmdb_id=55, trakt_id=3)]),
        "plex": SourceData(watchlist=[wl("tt99", "plex")]),
    }
    out = build_removal_lists(collected, [], now=NOW)
    assert out["simkl"] == []
    assert out["plex"] == []
    (gone,) = out["trakt"]
    # the removal carries the target's own ids so the adapter can address it
    assert gone.ids.trakt_id == 3
    assert gone.ids.simkl_id == 7


def test_removal_list_is_deduped() -> None:
    collected = {"trakt": SourceData(watchlist=[wl("tt1", "trakt", "2020-01-01")])}
    history = [WatchHistory(imdb_id="tt1", source="plex")]
    out = build_removal_lists(collected, history, remove_watched=True, older_than_days=30, now=NOW)
    assert len(out["trakt"]) == 1


def test_filter_additions_skips_items_being_removed() -> None:
    adds = [wl("tt1", "plex"), wl("tt2", "plex")]
    removals = [wl("tt2", "trakt")]
    assert [a.imdb_id for a in filter_additions(adds, removals)] == ["tt1"]
