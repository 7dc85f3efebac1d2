# /tests/test_credentials.py
# MediaSync - credential store tests
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ms_platform.credentials import CredentialStore
from ms_platform.timeutil import utcnow


def test_missing_file_is_empty_and_save_creates_it(tmp_path: Path) -> None:
    p = tmp_path / "sub" / "credentials.json"
    store = CredentialStore(p).load()
    assert store.keys() == []
    store.set("plex_token", "abc")
    store.save()
    assert json.loads(p.read_text("utf-8")) == {"plex_token": "abc"}


def test_tokens_and_validity(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "c.json")
    store.set_tokens("trakt", "AT", "RT", utcnow() + timedelta(hours=1))
    assert store.get_access_token("trakt") == "AT"
    assert store.get_refresh_token("trakt") == "RT"
    assert store.token_valid_for("trakt")
    assert not store.token_valid_for("trakt", timedelta(hours=2))

    store.set_tokens("simkl", "ST")
    assert store.get_refresh_token("simkl") is None
    assert store.token_valid_for("simkl", timedelta(days=3650))

    store.clear_tokens("trakt")
    assert store.get_access_token("trakt") is None
    assert not store.token_valid_for("trakt")


def test_json_snapshot_accepts_dict_or_string(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "c.json")
    store.set_json("simkl_last_activities", {"all": "2024-01-01T00:00:00Z"})
    assert store.get_json("simkl_last_activities") == {"all": "2024-01-01T00:00:00Z"}
    store.set("legacy", '{"all": "x"}')
    assert store.get_json("legacy") == {"all": "x"}
    store.set("broken", "{nope")
    assert store.get_json("broken") is None
    store.set_json("simkl_last_activities", None)
    assert "simkl_last_activities" not in store.keys()


def test_last_sync_stamps(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "c.json")
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    store.set_last_sync_timestamp("trakt", "ratings", when)
    store.set_last_sync_timestamp("plex", "watchlist", when)
    assert store.get("trakt_last_sync_ratings") == "2024-05-01T12:00:00Z"
    assert store.get_last_sync_timestamp("trakt", "ratings") == when
    assert store.clear_last_sync("trakt") == 1
    assert store.get_last_sync_timestamp("plex", "watchlist") == when
    assert store.clear_last_sync() == 1


def test_round_trip_through_disk(tmp_path: Path) -> None:
    p = tmp_path / "c.json"
    a = CredentialStore(p)
    a.set_datetime("imdb_reviews_last_submitted_date", datetime(2024, 1, 2, tzinfo=timezone.utc))
    a.save()
    b = CredentialStore(p).load()
    assert b.get_datetime("imdb_reviews_last_submitted_date") == datetime(2024, 1, 2, tzinfo=timezone.utc)
