# /tests/test_id_resolver.py
# MediaSync - id resolver tests (priority, background enrichment, cooldown)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from ms_platform.id_cache import IdCache
from ms_platform.id_map import MediaIds
from ms_platform.id_resolver import COOLDOWN_SECONDS, IdResolver
from ms_platform.media import MediaType

MOVIE = MediaType.movie()


@dataclass
class FakeLookup:
    name: str
    prio: int
    answer: MediaIds | None = None
    available: bool = True
    calls: list[tuple[str, Any]] = field(default_factory=list)

    def provider_name(self) -> str:
        return self.name

    def priority(self) -> int:
        return self.prio

    def is_available(self) -> bool:
        return self.available

    def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        self.calls.append((title, year))
        return self.answer.copy() if self.answer else None

    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType):
        self.calls.append((imdb_id, None))
        if self.answer and self.answer.imdb_id == imdb_id:
            return "Found", 2000, self.answer.copy()
        return None


class Clock:
    def __init__(self, t: float = 1_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


@pytest.fixture()
def resolver_factory():
    made: list[IdResolver] = []

    def make(*providers, **kw) -> IdResolver:
        r = IdResolver(IdCache(), providers, **kw)
        made.append(r)
        return r

    yield make
    for r in made:
        r.close()


def test_highest_priority_answers_synchronously(resolver_factory) -> None:
    hi = FakeLookup("trakt", 80, MediaIds(trakt_id=1))
    lo = FakeLookup("plex", 50, MediaIds(plex_rating_key="abc"))
    r = resolver_factory(lo, hi)
    ids, _stream = r.resolve_ids_for_item("Heat", 1995, MOVIE)
    assert ids.trakt_id == 1
    assert ids.title == "Heat"
    assert hi.calls == [("Heat", 1995)]


def test_background_enrichment_merges_into_cache(resolver_factory) -> None:
    hi = FakeLookup("trakt", 80, MediaIds(imdb_id="tt0113277", trakt_id=1))
    lo = FakeLookup("simkl", 70, MediaIds(imdb_id="tt0113277", simkl_id=9))
    r = resolver_factory(hi, lo)
    r.resolve_ids_for_item("Heat", 1995, MOVIE)
    r.wait()
    got = r.cache.find_by_imdb("tt0113277")
    assert got.trakt_id == 1
    assert got.simkl_id == 9


def test_cache_hit_skips_providers(resolver_factory) -> None:
    p = FakeLookup("trakt", 80, MediaIds(trakt_id=1))
    r = resolver_factory(p)
    r.cache.insert(MediaIds(imdb_id="tt1", title="Heat", year=1995, media_type=MOVIE))
    ids, _ = r.resolve_ids_for_item("Heat", 1995, MOVIE)
    assert ids.imdb_id == "tt1"
    assert p.calls == []


def test_miss_falls_through_to_next_provider(resolver_factory) -> None:
    miss = FakeLookup("trakt", 80, None)
    hit = FakeLookup("simkl", 70, MediaIds(simkl_id=5))
    r = resolver_factory(miss, hit)
    ids, _ = r.resolve_ids_for_item("Obscure", None, MOVIE)
    assert ids.simkl_id == 5
    assert miss.calls and hit.calls


def test_unavailable_provider_is_ignored(resolver_factory) -> None:
    off = FakeLookup("plex", 99, MediaIds(plex_rating_key="x"), available=False)
    on = FakeLookup("trakt", 10, MediaIds(trakt_id=3))
    r = resolver_factory(off, on)
    assert [p.provider_name() for p in r.providers()] == ["trakt"]


def test_cooldown_suppresses_repeat_misses(tmp_path: Path, resolver_factory) -> None:
    clock = Clock()
    miss = FakeLookup("trakt", 80, None)
    path = tmp_path / "cooldown.json"
    r = resolver_factory(miss, cooldown_path=path, clock=clock)
    assert r.resolve_ids_for_item("Nothing", 2020, MOVIE)[0] is None
    assert r.resolve_ids_for_item("Nothing", 2020, MOVIE)[0] is None
    assert len(miss.calls) == 1

    clock.t += COOLDOWN_SECONDS + 1
    r.resolve_ids_for_item("Nothing", 2020, MOVIE)
    assert len(miss.calls) == 2

    r.save_if_dirty()
    saved = json.loads(path.read_text("utf-8"))
    assert any(k.startswith("trakt|nothing|2020|movie") for k in saved)


def test_lookup_by_imdb_id_caches_result(resolver_factory) -> None:
    p = FakeLookup("trakt", 80, MediaIds(imdb_id="tt7", trakt_id=7))
    r = resolver_factory(p)
    title, year, ids = r.lookup_by_imdb_id("tt7", MOVIE)
    assert (title, year, ids.trakt_id) == ("Found", 2000, 7)
    # second call answered from the cache
    assert r.lookup_by_imdb_id("tt7", MOVIE)[0] == "Found"
    assert len(p.calls) == 1
