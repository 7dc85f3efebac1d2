# /ms_platform/media.py
# MediaSync - media kinds, normalized statuses and rating provenance
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = ["MediaType", "NormalizedStatus", "RatingSource"]

_MOVIE_WORDS = {"movie", "movies", "film", "feature", "tvmovie", "tv movie", "video", "short", "tvspecial", "tv special"}
_SHOW_WORDS = {"show", "shows", "tv", "series", "tvseries", "tv series", "tvminiseries", "tv mini series", "anime", "season"}
_EPISODE_WORDS = {"episode", "episodes", "tvepisode", "tv episode"}


@dataclass(frozen=True)
class MediaType:
    kind: str = "movie"
    season: int = 0
    episode: int = 0

    @classmethod
    def movie(cls) -> "MediaType":
        return cls("movie")

    @classmethod
    def show(cls) -> "MediaType":
        return cls("show")

    @classmethod
    def for_episode(cls, season: int = 0, episode: int = 0) -> "MediaType":
        return cls("episode", int(season or 0), int(episode or 0))

    @property
    def is_movie(self) -> bool:
        return self.kind == "movie"

    @property
    def is_show(self) -> bool:
        return self.kind == "show"

    @property
    def is_episode(self) -> bool:
        return self.kind == "episode"

    @property
    def position_known(self) -> bool:
        return not (self.is_episode and self.season == 0 and self.episode == 0)

    def to_json(self) -> Any:
        if self.is_episode:
            return {"episode": [self.season, self.episode]}
        return self.kind

    @classmethod
    def from_json(cls, v: Any) -> "MediaType":
        if isinstance(v, MediaType):
            return v
        if isinstance(v, dict):
            ep = v.get("episode")
            if isinstance(ep, (list, tuple)) and len(ep) == 2:
                return cls.for_episode(int(ep[0] or 0), int(ep[1] or 0))
            return cls.for_episode(int(v.get("season") or 0), int(v.get("number") or v.get("episode") or 0))
        return cls.parse(v)

    @classmethod
    def parse(cls, v: Any) -> "MediaType":
        s = str(v or "").strip().lower()
        if s in _EPISODE_WORDS:
            return cls.for_episode()
        if s in _SHOW_WORDS:
            return cls.show()
        return cls.movie()

    def __str__(self) -> str:
        if self.is_episode:
            return f"episode(S{self.season:02d}E{self.episode:02d})"
        return self.kind


class NormalizedStatus(str, Enum):
    WATCHLIST = "Watchlist"
    WATCHING = "Watching"
    COMPLETED = "Completed"
    HOLD = "Hold"
    DROPPED = "Dropped"

    @classmethod
    def parse(cls, v: Any) -> "NormalizedStatus | None":
        if v is None or v == "":
            return None
        if isinstance(v, NormalizedStatus):
            return v
        s = str(v).strip().lower()
        for m in cls:
            if m.value.lower() == s:
                return m
        return None


class RatingSource(str, Enum):
    PLEX = "plex"
    TRAKT = "trakt"
    IMDB = "imdb"
    SIMKL = "simkl"
    NETFLIX = "netflix"
    TMDB = "tmdb"

    @classmethod
    def parse(cls, v: Any) -> "RatingSource":
        if isinstance(v, RatingSource):
            return v
        s = str(v or "").strip().lower()
        for m in cls:
            if m.value == s:
                return m
        raise ValueError(f"unknown rating source: {v!r}")
