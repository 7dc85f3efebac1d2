# /providers/sync/_mod_SIMKL.py
# MediaSync - Simkl sync module (lists, ratings, history; native incremental)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["NAME", "SimklAdapter", "SimklConfig", "build_adapter"]

import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import requests

from ms_platform.config_base import status_mapping_for
from ms_platform.credentials import CredentialStore
from ms_platform.id_map import MediaIds, normalize_id
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem

from ._log import for_provider
from ._mod_base import (
    AuthError,
    Capability,
    ConfigError,
    NotSupportedError,
    ScaledRatings,
    StatusMappingConfig,
)
from ._mod_common import build_session, label_simkl
from .simkl import _activities, _history, _ratings, _watchlist
from .simkl._common import SimklClient
from .simkl._search import SimklLookup

NAME = "simkl"

# PIN/device flow lives outside; the oracle gets the client id and returns an access token
PinOracle = Callable[[str], "str | None"]

_log = for_provider(NAME)


@dataclass
class SimklConfig:
    client_id: str
    client_secret: str = ""
    timeout: float = 15.0
    max_retries: int = 3

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any]) -> "SimklConfig":
        s = dict(cfg.get("simkl") or {})
        client_id = str(s.get("client_id") or s.get("api_key") or "").strip()
        if not client_id:
            raise ConfigError("simkl.client_id is required")
        return cls(
            client_id=client_id,
            client_secret=str(s.get("client_secret") or "").strip(),
            timeout=float(s.get("timeout") or 15.0),
            max_retries=int(s.get("max_retries") or 3),
        )


class SimklAdapter:
    """MediaSource for Simkl. One all-items payload per run feeds both lists and history."""

    def __init__(
        self,
        cfg: Mapping[str, Any],
        credentials: CredentialStore,
        *,
        auth_oracle: PinOracle | None = None,
        session: requests.Session | None = None,
    ):
        self.cfg = SimklConfig.from_cfg(cfg)
        self.credentials = credentials
        self.auth_oracle = auth_oracle
        self.session = session or build_session("SIMKL", feature_label=label_simkl)
        self.client = SimklClient(
            self.session,
            self.cfg.client_id,
            token=lambda: self.credentials.get_access_token(NAME),
            timeout=self.cfg.timeout,
            max_retries=self.cfg.max_retries,
        )
        self._scale = ScaledRatings(10)
        self._status = StatusMappingConfig.from_mapping(status_mapping_for(cfg, NAME))
        self.lookup = SimklLookup(self.client, lambda: bool(self.credentials.get_access_token(NAME)))

        self._lock = threading.Lock()
        self._force = False
        self._current: dict[str, Any] | None = None
        self._window: _activities.Window | None = None
        self._all_items: Any = None
        self._read_failed = False

    def source_name(self) -> str:
        return NAME

    # --- auth ----------------------------------------------------------------

    def authenticate(self) -> None:
        if self.credentials.get_access_token(NAME):
            return
        if self.auth_oracle is not None:
            token = self.auth_oracle(self.cfg.client_id)
            if token:
                # Simkl tokens do not expire; stored with the far-future default
                self.credentials.set_tokens(NAME, str(token))
                self.credentials.save()
                _log("auth", "info", "token stored")
                return
        raise AuthError("simkl: no stored token and no PIN flow available", source=NAME)

    # --- incremental ---------------------------------------------------------

    def set_force_full_sync(self, force: bool) -> None:
        self._force = bool(force)

    def supports_native_incremental(self) -> bool:
        return True

    def _plan(self) -> _activities.Window:
        with self._lock:
            if self._window is None:
                try:
                    self._current = _activities.fetch(self.client)
                except Exception as e:
                    _log("activities", "warn", "activities check failed; full read", error=str(e))
                    self._current = None
                    self._window = _activities.Window(True)
                else:
                    saved = self.credentials.get_json(_activities.SNAPSHOT_KEY)
                    self._window = _activities.plan(self._current, saved, force=self._force)
            return self._window

    def _items(self) -> Any:
        window = self._plan()
        with self._lock:
            if self._all_items is None:
                self._all_items = _watchlist.fetch_all_items(self.client, window)
            return self._all_items

    def _guarded(self, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception:
            self._read_failed = True
            raise

    # --- reads ---------------------------------------------------------------

    def get_watchlist(self) -> list[WatchlistItem]:
        return self._guarded(lambda: _watchlist.parse(self._items(), self._status))

    def get_ratings(self) -> list[Rating]:
        return self._guarded(lambda: _ratings.fetch(self.client, self._plan()))

    def get_reviews(self) -> list[Review]:
        return []

    def get_watch_history(self) -> list[WatchHistory]:
        return self._guarded(lambda: _history.parse(self._items()))

    # --- writes --------------------------------------------------------------

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        _watchlist.add(self.client, items, self._status)

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        _watchlist.remove(self.client, items)

    def set_ratings(self, ratings: Sequence[Rating]) -> None:
        _ratings.add(self.client, ratings)

    def set_reviews(self, reviews: Sequence[Review]) -> None:
        if reviews:
            raise NotSupportedError("simkl has no reviews API", source=NAME)

    def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        _history.add(self.client, items)

    # --- facets --------------------------------------------------------------

    def extract_ids(self, imdb_id: str | None, native_ids: Any) -> MediaIds | None:
        ids = MediaIds.from_ids(native_ids if isinstance(native_ids, Mapping) else {})
        if imdb_id and not ids.imdb_id:
            ids.imdb_id = normalize_id("imdb", imdb_id)  # type: ignore[assignment]
        return None if ids.is_empty() else ids

    def native_id_type(self) -> str:
        return "simkl"

    def status_mapping(self) -> StatusMappingConfig:
        return self._status

    def capability(self, cap: Capability) -> Any | None:
        if cap is Capability.RATING_NORMALIZATION:
            return self._scale
        if cap is Capability.ID_LOOKUP:
            return self.lookup
        if cap in (Capability.INCREMENTAL_SYNC, Capability.ID_EXTRACTION, Capability.STATUS_MAPPING):
            return self
        return None

    def cleanup(self) -> None:
        with self._lock:
            if self._current and not self._read_failed:
                self.credentials.set_json(_activities.SNAPSHOT_KEY, self._current)
                self.credentials.save()
                _log("activities", "debug", "snapshot stored", all=self._current.get("all"))
            self._current = None
            self._window = None
            self._all_items = None
            self._read_failed = False
        _log("api", "debug", "api hits", **getattr(self.session, "hits", {}))
        self.session.close()


def build_adapter(
    cfg: Mapping[str, Any],
    credentials: CredentialStore,
    *,
    auth_oracles: Mapping[str, Callable[..., Any]] | None = None,
    sessions: Mapping[str, requests.Session] | None = None,
    **_kw: Any,
) -> SimklAdapter:
    return SimklAdapter(
        cfg,
        credentials,
        auth_oracle=(auth_oracles or {}).get(NAME),
        session=(sessions or {}).get(NAME),
    )
