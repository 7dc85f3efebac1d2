# /providers/sync/_mod_PLEX.py
# MediaSync - Plex sync module (Discover watchlist, library ratings, server history)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["NAME", "PlexAdapter", "PlexConfig", "build_adapter"]

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

import requests
from plexapi.exceptions import NotFound, Unauthorized
from plexapi.myplex import MyPlexAccount
from plexapi.server import PlexServer

from ms_platform.config_base import status_mapping_for
from ms_platform.credentials import CredentialStore
from ms_platform.id_map import MediaIds, normalize_id
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem

from ._log import for_provider
from ._mod_base import (
    AuthError,
    Capability,
    NotSupportedError,
    ScaledRatings,
    SourceError,
    StatusMappingConfig,
)
from ._mod_common import build_session, label_plex
from .plex import _history, _ratings, _watchlist
from .plex._common import PlexContext
from .plex._search import PlexLookup

NAME = "plex"
TOKEN_KEY = "plex_token"

_log = for_provider(NAME)


@dataclass
class PlexConfig:
    token: str = ""
    server_url: str = ""
    server_name: str = ""
    account_id: int | None = None
    timeout: float = 10.0
    max_retries: int = 3

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any]) -> "PlexConfig":
        p = dict(cfg.get("plex") or {})
        acct = p.get("account_id")
        return cls(
            token=str(p.get("token") or "").strip(),
            server_url=str(p.get("server_url") or "").strip().rstrip("/"),
            server_name=str(p.get("server_name") or "").strip(),
            account_id=int(acct) if acct not in (None, "") else None,
            timeout=float(p.get("timeout") or 10.0),
            max_retries=int(p.get("max_retries") or 3),
        )


def _pick_resource(resources: Iterable[Any], server_name: str) -> Any:
    servers = [r for r in resources if "server" in (getattr(r, "provides", "") or "")]
    if server_name:
        for r in servers:
            if (getattr(r, "name", "") or "").lower() == server_name.lower():
                return r
    for r in servers:
        if getattr(r, "owned", False):
            return r
    if servers:
        return servers[0]
    raise NotFound("no Plex Media Server resource on this account")


class PlexAdapter:
    """MediaSource for Plex. Runs account-only (watchlist) when no server can be bound."""

    def __init__(
        self,
        cfg: Mapping[str, Any],
        credentials: CredentialStore,
        *,
        auth_oracle: Callable[[], "str | None"] | None = None,
        session: requests.Session | None = None,
    ):
        self.cfg = PlexConfig.from_cfg(cfg)
        self.credentials = credentials
        self.auth_oracle = auth_oracle
        self.session = session or build_session("PLEX", feature_label=label_plex)
        self.ctx: PlexContext | None = None
        self._scale = ScaledRatings(10)
        self._status = StatusMappingConfig.from_mapping(status_mapping_for(cfg, NAME))
        self.lookup = PlexLookup(lambda: self.ctx)

    def source_name(self) -> str:
        return NAME

    # --- auth ----------------------------------------------------------------

    def _token(self) -> str:
        token = self.cfg.token or str(self.credentials.get(TOKEN_KEY) or "")
        if not token and self.auth_oracle is not None:
            token = str(self.auth_oracle() or "")
            if token:
                self.credentials.set(TOKEN_KEY, token)
                self.credentials.save()
        if not token:
            raise AuthError("plex: no account token configured", source=NAME)
        return token

    def _bind_server(self, account: MyPlexAccount, token: str) -> Any:
        try:
            if self.cfg.server_url:
                return PlexServer(self.cfg.server_url, token, session=self.session, timeout=self.cfg.timeout)
            return _pick_resource(account.resources(), self.cfg.server_name).connect(timeout=self.cfg.timeout)
        except Unauthorized:
            raise
        except (NotFound, requests.RequestException) as e:
            _log("auth", "warn", "no media server bound; running account-only", error=str(e))
            return None

    def authenticate(self) -> None:
        if self.ctx is not None:
            return
        token = self._token()
        try:
            account = MyPlexAccount(token=token, session=self.session, timeout=self.cfg.timeout)
            server = self._bind_server(account, token)
        except Unauthorized as e:
            raise AuthError("plex: token rejected", source=NAME) from e
        except requests.RequestException as e:
            raise SourceError(f"plex: connect failed: {e}", source=NAME) from e
        self.ctx = PlexContext(
            session=self.session,
            token=token,
            server=server,
            account=account,
            timeout=self.cfg.timeout,
            max_retries=self.cfg.max_retries,
        )
        _log("auth", "info", "connected", user=getattr(account, "username", None), server=getattr(server, "friendlyName", None))

    def _context(self) -> PlexContext:
        if self.ctx is None:
            raise AuthError("plex: authenticate() first", source=NAME)
        return self.ctx

    # --- reads ---------------------------------------------------------------

    def get_watchlist(self) -> list[WatchlistItem]:
        return _watchlist.fetch(self._context())

    def get_ratings(self) -> list[Rating]:
        return _ratings.fetch(self._context())

    def get_reviews(self) -> list[Review]:
        return []

    def get_watch_history(self) -> list[WatchHistory]:
        return _history.fetch(self._context(), account_id=self.cfg.account_id)

    # --- writes --------------------------------------------------------------

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> int:
        return _watchlist.add(self._context(), items)

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> int:
        return _watchlist.remove(self._context(), items)

    def set_ratings(self, ratings: Sequence[Rating]) -> int:
        return _ratings.add(self._context(), ratings)

    def set_reviews(self, reviews: Sequence[Review]) -> None:
        if reviews:
            raise NotSupportedError("plex has no reviews API", source=NAME)

    def add_watch_history(self, items: Sequence[WatchHistory]) -> int:
        return _history.add(self._context(), items)

    # --- facets --------------------------------------------------------------

    def extract_ids(self, imdb_id: str | None, native_ids: Any) -> MediaIds | None:
        """`native_ids` is a list of Plex GUID strings."""
        guids = [native_ids] if isinstance(native_ids, str) else list(native_ids or [])
        ids = MediaIds.from_guids(guids)
        if imdb_id and not ids.imdb_id:
            ids.imdb_id = normalize_id("imdb", imdb_id)  # type: ignore[assignment]
        return None if ids.is_empty() else ids

    def native_id_type(self) -> str:
        return "plex_guid"

    def status_mapping(self) -> StatusMappingConfig:
        return self._status

    def capability(self, cap: Capability) -> Any | None:
        if cap is Capability.RATING_NORMALIZATION:
            return self._scale
        if cap is Capability.ID_LOOKUP:
            return self.lookup
        if cap in (Capability.ID_EXTRACTION, Capability.STATUS_MAPPING):
            return self
        return None

    def cleanup(self) -> None:
        _log("api", "debug", "api hits", **getattr(self.session, "hits", {}))
        self.ctx = None
        self.session.close()


def build_adapter(
    cfg: Mapping[str, Any],
    credentials: CredentialStore,
    *,
    auth_oracles: Mapping[str, Callable[..., Any]] | None = None,
    sessions: Mapping[str, requests.Session] | None = None,
    **_kw: Any,
) -> PlexAdapter:
    return PlexAdapter(
        cfg,
        credentials,
        auth_oracle=(auth_oracles or {}).get(NAME),
        session=(sessions or {}).get(NAME),
    )
