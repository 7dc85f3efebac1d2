# /providers/sync/_mod_TRAKT.py
# MediaSync - Trakt sync module (OAuth tokens, watchlist, ratings, reviews, history)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["NAME", "TraktAdapter", "TraktConfig", "build_adapter"]

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import urlencode

import requests

from ms_platform.config_base import status_mapping_for
from ms_platform.credentials import CredentialStore
from ms_platform.id_map import MediaIds, normalize_id
from ms_platform.models import Rating, Review, WatchHistory, WatchlistItem
from ms_platform.timeutil import utcnow

from ._log import for_provider
from ._mod_base import (
    AuthError,
    Capability,
    ConfigError,
    ModuleError,
    ScaledRatings,
    StatusMappingConfig,
)
from ._mod_common import build_session, label_trakt, raise_for_status, request_with_retries, safe_json
from .trakt import _history, _ratings, _reviews, _watchlist
from .trakt._common import TRAKT_BASE, TraktClient
from .trakt._search import TraktLookup

NAME = "trakt"
TOKEN_URL = f"{TRAKT_BASE}/oauth/token"
AUTHORIZE_URL = "https://trakt.tv/oauth/authorize"
# refreshed tokens are stored as expiring this much earlier than Trakt says
EXPIRY_SLACK_S = 120

AuthOracle = Callable[[str], "str | None"]

_log = for_provider(NAME)


@dataclass
class TraktConfig:
    client_id: str
    client_secret: str = ""
    redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    timeout: float = 15.0
    max_retries: int = 3

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, Any]) -> "TraktConfig":
        t = dict(cfg.get("trakt") or {})
        client_id = str(t.get("client_id") or "").strip()
        if not client_id:
            raise ConfigError("trakt.client_id is required")
        return cls(
            client_id=client_id,
            client_secret=str(t.get("client_secret") or "").strip(),
            redirect_uri=str(t.get("redirect_uri") or cls.redirect_uri),
            timeout=float(t.get("timeout") or 15.0),
            max_retries=int(t.get("max_retries") or 3),
        )


class TraktAdapter:
    """MediaSource for Trakt; also serves as its own IdExtraction and StatusMapping facet."""

    def __init__(
        self,
        cfg: Mapping[str, Any],
        credentials: CredentialStore,
        *,
        auth_oracle: AuthOracle | None = None,
        session: requests.Session | None = None,
    ):
        self.cfg = TraktConfig.from_cfg(cfg)
        self.credentials = credentials
        self.auth_oracle = auth_oracle
        self.session = session or build_session("TRAKT", feature_label=label_trakt)
        self.client = TraktClient(
            self.session,
            self.cfg.client_id,
            token=lambda: self.credentials.get_access_token(NAME),
            timeout=self.cfg.timeout,
            max_retries=self.cfg.max_retries,
        )
        self._scale = ScaledRatings(10)
        self._status = StatusMappingConfig.from_mapping(status_mapping_for(cfg, NAME))
        self.lookup = TraktLookup(self.client, lambda: bool(self.credentials.get_access_token(NAME)))

    def source_name(self) -> str:
        return NAME

    # --- auth ----------------------------------------------------------------

    def authorize_url(self) -> str:
        q = {"response_type": "code", "client_id": self.cfg.client_id, "redirect_uri": self.cfg.redirect_uri}
        return f"{AUTHORIZE_URL}?{urlencode(q)}"

    def _verify(self) -> None:
        self.client.get("users/me", "auth")

    def _exchange(self, grant: Mapping[str, Any]) -> None:
        body = {
            "client_id": self.cfg.client_id,
            "client_secret": self.cfg.client_secret,
            "redirect_uri": self.cfg.redirect_uri,
            **grant,
        }
        resp = request_with_retries(self.session, "POST", TOKEN_URL, json=body, timeout=self.cfg.timeout, max_retries=self.cfg.max_retries)
        raise_for_status(resp, NAME, "oauth")
        data = safe_json(resp)
        access = str((data or {}).get("access_token") or "")
        if not access:
            raise AuthError("trakt token response without access_token", source=NAME)
        expires_in = int(data.get("expires_in") or 0)
        expires_at = utcnow() + timedelta(seconds=max(0, expires_in - EXPIRY_SLACK_S)) if expires_in else None
        self.credentials.set_tokens(NAME, access, data.get("refresh_token"), expires_at)
        self.credentials.save()
        _log("auth", "info", "token stored", grant=grant.get("grant_type"), expires_at=str(expires_at) if expires_at else None)

    def authenticate(self) -> None:
        if self.credentials.token_valid_for(NAME, timedelta(minutes=5)):
            try:
                self._verify()
                _log("auth", "debug", "saved token verified")
                return
            except AuthError as e:
                _log("auth", "warn", "saved token rejected", error=str(e))

        refresh = self.credentials.get_refresh_token(NAME)
        if refresh and self.cfg.client_secret:
            try:
                self._exchange({"grant_type": "refresh_token", "refresh_token": refresh})
                return
            except ModuleError as e:
                _log("auth", "warn", "token refresh failed", error=str(e))

        if self.auth_oracle is not None:
            code = self.auth_oracle(self.authorize_url())
            if code:
                self._exchange({"grant_type": "authorization_code", "code": code})
                return

        raise AuthError("trakt: no valid token and no way to obtain one", source=NAME)

    # --- reads ---------------------------------------------------------------

    def get_watchlist(self) -> list[WatchlistItem]:
        return _watchlist.fetch(self.client)

    def get_ratings(self) -> list[Rating]:
        return _ratings.fetch(self.client)

    def get_reviews(self) -> list[Review]:
        return _reviews.fetch(self.client)

    def get_watch_history(self) -> list[WatchHistory]:
        return _history.fetch(self.client)

    # --- writes --------------------------------------------------------------

    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        _watchlist.add(self.client, items)

    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        _watchlist.remove(self.client, items)

    def set_ratings(self, ratings: Sequence[Rating]) -> None:
        _ratings.add(self.client, ratings)

    def set_reviews(self, reviews: Sequence[Review]) -> None:
        _reviews.add(self.client, reviews)

    def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        _history.add(self.client, items)

    # --- facets --------------------------------------------------------------

    def extract_ids(self, imdb_id: str | None, native_ids: Any) -> MediaIds | None:
        ids = MediaIds.from_ids(native_ids if isinstance(native_ids, Mapping) else {})
        if imdb_id and not ids.imdb_id:
            ids.imdb_id = normalize_id("imdb", imdb_id)  # type: ignore[assignment]
        return None if ids.is_empty() else ids

    def native_id_type(self) -> str:
        return "trakt"

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
        self.session.close()


def build_adapter(
    cfg: Mapping[str, Any],
    credentials: CredentialStore,
    *,
    auth_oracles: Mapping[str, Callable[..., Any]] | None = None,
    sessions: Mapping[str, requests.Session] | None = None,
    **_kw: Any,
) -> TraktAdapter:
    """Factory used by the orchestrator; oracles and sessions are picked by source tag."""
    return TraktAdapter(
        cfg,
        credentials,
        auth_oracle=(auth_oracles or {}).get(NAME),
        session=(sessions or {}).get(NAME),
    )
