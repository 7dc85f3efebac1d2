# /providers/sync/_mod_common.py
# MediaSync common sync module: HTTP session, retries, request labels
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
import os
import time
from typing import Any, Callable, Iterator, Mapping, Sequence, TypeVar
from urllib.parse import parse_qs, urlparse

import requests

from ._log import log
from ._mod_base import AuthError, RateLimitError, RecoverableModuleError, SourceError

__VERSION__ = "0.3.0"
__all__ = [
    "HitSession",
    "build_session",
    "parse_rate_limit",
    "safe_json",
    "request_with_retries",
    "raise_for_status",
    "chunked",
    "label_simkl",
    "label_trakt",
    "label_plex",
]

T = TypeVar("T")
FeatureLabelFn = Callable[[str, str, Mapping[str, Any]], str]

USER_AGENT = "MediaSync/0.3 (+https://github.com/mediasync)"


def _get_query_value(url: str, params: Mapping[str, Any], name: str) -> str | None:
    qd = parse_qs(urlparse(url).query)
    v = params.get(name) if isinstance(params, Mapping) else None
    if isinstance(v, (list, tuple)):
        v = v[0] if v else None
    return (str(v) if v else None) or (qd.get(name, [None])[0])


def default_feature_label(provider: str, method: str, url: str, kw: Mapping[str, Any]) -> str:
    p = urlparse(url)
    segs = [s for s in (p.path or "/").split("/") if s]
    head = "/".join(segs[:3]) or "unknown"
    return head.lower()


def label_simkl(method: str, url: str, kw: Mapping[str, Any]) -> str:
    p = urlparse(url)
    segs = [s for s in (p.path or "/").split("/") if s]
    params = kw.get("params") or {}
    if segs[:2] == ["sync", "activities"]:
        return "activities"
    if segs[:2] == ["sync", "all-items"]:
        bucket = _get_query_value(url, params, "type") or (segs[2] if len(segs) >= 3 else None)
        return f"all-items:{bucket}" if bucket else "all-items"
    if segs[:2] == ["sync", "add-to-list"]:
        return "watchlist:add"
    if segs[:2] == ["sync", "history"]:
        if len(segs) >= 3 and segs[2] == "remove":
            return "watchlist:remove"
        return "history:add"
    if segs[:2] == ["sync", "ratings"]:
        return "ratings:add" if kw.get("json") else "ratings:index"
    if segs[:1] == ["search"]:
        return "search"
    if segs[:1] == ["oauth"]:
        return "oauth"
    return default_feature_label("SIMKL", method, url, kw)


def label_trakt(method: str, url: str, kw: Mapping[str, Any]) -> str:
    p = urlparse(url)
    segs = [s for s in (p.path or "/").split("/") if s]
    m = method.upper()
    if segs[:2] == ["sync", "watchlist"]:
        if len(segs) >= 3 and segs[2] == "remove":
            return "watchlist:remove"
        return "watchlist:add" if m == "POST" else "watchlist:index"
    if segs[:2] == ["sync", "history"]:
        return "history:add" if m == "POST" else "history:index"
    if segs[:2] == ["sync", "ratings"]:
        return "ratings:add" if m == "POST" else "ratings:index"
    if segs[:1] == ["comments"]:
        return "reviews:add"
    if len(segs) >= 3 and segs[0] == "users" and segs[2] == "comments":
        return "reviews:index"
    if segs[:1] == ["search"]:
        return "search"
    if segs[:1] == ["oauth"]:
        return "oauth"
    return default_feature_label("TRAKT", method, url, kw)


def label_plex(method: str, url: str, kw: Mapping[str, Any]) -> str:
    p = urlparse(url)
    segs = [s for s in (p.path or "/").split("/") if s]
    host = (p.netloc or "").lower()
    if "discover.provider.plex.tv" in host or "metadata.provider.plex.tv" in host:
        if segs[:1] == ["actions"] and len(segs) >= 2:
            return "watchlist:add" if segs[1] == "addToWatchlist" else "watchlist:remove"
        if "watchlist" in segs:
            return "watchlist:index"
        if "search" in segs or segs[-1:] == ["matches"]:
            return "discover:search"
        return "discover:metadata"
    if segs[:2] == ["status", "sessions"]:
        return "history:index"
    if segs[:2] == ["library", "sections"]:
        return "library:sections"
    if segs[:2] == ["library", "metadata"]:
        return "library:metadata"
    if segs[:1] == [":"] and len(segs) >= 2 and segs[1] in ("scrobble", "unscrobble", "rate"):
        return f"{segs[1]}"
    return default_feature_label("PLEX", method, url, kw)


class HitSession(requests.Session):
    """requests.Session that tags every call with a feature label for trace logs."""

    def __init__(
        self,
        provider: str,
        feature_label: FeatureLabelFn | None = None,
        log_hits: bool | None = None,
    ):
        super().__init__()
        self._provider = provider
        self._label = feature_label or (lambda m, u, kw: default_feature_label(provider, m, u, kw))
        self._log_hits = bool(os.getenv("MS_API_HITS")) if log_hits is None else bool(log_hits)
        self.headers.setdefault("User-Agent", USER_AGENT)
        self.hits: dict[str, int] = {}

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        try:
            return super().request(method, url, **kwargs)
        finally:
            try:
                feature = self._label(method.upper(), url, kwargs)
            except (ValueError, TypeError, AttributeError):
                feature = "unknown"
            self.hits[feature] = self.hits.get(feature, 0) + 1
            if self._log_hits:
                log(self._provider, "api", "trace", "api hit", method=method.upper(), feature=feature)


def build_session(
    provider: str,
    *,
    feature_label: FeatureLabelFn | None = None,
    log_hits: bool | None = None,
) -> HitSession:
    return HitSession(provider, feature_label, log_hits)


def parse_rate_limit(h: Mapping[str, Any]) -> dict[str, int | None]:
    def _i(x: Any) -> int | None:
        try:
            return int(x)
        except (TypeError, ValueError):
            return None

    return {
        "limit": _i(h.get("X-RateLimit-Limit") or h.get("RateLimit-Limit") or h.get("Ratelimit-Limit")),
        "remaining": _i(h.get("X-RateLimit-Remaining") or h.get("RateLimit-Remaining") or h.get("Ratelimit-Remaining")),
        "reset": _i(h.get("X-RateLimit-Reset") or h.get("RateLimit-Reset") or h.get("Ratelimit-Reset")),
    }


def safe_json(resp: requests.Response) -> Any:
    try:
        if not (resp.text or "").strip():
            return {}
        ctype = (resp.headers.get("Content-Type") or "").lower()
        if "json" in ctype:
            return resp.json()
        return json.loads(resp.text)
    except ValueError:
        return {}


def request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    retry_on: tuple[int, ...] = (429, 500, 502, 503, 504),
    backoff_base: float = 0.5,
    **kwargs: Any,
) -> requests.Response:
    last: Any = None
    for i in range(max(1, int(max_retries))):
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
            if resp.status_code in retry_on and i < max_retries - 1:
                wait = backoff_base * (2**i)
                if resp.status_code == 429:
                    ra = resp.headers.get("Retry-After")
                    if ra:
                        try:
                            wait = max(wait, float(ra))
                        except ValueError:
                            pass
                time.sleep(wait)
                last = resp
                continue
            return resp
        except requests.RequestException as e:
            last = e
            if i < max_retries - 1:
                time.sleep(backoff_base * (2**i))
    if isinstance(last, requests.Response):
        return last
    raise requests.RequestException(f"request failed after retries: {method} {url}") from last


def raise_for_status(resp: requests.Response, provider: str, what: str) -> None:
    """Map HTTP failures onto the module error family."""
    code = int(resp.status_code or 0)
    if 200 <= code < 300:
        return
    body = (resp.text or "")[:200]
    if code in (401, 403):
        raise AuthError(f"{provider} {what}: unauthorized ({code})", source=provider)
    if code == 429:
        ra = resp.headers.get("Retry-After")
        raise RateLimitError(f"{provider} {what}: rate limited", retry_after=float(ra) if ra and ra.isdigit() else None)
    if code >= 500:
        raise RecoverableModuleError(f"{provider} {what}: HTTP {code} {body}")
    raise SourceError(f"{provider} {what}: HTTP {code} {body}", source=provider)


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    n = max(1, int(size or 1))
    for i in range(0, len(items), n):
        yield list(items[i : i + n])
