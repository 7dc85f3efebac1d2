# /ms_platform/config_base.py
# MediaSync - base paths, defaults, loading and validation of config.json
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import copy
import json
import os
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from providers.sync._log import log as _plog
from providers.sync._mod_base import ConfigError

KNOWN_SOURCES: tuple[str, ...] = ("trakt", "imdb", "plex", "simkl")
STRATEGIES: tuple[str, ...] = ("Newest", "Oldest", "Preference", "Merge")
_STRATEGY_ALIASES: Dict[str, str] = {"mostrecent": "Preference", "most_recent": "Preference"}


def _log(level: str, msg: str, **fields: Any) -> None:
    _plog("config", "config", level, msg, **fields)


# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config, credentials, caches and logs.

    Priority:
      1) $MEDIASYNC_BASE or $CONFIG_BASE if set
      2) /config (when running in a container image that ships /app)
      3) ~/.config/mediasync
    """
    env = os.getenv("MEDIASYNC_BASE") or os.getenv("CONFIG_BASE")
    if env:
        return Path(env)
    if Path("/app").exists():
        return Path("/config")
    return Path.home() / ".config" / "mediasync"


def config_path() -> Path:
    return CONFIG_BASE() / "config.json"


def credentials_path() -> Path:
    return CONFIG_BASE() / "credentials.json"


def data_dir() -> Path:
    return CONFIG_BASE() / "data"


def cache_dir() -> Path:
    return data_dir() / "cache"


def collect_cache_dir() -> Path:
    return cache_dir() / "collect"


def distribute_cache_dir() -> Path:
    return cache_dir() / "distribute"


def id_cache_dir() -> Path:
    return cache_dir() / "id"


def csv_cache_dir(source: str) -> Path:
    return cache_dir() / "csv" / str(source).lower()


def logs_dir() -> Path:
    return CONFIG_BASE() / "logs"


def ensure_dirs() -> None:
    for p in (CONFIG_BASE(), collect_cache_dir(), distribute_cache_dir(), id_cache_dir(), logs_dir()):
        p.mkdir(parents=True, exist_ok=True)


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    # --- Services ------------------------------------------------------------
    "trakt": {
        "enabled": False,
        "client_id": "",                                # From your Trakt API app
        "client_secret": "",                            # From your Trakt API app
        "redirect_uri": "urn:ietf:wg:oauth:2.0:oob",    # Used by the authorization-code exchange
        "timeout": 15.0,                                # HTTP timeout (seconds)
        "max_retries": 3,                               # Retry budget for 429/5xx
        "status_mapping": {},                           # Optional overrides (see DEFAULT_STATUS_MAPPINGS)
    },

    "simkl": {
        "enabled": False,
        "client_id": "",                                # From your Simkl app
        "client_secret": "",                            # From your Simkl app
        "timeout": 15.0,
        "max_retries": 3,
        "status_mapping": {},
    },

    "plex": {
        "enabled": False,
        "server_url": "",                               # http(s)://host:32400; empty = discover via plex.tv resources
        "token": "",                                    # Plex account token (may also live in credentials.json)
        "server_name": "",                              # Preferred server when discovering
        "account_id": None,                             # Limit server history to one Plex user (null = all)
        "timeout": 10.0,
        "max_retries": 3,
        "status_mapping": {},
    },

    "imdb": {
        "enabled": False,
        "username": "",                                 # Account e-mail (password lives in credentials.json)
        "export_dir": "",                               # Folder holding the downloaded IMDb CSV exports
        "status_mapping": {},
    },

    # --- Resolution ----------------------------------------------------------
    "resolution": {
        "strategy": "Preference",                       # Newest | Oldest | Preference | Merge (MostRecent = Preference)
        "source_preference": [],                        # Ordered source tags; the first one must authenticate
        "timestamp_tolerance_seconds": 3600,            # Same-item timestamps this close fall back to preference
        "ratings_strategy": None,                       # Optional per-type override
        "watchlist_strategy": None,                     # Optional per-type override
    },

    # --- Sync options ----------------------------------------------------------
    "sync": {
        "sync_watchlist": True,
        "sync_ratings": True,
        "sync_reviews": True,
        "sync_watch_history": True,
        "remove_watched_from_watchlists": False,        # Drop watched titles from every watchlist
        "mark_rated_as_watched": False,                 # A rating implies a watch (movies/episodes only)
        "remove_watchlist_items_older_than_days": None, # Positive int or null
        "force_full_sync": False,                       # Ignore last-sync stamps for this run
        "dry_run": [],                                  # Sources that only get distribute previews
        "use_cache": [],                                # Sources read from the collect cache instead of fetched
    },

    # --- Scheduler (parsed and validated only) ---------------------------------
    "scheduler": {
        "schedule": "0 */6 * * *",
        "timezone": "UTC",
        "run_on_startup": False,
    },

    # --- Runtime -----------------------------------------------------------------
    "runtime": {
        "debug": False,
        "log_level": "info",
        "log_json": False,                              # Also append JSON lines to logs/mediasync.jsonl
        "max_workers": 8,                               # Thread pool size for collect/distribute fan-out
    },
}

DEFAULT_STATUS_MAPPINGS: Dict[str, Dict[str, Dict[str, str]]] = {
    "simkl": {
        "to_normalized": {
            "plantowatch": "Watchlist",
            "watching": "Watching",
            "completed": "Completed",
            "dropped": "Dropped",
            "hold": "Hold",
        },
        "from_normalized": {
            "Watchlist": "plantowatch",
            "Watching": "watching",
            "Completed": "completed",
            "Dropped": "dropped",
            "Hold": "hold",
        },
    },
    "imdb": {
        "to_normalized": {"watchlist": "Watchlist", "checkins": "Watching"},
        "from_normalized": {"Watchlist": "watchlist", "Watching": "checkins", "Completed": "checkins"},
    },
    "trakt": {
        "to_normalized": {"watchlist": "Watchlist", "watch_history": "Completed"},
        "from_normalized": {"Watchlist": "watchlist", "Completed": "watch_history", "Watching": "watch_history"},
    },
    "plex": {
        "to_normalized": {"watchlist": "Watchlist", "watching": "Watching", "completed": "Completed", "watched": "Completed"},
        "from_normalized": {"Watchlist": "watchlist", "Watching": "watching", "Completed": "watched"},
    },
}


# ------------------------------------------------------------
# Helpers: IO, merging
# ------------------------------------------------------------
def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(p: Path, data: Mapping[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    suffix = f".{time.time_ns()}.{os.getpid()}.{threading.get_ident()}.{secrets.token_hex(4)}.tmp"
    tmp = p.with_suffix(suffix)
    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable):
        return [str(x) for x in value if isinstance(x, (str, int, float))]
    return []


def normalize_strategy(name: Any) -> str | None:
    if name in (None, ""):
        return None
    s = str(name).strip()
    alias = _STRATEGY_ALIASES.get(s.lower())
    if alias:
        return alias
    for st in STRATEGIES:
        if st.lower() == s.lower():
            return st
    raise ConfigError(f"unknown resolution strategy: {name!r}")


def _warn_unknown_keys(user_cfg: Mapping[str, Any]) -> None:
    for k, v in user_cfg.items():
        if k not in DEFAULT_CFG:
            _log("warn", "unknown config key ignored", key=k)
            continue
        if isinstance(v, Mapping) and isinstance(DEFAULT_CFG[k], dict):
            for sub in v.keys():
                if sub not in DEFAULT_CFG[k]:
                    _log("warn", "unknown config key ignored", key=f"{k}.{sub}")


# ------------------------------------------------------------
# Status mappings
# ------------------------------------------------------------
def status_mapping_for(cfg: Mapping[str, Any], source: str) -> Dict[str, Dict[str, str]]:
    base = copy.deepcopy(DEFAULT_STATUS_MAPPINGS.get(source, {"to_normalized": {}, "from_normalized": {}}))
    user = ((cfg.get(source) or {}).get("status_mapping") or {}) if isinstance(cfg, Mapping) else {}
    for direction in ("to_normalized", "from_normalized"):
        extra = user.get(direction) if isinstance(user, Mapping) else None
        if isinstance(extra, Mapping):
            base.setdefault(direction, {}).update({str(k): str(v) for k, v in extra.items()})
    return base


# ------------------------------------------------------------
# Validation
# ------------------------------------------------------------
def validate_config(cfg: Mapping[str, Any]) -> None:
    """Raise ConfigError before any I/O when the config cannot drive a run."""
    res = cfg.get("resolution") or {}
    prefs = _as_list(res.get("source_preference"))
    if not prefs:
        raise ConfigError("resolution.source_preference must list at least one source")
    seen: set[str] = set()
    for src in prefs:
        s = src.strip().lower()
        if s not in KNOWN_SOURCES:
            raise ConfigError(f"unknown source in source_preference: {src!r} (valid: {', '.join(KNOWN_SOURCES)})")
        if s in seen:
            raise ConfigError(f"duplicate source in source_preference: {src!r}")
        seen.add(s)
        if not bool((cfg.get(s) or {}).get("enabled")):
            raise ConfigError(f"source {s!r} is in source_preference but not enabled/configured")

    try:
        tol = int(res.get("timestamp_tolerance_seconds", 0))
    except (TypeError, ValueError) as e:
        raise ConfigError("resolution.timestamp_tolerance_seconds must be an integer") from e
    if tol < 0:
        raise ConfigError("resolution.timestamp_tolerance_seconds must be non-negative")

    for key in ("strategy", "ratings_strategy", "watchlist_strategy"):
        normalize_strategy(res.get(key))

    sync = cfg.get("sync") or {}
    days = sync.get("remove_watchlist_items_older_than_days")
    if days is not None:
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ConfigError("sync.remove_watchlist_items_older_than_days must be a positive integer")
    for key in ("dry_run", "use_cache"):
        for src in _as_list(sync.get(key)):
            if src.lower() not in KNOWN_SOURCES:
                raise ConfigError(f"unknown source in sync.{key}: {src!r}")

    sched = cfg.get("scheduler") or {}
    if len(str(sched.get("schedule") or "").split()) != 5:
        raise ConfigError("scheduler.schedule must be a 5-field cron expression")


def source_preference(cfg: Mapping[str, Any]) -> List[str]:
    return [s.strip().lower() for s in _as_list((cfg.get("resolution") or {}).get("source_preference"))]


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config(path: Path | None = None) -> Dict[str, Any]:
    """Read config.json merged over DEFAULT_CFG; a missing file yields the defaults."""
    p = path or config_path()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except (OSError, ValueError) as e:
            raise ConfigError(f"cannot parse {p}: {e}") from e
        if not isinstance(user_cfg, dict):
            raise ConfigError(f"{p} must hold a JSON object")
        _warn_unknown_keys(user_cfg)

    cfg = _deep_merge(DEFAULT_CFG, user_cfg)
    res = cfg["resolution"]
    res["source_preference"] = source_preference(cfg)
    for key in ("strategy", "ratings_strategy", "watchlist_strategy"):
        res[key] = normalize_strategy(res.get(key))
    if res["strategy"] is None:
        res["strategy"] = "Preference"
    sync = cfg["sync"]
    sync["dry_run"] = [s.lower() for s in _as_list(sync.get("dry_run"))]
    sync["use_cache"] = [s.lower() for s in _as_list(sync.get("use_cache"))]
    return cfg


def save_config(cfg: Mapping[str, Any], path: Path | None = None) -> None:
    _write_json_atomic(path or config_path(), dict(cfg or {}))
