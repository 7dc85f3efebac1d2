# /mediasync.py
# MediaSync - command line entry point (sync, validate, clear-cache)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import argparse
import sys
import time
from typing import Any, Callable, Sequence

import requests

from _logging import log
from ms_platform import config_base
from ms_platform.cache import CacheManager
from ms_platform.credentials import CredentialStore
from ms_platform.id_cache import IdCache
from ms_platform.id_resolver import IdResolver
from ms_platform.orchestrator import Orchestrator
from ms_platform.orchestrator._providers import build_sources
from providers.sync._mod_base import Capability, ConfigError, MediaSource

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_ABORTED = 2

SIMKL_PIN_URL = "https://api.simkl.com/oauth/pin"

cli = log.child("cli")


# --- interactive auth --------------------------------------------------------

def _ask(prompt: str) -> str | None:
    try:
        return input(prompt).strip() or None
    except EOFError:
        return None


def _trakt_oracle(authorize_url: str) -> str | None:
    print(f"Open this URL, approve MediaSync and paste the code:\n  {authorize_url}")
    return _ask("Trakt code: ")


def _simkl_oracle(client_id: str, *, poll_limit_s: int = 600) -> str | None:
    """Simkl PIN flow: show a user code, then poll until it is confirmed."""
    params = {"client_id": client_id}
    r = requests.get(SIMKL_PIN_URL, params=params, timeout=15)
    r.raise_for_status()
    j = r.json() or {}
    code = j.get("user_code")
    if not code:
        return None
    print(f"Open {j.get('verification_url') or 'https://simkl.com/pin'} and enter: {code}")
    interval = max(2, int(j.get("interval") or 5))
    deadline = time.monotonic() + min(poll_limit_s, int(j.get("expires_in") or poll_limit_s))
    while time.monotonic() < deadline:
        time.sleep(interval)
        p = requests.get(f"{SIMKL_PIN_URL}/{code}", params=params, timeout=15)
        if p.status_code != 200:
            continue
        body = p.json() or {}
        if body.get("result") == "OK" and body.get("access_token"):
            return str(body["access_token"])
    return None


def _plex_oracle() -> str | None:
    return _ask("Plex account token (X-Plex-Token): ")


def interactive_oracles() -> dict[str, Callable[..., Any]]:
    return {"trakt": _trakt_oracle, "simkl": _simkl_oracle, "plex": _plex_oracle}


# --- wiring ------------------------------------------------------------------

def _register_lookups(resolver: IdResolver, sources: Sequence[MediaSource]) -> None:
    for s in sources:
        provider = s.capability(Capability.ID_LOOKUP)
        if provider is not None:
            resolver.add_provider(provider)


def _load(args: argparse.Namespace) -> dict[str, Any]:
    cfg = config_base.load_config()
    if args.dry_run:
        cfg["sync"]["dry_run"] = list(config_base.source_preference(cfg))
    if args.force_full:
        cfg["sync"]["force_full_sync"] = True
    config_base.validate_config(cfg)
    return cfg


def cmd_validate(args: argparse.Namespace) -> int:
    cfg = _load(args)
    cli.success(f"config OK: {', '.join(config_base.source_preference(cfg))}", extra={"path": str(config_base.config_path())})
    return EXIT_OK


def cmd_clear_cache(args: argparse.Namespace) -> int:
    removed = CacheManager().clear(collect=True, distribute=True, ids=args.ids, csv=args.csv)
    if args.last_sync:
        store = CredentialStore(config_base.credentials_path()).load()
        n = store.clear_last_sync()
        store.save()
        cli.info(f"last-sync stamps cleared: {n}")
    cli.success(f"cache cleared: {', '.join(removed) or 'nothing to remove'}")
    return EXIT_OK


def cmd_sync(args: argparse.Namespace) -> int:
    cfg = _load(args)
    config_base.ensure_dirs()
    log.configure(cfg, config_base.logs_dir())

    names = config_base.source_preference(cfg)
    if args.only:
        wanted = {s.strip().lower() for s in args.only}
        names = [n for n in names if n in wanted]
        if not names:
            raise ConfigError(f"--only {','.join(args.only)} matches no source in source_preference")

    credentials = CredentialStore(config_base.credentials_path()).load()
    cache = CacheManager()
    id_cache = IdCache(config_base.id_cache_dir() / "ids.json.gz").load()
    resolver = IdResolver(
        id_cache,
        cooldown_path=config_base.id_cache_dir() / "lookup_cooldown.json",
        max_workers=int((cfg.get("runtime") or {}).get("max_workers") or 4),
    )
    oracles = interactive_oracles() if args.interactive else {}
    sources = build_sources(cfg, credentials, names, auth_oracles=oracles, cache=cache)
    _register_lookups(resolver, sources)

    try:
        result = Orchestrator(cfg, sources, credentials, cache, resolver, logger=log).run()
    finally:
        resolver.close()

    if result.aborted:
        return EXIT_ABORTED
    for line in result.errors:
        cli.error(line)
    return EXIT_OK if result.ok else EXIT_ERRORS


# --- argv --------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mediasync", description="Synchronise watchlists, ratings, reviews and history.")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("sync", help="run one sync")
    s.add_argument("--dry-run", action="store_true", help="write distribute previews only")
    s.add_argument("--force-full", action="store_true", help="ignore last-sync stamps")
    s.add_argument("--only", nargs="+", metavar="SOURCE", help="limit the run to these sources")
    s.add_argument("--interactive", action="store_true", help="prompt for missing logins")
    s.set_defaults(func=cmd_sync)

    v = sub.add_parser("validate", help="load and validate the config")
    v.set_defaults(func=cmd_validate, dry_run=False, force_full=False)

    c = sub.add_parser("clear-cache", help="remove collect and distribute caches")
    c.add_argument("--ids", action="store_true", help="also drop the id cache")
    c.add_argument("--csv", action="store_true", help="also drop cached CSV exports")
    c.add_argument("--last-sync", action="store_true", help="also reset last-sync stamps")
    c.set_defaults(func=cmd_clear_cache)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return int(args.func(args))
    except ConfigError as e:
        cli.error(f"configuration error: {e}")
        return EXIT_ABORTED
    except KeyboardInterrupt:
        cli.warn("interrupted")
        return EXIT_ABORTED
    finally:
        log.close()


if __name__ == "__main__":
    sys.exit(main())
