# /ms_platform/orchestrator/facade.py
# MediaSync - orchestrator facade: authenticate, collect, resolve, distribute
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from _logging import Logger, log as _default_log
from providers.sync._mod_base import Capability, MediaSource

from ..cache import CacheManager
from ..config_base import source_preference
from ..credentials import CredentialStore
from ..id_resolver import IdResolver
from ..timeutil import utcnow
from ._applier import apply_distribution
from ._collect import collect_all, enabled_data_types, id_pass, normalize_ratings
from ._distribution import DistributionOptions, strategy_for
from ._handles import AdapterHandle
from ._logging import Emitter
from ._removals import build_removal_lists, filter_additions
from ._resolution import ResolutionPolicy, rated_implies_watched, resolve_all
from ._types import DistributionResult, ErrorBuffer, ResolvedData, SourceData, SyncResult

__all__ = ["Orchestrator"]


@dataclass
class Orchestrator:
    config: Mapping[str, Any]
    sources: Sequence[MediaSource]
    credentials: CredentialStore
    cache: CacheManager
    id_resolver: IdResolver
    logger: Logger | None = None
    on_progress: Callable[[str], None] | None = None
    now: Callable[[], datetime] = utcnow

    handles: list[AdapterHandle] = field(init=False, default_factory=list)
    emitter: Emitter = field(init=False)

    def __post_init__(self) -> None:
        self.cfg: dict[str, Any] = dict(self.config or {})
        rt = dict(self.cfg.get("runtime") or {})
        sync = dict(self.cfg.get("sync") or {})
        self.log = (self.logger or _default_log).child("orchestrator")
        self.emitter = Emitter(self.on_progress, self.log, debug=bool(rt.get("debug")))

        self.max_workers = max(1, int(rt.get("max_workers") or 8))
        self.apply_chunk_size = int(rt.get("apply_chunk_size") or 0)
        self.policy = ResolutionPolicy.from_config(self.cfg)
        self.options = DistributionOptions.from_config(self.cfg)
        self.mark_rated_as_watched = bool(sync.get("mark_rated_as_watched"))
        self.older_than_days = sync.get("remove_watchlist_items_older_than_days")
        self.dry_run = {str(s).lower() for s in (sync.get("dry_run") or [])}
        self.use_cache = [str(s).lower() for s in (sync.get("use_cache") or [])]

        by_name = {h.name: h for h in (AdapterHandle(s) for s in self.sources)}
        prefs = source_preference(self.cfg)
        # preference order first; anything not listed keeps registration order after it
        self.handles = [by_name[n] for n in prefs if n in by_name]
        self.handles += [h for n, h in by_name.items() if n not in prefs]

    # --- phases --------------------------------------------------------------

    def _authenticate(self, errors: ErrorBuffer) -> list[AdapterHandle] | None:
        live: list[AdapterHandle] = []
        for i, h in enumerate(self.handles):
            try:
                h.authenticate()
            except Exception as e:
                errors.add(f"{h.name} authenticate", e)
                if i == 0:
                    self.log.error(f"authentication failed for primary source {h.name}", extra={"error": str(e)})
                    return None
                self.log.warn(f"authentication failed for {h.name}; skipped this run", extra={"error": str(e)})
                continue
            live.append(h)
        return live

    def _force_full(self, live: Sequence[AdapterHandle]) -> None:
        for h in live:
            if h.set_force_full_sync(self.options.force_full_sync):
                self.emitter.dbg("force-full flag passed", source=h.name, force=self.options.force_full_sync)

    def _resolve(self, live: Sequence[AdapterHandle], collected: dict[str, SourceData]) -> ResolvedData:
        ordered = [(h.name, collected[h.name]) for h in live if h.name in collected]
        resolved = resolve_all(ordered, self.policy)
        if self.mark_rated_as_watched:
            n = rated_implies_watched(resolved)
            if n:
                self.log.info(f"rated items added to history: {n}")
        return resolved

    def _prepare(
        self,
        h: AdapterHandle,
        resolved: ResolvedData,
        existing: SourceData,
        removals: Mapping[str, list[Any]],
    ) -> tuple[DistributionResult, Any]:
        inc = h.capability(Capability.INCREMENTAL_SYNC)
        strategy = strategy_for(
            h.name,
            credentials=self.credentials,
            cache=self.cache,
            native_incremental=bool(inc.supports_native_incremental()) if inc is not None else False,
            now=self.now,
        )
        res = strategy.prepare(resolved, existing, self.options)
        rl = list(removals.get(h.name) or [])
        before = len(res.watchlist)
        res.watchlist = filter_additions(res.watchlist, rl)
        if before != len(res.watchlist):
            res.dedup_dropped["watchlist"] = res.dedup_dropped.get("watchlist", 0) + before - len(res.watchlist)
        res.removal_list = rl
        for bucket, items in res.buckets().items():
            self.cache.save_distribute(h.name, bucket, items)
        return res, strategy

    def _distribute_one(
        self,
        h: AdapterHandle,
        resolved: ResolvedData,
        existing: SourceData,
        removals: Mapping[str, list[Any]],
        errors: ErrorBuffer,
    ) -> int:
        res, strategy = self._prepare(h, resolved, existing, removals)
        counts = {k: len(v) for k, v in res.buckets().items()}
        if h.name in self.dry_run:
            self.log.info(f"dry run for {h.name}: previews written, nothing applied", extra=counts)
            self.emitter.emit("distribute:done", target=h.name, dry_run=True, **counts)
            return 0
        n = apply_distribution(h, res, strategy, errors=errors, chunk_size=self.apply_chunk_size)
        self.emitter.emit("distribute:done", target=h.name, written=n, excluded=res.excluded_count(), **counts)
        return n

    def _cleanup(self, errors: ErrorBuffer) -> None:
        self.id_resolver.wait()
        try:
            self.id_resolver.save_if_dirty()
        except OSError as e:
            errors.add("id cache save", e)
        try:
            self.credentials.save()
        except OSError as e:
            errors.add("credentials save", e)
        for h in self.handles:
            try:
                h.cleanup()
            except Exception as e:
                errors.add(f"{h.name} cleanup", e)

    # --- main run ------------------------------------------------------------

    def run(self) -> SyncResult:
        t0 = time.monotonic()
        errors = ErrorBuffer()
        names = [h.name for h in self.handles]
        self.emitter.emit("run:start", sources=names, dry_run=sorted(self.dry_run))
        self.log.info(f"sync started: {', '.join(names) or '-'}")

        live = self._authenticate(errors)
        if live is None:
            out = SyncResult(0, time.monotonic() - t0, errors.snapshot(), aborted=True)
            self.emitter.emit("run:done", **out.to_dict())
            return out

        for h in live:
            self.cache.reset_excluded(h.name)
        self._force_full(live)

        data_types = enabled_data_types(self.cfg)
        collected = collect_all(
            live,
            data_types,
            cache=self.cache,
            errors=errors,
            use_cache=self.use_cache,
            max_workers=self.max_workers,
        )
        self.emitter.emit("collect:done", counts={k: v.counts() for k, v in collected.items()})

        id_pass(collected, self.id_resolver, self.cache)
        normalize_ratings(collected, {h.name: h for h in live})
        resolved = self._resolve(live, collected)
        self.emitter.emit("resolve:done", **resolved.counts())

        removals: dict[str, list[Any]] = {}
        if self.options.sync_watchlist:
            removals = build_removal_lists(
                collected,
                resolved.watch_history,
                remove_watched=self.options.remove_watched_from_watchlists,
                older_than_days=self.older_than_days,
                now=self.now(),
            )

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(live))), thread_name_prefix="ms-distribute") as ex:
            futs = {
                h.name: ex.submit(self._distribute_one, h, resolved, collected.get(h.name) or SourceData(), removals, errors)
                for h in live
            }
            for name, f in futs.items():
                try:
                    f.result()
                except Exception as e:
                    errors.add(f"{name} distribute", e)
                    self.log.error(f"distribution failed for {name}", extra={"error": str(e)})

        self._cleanup(errors)
        out = SyncResult(errors.synced, time.monotonic() - t0, errors.snapshot())
        if out.errors:
            self.log.warn(f"sync completed with {len(out.errors)} error(s); {out.items_synced} item(s) written")
        else:
            self.log.success(f"sync completed; {out.items_synced} item(s) written in {out.duration:.1f}s")
        self.emitter.emit("run:done", **out.to_dict())
        return out
