# /ms_platform/orchestrator/_applier.py
# MediaSync - ordered writes of a prepared distribution into one target
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Callable, Sequence

from providers.sync._log import log as _plog
from providers.sync._mod_base import (
    Capability,
    NotSupportedError,
    RateLimitError,
    RecoverableModuleError,
)
from providers.sync._mod_common import chunked

from ..models import Rating
from ._distribution import DistributionStrategy
from ._handles import AdapterHandle
from ._types import DistributionResult, ErrorBuffer

__all__ = ["apply_distribution", "denormalize_ratings"]


def _log(target: str, level: str, msg: str, **fields: Any) -> None:
    _plog("apply", target, level, msg, **fields)


#--- Retry wrapper with exponential backoff (transient errors only) -----------
def _retry(fn: Callable[[], Any], *, attempts: int = 2, base_sleep: float = 0.5) -> Any:
    for i in range(attempts):
        try:
            return fn()
        except RateLimitError:
            raise
        except RecoverableModuleError:
            if i == attempts - 1:
                raise
            time.sleep(base_sleep * (2 ** i))
    return None


def denormalize_ratings(ratings: Sequence[Rating], handle: AdapterHandle) -> list[Rating]:
    facet = handle.capability(Capability.RATING_NORMALIZATION)
    if facet is None:
        return list(ratings)
    return [replace(r, rating=int(facet.denormalize(r.rating, 10))) for r in ratings]


def _landed(ret: Any, size: int) -> int:
    # adapters that report nothing wrote the whole batch
    if isinstance(ret, bool) or not isinstance(ret, int):
        return size
    return max(0, min(ret, size))


def _write(
    handle: AdapterHandle,
    method: str,
    items: Sequence[Any],
    *,
    label: str,
    errors: ErrorBuffer,
    chunk_size: int = 0,
) -> int:
    """Returns the number of records written; failures are recorded, never raised."""
    if not items:
        return 0
    batches = [list(items)] if chunk_size <= 0 else list(chunked(list(items), chunk_size))
    done = 0
    for batch in batches:
        try:
            landed = _retry(lambda: handle.write(method, batch))
        except NotSupportedError as e:
            _log(handle.name, "info", "write not supported; skipped", what=label, count=len(batch), error=str(e))
            errors.add(f"{handle.name} {label}", e)
            return done
        except RateLimitError as e:
            _log(handle.name, "warn", "write rate limited", what=label, count=len(batch), retry_after=e.retry_after, error=str(e))
            errors.add(f"{handle.name} {label}", e)
            return done
        except Exception as e:
            _log(handle.name, "error", "write failed", what=label, count=len(batch), error=str(e))
            errors.add(f"{handle.name} {label}", e)
            return done
        n = _landed(landed, len(batch))
        if n < len(batch):
            _log(handle.name, "warn", "some records not written", what=label, written=n, count=len(batch))
        done += n
    _log(handle.name, "info", "written", what=label, count=done)
    return done


def apply_distribution(
    handle: AdapterHandle,
    res: DistributionResult,
    strategy: DistributionStrategy,
    *,
    errors: ErrorBuffer,
    chunk_size: int = 0,
) -> int:
    """Watchlist adds, split-to-history, removals, ratings, reviews, history; in that order."""
    total = 0

    def step(method: str, items: Sequence[Any], label: str, stamp: str | None) -> bool:
        nonlocal total
        n = _write(handle, method, items, label=label, errors=errors, chunk_size=chunk_size)
        total += n
        ok = n == len(items)
        if ok and stamp and items:
            strategy.on_sync_complete(stamp, n)
        return ok

    wl_ok = step("add_to_watchlist", res.watchlist, "watchlist", None)
    split_ok = step("add_watch_history", res.watchlist_to_history, "watchlist_to_history", None)
    if wl_ok and split_ok and (res.watchlist or res.watchlist_to_history):
        strategy.on_sync_complete("watchlist", len(res.watchlist) + len(res.watchlist_to_history))
    step("remove_from_watchlist", res.removal_list, "removal_list", None)
    step("set_ratings", denormalize_ratings(res.ratings, handle), "ratings", "ratings")
    step("set_reviews", res.reviews, "reviews", "reviews")
    step("add_watch_history", res.watch_history, "watch_history", "watch_history")
    errors.count(total)
    return total
