# /ms_platform/cache.py
# MediaSync - collect / excluded / distribute JSON caches per source
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import shutil
import threading
from pathlib import Path
from typing import Any, Iterable, Sequence

from providers.sync._log import log as _plog
from providers.sync._mod_base import atomic_write_json, read_json_or

from . import config_base
from .models import DATA_TYPES, ExcludedItem, record_from_dict

__all__ = ["CacheManager", "DISTRIBUTE_BUCKETS"]

DISTRIBUTE_BUCKETS: tuple[str, ...] = (
    "watchlist",
    "watchlist_to_history",
    "ratings",
    "reviews",
    "watch_history",
    "removal_list",
)


def _log(level: str, msg: str, **fields: Any) -> None:
    _plog("cache", "cache", level, msg, **fields)


class CacheManager:
    """File layout under data/cache; rooted at CONFIG_BASE() unless a root is given."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root is not None else config_base.cache_dir()
        self._lock = threading.Lock()

    # --- paths ---------------------------------------------------------------

    def _collect(self, source: str, name: str) -> Path:
        return self.root / "collect" / source.lower() / f"{name}.json"

    def _distribute(self, source: str, bucket: str) -> Path:
        return self.root / "distribute" / source.lower() / f"{bucket}.json"

    def csv_dir(self, source: str) -> Path:
        p = self.root / "csv" / source.lower()
        p.mkdir(parents=True, exist_ok=True)
        return p

    def id_dir(self) -> Path:
        p = self.root / "id"
        p.mkdir(parents=True, exist_ok=True)
        return p

    # --- collect -------------------------------------------------------------

    def save_collect(self, source: str, data_type: str, items: Sequence[Any]) -> None:
        if data_type not in DATA_TYPES:
            raise ValueError(f"unknown data type: {data_type}")
        atomic_write_json(self._collect(source, data_type), [x.to_dict() for x in items])
        _log("debug", "collect cached", source=source, data_type=data_type, count=len(items))

    def load_collect(self, source: str, data_type: str) -> list[Any]:
        rows = read_json_or(self._collect(source, data_type), [])
        out: list[Any] = []
        for row in rows if isinstance(rows, list) else []:
            if not isinstance(row, dict):
                continue
            try:
                out.append(record_from_dict(data_type, row))
            except (ValueError, TypeError, KeyError) as e:
                _log("warn", "skipping bad cached record", source=source, data_type=data_type, error=str(e))
        return out

    def has_collect(self, source: str) -> bool:
        return any(self._collect(source, dt).exists() for dt in DATA_TYPES)

    # --- excluded ------------------------------------------------------------

    def reset_excluded(self, source: str) -> None:
        with self._lock:
            atomic_write_json(self._collect(source, "excluded"), [])

    def save_excluded(self, source: str, items: Iterable[ExcludedItem]) -> int:
        batch = [x.to_dict() for x in items]
        if not batch:
            return 0
        with self._lock:
            path = self._collect(source, "excluded")
            prior = read_json_or(path, [])
            rows = (prior if isinstance(prior, list) else []) + batch
            atomic_write_json(path, rows)
        return len(batch)

    def load_excluded(self, source: str) -> list[ExcludedItem]:
        rows = read_json_or(self._collect(source, "excluded"), [])
        return [ExcludedItem.from_dict(r) for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    # --- distribute ----------------------------------------------------------

    def save_distribute(self, source: str, bucket: str, items: Sequence[Any]) -> None:
        if bucket not in DISTRIBUTE_BUCKETS:
            raise ValueError(f"unknown distribute bucket: {bucket}")
        atomic_write_json(self._distribute(source, bucket), [x.to_dict() for x in items])

    def load_distribute(self, source: str, bucket: str) -> list[dict[str, Any]]:
        rows = read_json_or(self._distribute(source, bucket), [])
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    # --- maintenance ---------------------------------------------------------

    def clear(self, *, collect: bool = True, distribute: bool = True, ids: bool = False, csv: bool = False) -> list[str]:
        removed: list[str] = []
        targets = [("collect", collect), ("distribute", distribute), ("id", ids), ("csv", csv)]
        for name, on in targets:
            p = self.root / name
            if on and p.exists():
                shutil.rmtree(p)
                removed.append(name)
        _log("info", "cache cleared", removed=",".join(removed) or "-")
        return removed
