# /providers/sync/_mod_base.py
# MediaSync base sync module: adapter contract, capability facets, errors
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from ms_platform.media import MediaType, NormalizedStatus
from ms_platform.models import MediaIds, Rating, Review, WatchHistory, WatchlistItem
from ms_platform.timeutil import format_datetime, iso_to_ts, parse_datetime, ts_to_iso

__all__ = [
    "ModuleError",
    "SourceError",
    "AuthError",
    "NotSupportedError",
    "RecoverableModuleError",
    "RateLimitError",
    "ParseError",
    "ConfigError",
    "Capability",
    "MediaSource",
    "RatingNormalization",
    "IncrementalSync",
    "IdExtraction",
    "IdLookupProvider",
    "StatusMapping",
    "StatusMappingConfig",
    "ScaledRatings",
    "round_half_up",
    "iso_to_ts",
    "ts_to_iso",
    "parse_datetime",
    "format_datetime",
    "atomic_write_json",
    "read_json_or",
]


# Errors

class ModuleError(RuntimeError): ...


class ConfigError(ModuleError): ...


class RecoverableModuleError(ModuleError): ...


class ParseError(RecoverableModuleError): ...


class RateLimitError(RecoverableModuleError):
    def __init__(self, message: str, *, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class SourceError(ModuleError):
    def __init__(self, message: str, *, source: str | None = None):
        super().__init__(message)
        self.source = source


class AuthError(SourceError): ...


class NotSupportedError(SourceError): ...


# Capabilities

class Capability(str, Enum):
    RATING_NORMALIZATION = "rating_normalization"
    INCREMENTAL_SYNC = "incremental_sync"
    ID_EXTRACTION = "id_extraction"
    ID_LOOKUP = "id_lookup"
    STATUS_MAPPING = "status_mapping"


@runtime_checkable
class RatingNormalization(Protocol):
    def normalize(self, value: float, target_scale: int = 10) -> int: ...
    def denormalize(self, value: int, source_scale: int = 10) -> float: ...
    def native_scale(self) -> int: ...


@runtime_checkable
class IncrementalSync(Protocol):
    def set_force_full_sync(self, force: bool) -> None: ...
    def supports_native_incremental(self) -> bool: ...


@runtime_checkable
class IdExtraction(Protocol):
    def extract_ids(self, imdb_id: str | None, native_ids: Any) -> MediaIds | None: ...
    def native_id_type(self) -> str: ...


@runtime_checkable
class IdLookupProvider(Protocol):
    def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None: ...
    def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None: ...
    def priority(self) -> int: ...
    def provider_name(self) -> str: ...
    def is_available(self) -> bool: ...


@runtime_checkable
class StatusMapping(Protocol):
    def status_mapping(self) -> "StatusMappingConfig": ...


class MediaSource(Protocol):
    def source_name(self) -> str: ...
    def authenticate(self) -> None: ...

    def get_watchlist(self) -> list[WatchlistItem]: ...
    def get_ratings(self) -> list[Rating]: ...
    def get_reviews(self) -> list[Review]: ...
    def get_watch_history(self) -> list[WatchHistory]: ...

    # Writes may return how many records landed; None means the whole batch.
    def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> int | None: ...
    def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> int | None: ...
    def set_ratings(self, ratings: Sequence[Rating]) -> int | None: ...
    def set_reviews(self, reviews: Sequence[Review]) -> int | None: ...
    def add_watch_history(self, items: Sequence[WatchHistory]) -> int | None: ...

    def cleanup(self) -> None: ...
    def capability(self, cap: Capability) -> Any | None: ...


# Rating scales

def round_half_up(x: float) -> int:
    """7.5 -> 8, 4.5 -> 5 (builtin round() would give banker's rounding)."""
    return int(math.floor(float(x) + 0.5))


@dataclass(frozen=True)
class ScaledRatings:
    """Linear rescaling between a service's native 1..scale and any other 1..N scale."""

    scale: int = 10

    def native_scale(self) -> int:
        return self.scale

    def normalize(self, value: float, target_scale: int = 10) -> int:
        v = round_half_up(float(value) * target_scale / self.scale)
        return max(1, min(target_scale, v))

    def denormalize(self, value: int, source_scale: int = 10) -> float:
        v = round_half_up(float(value) * self.scale / source_scale)
        return float(max(1, min(self.scale, v)))


# Status vocabularies

@dataclass
class StatusMappingConfig:
    to_normalized: dict[str, str] = field(default_factory=dict)
    from_normalized: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any] | None) -> "StatusMappingConfig":
        m = m or {}
        return cls(
            to_normalized={str(k).lower(): str(v) for k, v in (m.get("to_normalized") or {}).items()},
            from_normalized={str(k): str(v) for k, v in (m.get("from_normalized") or {}).items()},
        )

    def normalize(self, native: str | None) -> NormalizedStatus | None:
        if not native:
            return None
        return NormalizedStatus.parse(self.to_normalized.get(str(native).lower()))

    def native(self, status: NormalizedStatus | None, default: str | None = None) -> str | None:
        if status is None:
            return default
        return self.from_normalized.get(status.value, default)


# JSON I/O

def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def atomic_write_json(path: Path, data: Any) -> None:
    _ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + f".{os.getpid()}.tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), "utf-8")
    os.replace(tmp, path)


def read_json_or(path: Path, fallback: Any) -> Any:
    try:
        return json.loads(path.read_text("utf-8"))
    except (OSError, ValueError):
        return fallback
