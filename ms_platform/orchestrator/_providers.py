# /ms_platform/orchestrator/_providers.py
# MediaSync - discovery of sync adapters under providers.sync
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import importlib
import pkgutil
from collections.abc import Iterator
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Mapping

from providers.sync._log import log as _plog
from providers.sync._mod_base import ConfigError, MediaSource

from ..credentials import CredentialStore

__all__ = ["load_adapter_factories", "build_sources"]

AdapterFactory = Callable[..., MediaSource]
_SKIP = {"_mod_base", "_mod_common"}


def _iter_sync_modules() -> Iterator[ModuleType]:
    import providers.sync as syncpkg

    pkg_path = Path(next(iter(syncpkg.__path__)))
    for m in pkgutil.iter_modules([str(pkg_path)]):
        if not m.name.startswith("_mod_") or m.name in _SKIP:
            continue
        try:
            yield importlib.import_module(f"providers.sync.{m.name}")
        except ImportError as e:
            _plog("providers", "load", "error", "adapter module failed to import", module=m.name, error=str(e))


def load_adapter_factories() -> dict[str, AdapterFactory]:
    out: dict[str, AdapterFactory] = {}
    for mod in _iter_sync_modules():
        name = getattr(mod, "NAME", None)
        factory = getattr(mod, "build_adapter", None)
        if name and callable(factory):
            out[str(name).lower()] = factory
    return out


def build_sources(
    cfg: Mapping[str, Any],
    credentials: CredentialStore,
    names: list[str],
    **kwargs: Any,
) -> list[MediaSource]:
    """Instantiate adapters for `names` (source-preference order); extra kwargs go to every factory."""
    factories = load_adapter_factories()
    out: list[MediaSource] = []
    for n in names:
        f = factories.get(n)
        if f is None:
            raise ConfigError(f"no adapter available for source {n!r}")
        out.append(f(cfg, credentials, **kwargs))
    return out
