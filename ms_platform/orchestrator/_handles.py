# /ms_platform/orchestrator/_handles.py
# MediaSync - shared/exclusive guard around each adapter
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

from providers.sync._mod_base import Capability, MediaSource


class RWLock:
    """Many readers or one writer; a waiting writer blocks new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class AdapterHandle:
    """Reads and writes take the shared side; auth, force-full and cleanup take the exclusive side."""

    def __init__(self, adapter: MediaSource):
        self.adapter = adapter
        self.lock = RWLock()
        self.name = str(adapter.source_name()).lower()

    def __repr__(self) -> str:
        return f"AdapterHandle({self.name})"

    def authenticate(self) -> None:
        with self.lock.exclusive():
            self.adapter.authenticate()

    def cleanup(self) -> None:
        with self.lock.exclusive():
            self.adapter.cleanup()

    def set_force_full_sync(self, force: bool) -> bool:
        facet = self.capability(Capability.INCREMENTAL_SYNC)
        if facet is None:
            return False
        with self.lock.exclusive():
            facet.set_force_full_sync(force)
        return True

    def capability(self, cap: Capability) -> Any | None:
        return self.adapter.capability(cap)

    def read(self, data_type: str) -> list[Any]:
        fn = getattr(self.adapter, f"get_{data_type}")
        with self.lock.shared():
            return list(fn() or [])

    def write(self, method: str, items: list[Any]) -> Any:
        fn = getattr(self.adapter, method)
        with self.lock.shared():
            return fn(items)
