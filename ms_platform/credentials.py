# /ms_platform/credentials.py
# MediaSync - token and sync-state store (credentials.json)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .timeutil import format_datetime, parse_datetime, utcnow

# Simkl tokens never expire; store a far-future stamp so expiry checks pass.
NEVER_EXPIRES = timedelta(days=365 * 100)


@dataclass
class CredentialStore:
    """Flat key/value JSON file. Every accessor takes the store lock."""

    path: Path
    _data: dict[str, Any] = field(default_factory=dict, repr=False)
    _loaded: bool = field(default=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    # --- persistence ---------------------------------------------------------

    def load(self) -> "CredentialStore":
        with self._lock:
            if self.path.exists():
                raw = json.loads(self.path.read_text("utf-8") or "{}")
                self._data = dict(raw) if isinstance(raw, dict) else {}
            else:
                self._data = {}
            self._loaded = True
        return self

    def _ensure(self) -> None:
        if not self._loaded:
            self.load()

    def save(self) -> None:
        with self._lock:
            self._ensure()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")
            os.replace(tmp, self.path)
            try:
                os.chmod(self.path, 0o600)
            except OSError:
                pass

    # --- raw access ----------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            self._ensure()
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._ensure()
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    def remove(self, key: str) -> None:
        self.set(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            self._ensure()
            return sorted(self._data.keys())

    def get_json(self, key: str) -> dict[str, Any] | None:
        v = self.get(key)
        if isinstance(v, dict):
            return v
        if isinstance(v, str) and v.strip():
            try:
                out = json.loads(v)
            except ValueError:
                return None
            return out if isinstance(out, dict) else None
        return None

    def set_json(self, key: str, value: dict[str, Any] | None) -> None:
        self.set(key, dict(value) if value is not None else None)

    def get_datetime(self, key: str) -> datetime | None:
        return parse_datetime(self.get(key))

    def set_datetime(self, key: str, when: datetime | None) -> None:
        self.set(key, format_datetime(when))

    # --- OAuth tokens ----------------------------------------------------------

    def get_access_token(self, service: str) -> str | None:
        return self.get(f"{service}_access_token") or None

    def get_refresh_token(self, service: str) -> str | None:
        return self.get(f"{service}_refresh_token") or None

    def get_token_expires(self, service: str) -> datetime | None:
        return self.get_datetime(f"{service}_token_expires")

    def set_tokens(
        self,
        service: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        with self._lock:
            self.set(f"{service}_access_token", access_token)
            if refresh_token:
                self.set(f"{service}_refresh_token", refresh_token)
            self.set_datetime(f"{service}_token_expires", expires_at or (utcnow() + NEVER_EXPIRES))

    def clear_tokens(self, service: str) -> None:
        with self._lock:
            for suffix in ("access_token", "refresh_token", "token_expires"):
                self.remove(f"{service}_{suffix}")

    def token_valid_for(self, service: str, margin: timedelta = timedelta(minutes=5)) -> bool:
        if not self.get_access_token(service):
            return False
        exp = self.get_token_expires(service)
        return exp is None or exp > utcnow() + margin

    # --- last-sync stamps ----------------------------------------------------

    @staticmethod
    def last_sync_key(target: str, data_type: str) -> str:
        return f"{target}_last_sync_{data_type}"

    def get_last_sync_timestamp(self, target: str, data_type: str) -> datetime | None:
        return self.get_datetime(self.last_sync_key(target, data_type))

    def set_last_sync_timestamp(self, target: str, data_type: str, when: datetime | None = None) -> None:
        self.set_datetime(self.last_sync_key(target, data_type), when or utcnow())

    def clear_last_sync(self, target: str | None = None) -> int:
        with self._lock:
            self._ensure()
            doomed = [
                k for k in self._data
                if "_last_sync_" in k and (target is None or k.startswith(f"{target}_last_sync_"))
            ]
            for k in doomed:
                self._data.pop(k, None)
            return len(doomed)
