# /ms_platform/timeutil.py
# MediaSync - UTC timestamp helpers shared by the core and the providers
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import time
from datetime import date, datetime, timezone
from typing import Any

__all__ = [
    "utcnow",
    "parse_datetime",
    "format_datetime",
    "iso_to_ts",
    "ts_to_iso",
    "is_date_only",
    "seconds_between",
    "is_after",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_datetime(v: Any) -> datetime | None:
    """Parse ISO-8601, `YYYY-MM-DD`, epoch seconds or a datetime into an aware UTC datetime."""
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day, tzinfo=timezone.utc)
    if isinstance(v, (int, float)):
        try:
            return datetime.fromtimestamp(float(v), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(v).strip()
    if not s:
        return None
    if s.isdigit() and len(s) >= 9:
        return parse_datetime(int(s))
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        for fmt in ("%Y-%m-%d", "%d %b %Y", "%b %d, %Y", "%Y-%m-%d %H:%M:%S"):
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def iso_to_ts(s: str) -> int:
    dt = parse_datetime(s)
    return int(dt.timestamp()) if dt else 0


def ts_to_iso(ts: int) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(int(ts or 0)))


def is_date_only(dt: datetime) -> bool:
    """Exports that only carry a date land on exactly midnight UTC."""
    u = dt.astimezone(timezone.utc)
    return u.hour == 0 and u.minute == 0 and u.second == 0 and u.microsecond == 0


def seconds_between(a: datetime, b: datetime) -> float:
    """Absolute distance; collapses to whole days when either side is date-only."""
    if is_date_only(a) or is_date_only(b):
        da = a.astimezone(timezone.utc).date()
        db = b.astimezone(timezone.utc).date()
        return abs((da - db).days) * 86400.0
    return abs((a - b).total_seconds())


def is_after(ts: datetime, last_sync: datetime) -> bool:
    """Incremental gate: strictly newer, or same-or-later date for date-only stamps."""
    if is_date_only(ts):
        return ts.astimezone(timezone.utc).date() >= last_sync.astimezone(timezone.utc).date()
    return ts > last_sync
