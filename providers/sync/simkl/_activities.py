# /providers/sync/simkl/_activities.py
# MediaSync - Simkl native incremental gate (/sync/activities vs stored snapshot)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ._common import SimklClient, _log

SNAPSHOT_KEY = "simkl_last_activities"
URL_ACTIVITIES = "sync/activities"


@dataclass(frozen=True)
class Window:
    """What a read should fetch: nothing, everything, or changes since `date_from`."""

    changed: bool
    date_from: str | None = None

    @property
    def full(self) -> bool:
        return self.changed and self.date_from is None


def fetch(client: SimklClient) -> dict[str, Any]:
    data = client.post(URL_ACTIVITIES, "activities")
    return dict(data) if isinstance(data, Mapping) else {}


def plan(current: Mapping[str, Any] | None, saved: Mapping[str, Any] | None, *, force: bool) -> Window:
    if force or not saved or not current:
        return Window(True)
    now_all = current.get("all")
    then_all = saved.get("all")
    if now_all and now_all == then_all:
        _log("activities", "info", "no changes since last sync", all=now_all)
        return Window(False)
    return Window(True, str(then_all) if then_all else None)
