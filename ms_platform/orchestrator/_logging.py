# /ms_platform/orchestrator/_logging.py
# MediaSync - run events (run:start, collect:done, distribute:done, run:done)
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import json
from typing import Any, Callable


class Emitter:
    """Forwards structured run events to an optional callback and application logger."""

    def __init__(self, cb: Callable[[str], None] | None = None, logger: Any = None, *, debug: bool = False):
        self.cb = cb
        self.logger = logger
        self.debug = debug

    def _send(self, line: str) -> None:
        try:
            self.cb(line)  # type: ignore[misc]
        except Exception as e:
            if self.logger is not None:
                self.logger.warn("progress callback failed", extra={"error": str(e)})

    def emit(self, event: str, **data: Any) -> None:
        if self.logger is not None:
            self.logger.debug(event, extra=data)
        if not self.cb:
            return
        payload: dict[str, Any] = {"event": event}
        payload.update(data)
        self._send(json.dumps(payload, separators=(",", ":"), default=str))

    def info(self, line: str) -> None:
        if self.logger is not None:
            self.logger.info(line)
        if self.cb:
            self._send(line)

    def dbg(self, msg: str, **fields: Any) -> None:
        if not self.debug:
            return
        if fields:
            self.emit("debug", msg=msg, **fields)
        else:
            self.info(f"[DEBUG] {msg}")
