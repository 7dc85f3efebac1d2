# /_logging.py
# MediaSync - application logger: coloured console lines, bound context, optional JSON-lines sink
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations
import sys, datetime, json, os, threading
from pathlib import Path
from typing import Any, Optional, TextIO, Mapping, Dict

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"silent": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}

# Debug output is on when runtime.debug is set (see configure) or MS_DEBUG is truthy.
_DEBUG = {"on": False}

def _debug_enabled() -> bool:
    if _DEBUG["on"]:
        return True
    return (os.getenv("MS_DEBUG") or "").strip().lower() in ("1", "true", "yes", "on")

def _fmt_extra(extra: Optional[Mapping[str, Any]]) -> str:
    if not extra:
        return ""
    parts = []
    for k, v in extra.items():
        if v is None:
            continue
        s = str(v).replace("\n", " ")
        parts.append(f"{k}={s!r}" if " " in s else f"{k}={s}")
    return " ".join(parts)

class Logger:
    def __init__(
        self,
        stream: TextIO = sys.stderr,
        level: str = "info",
        use_color: bool = True,
        show_time: bool = True,
        time_fmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        _context: Optional[Dict[str, Any]] = None,
        _json_stream: Optional[TextIO] = None,
        _lock: Optional[threading.Lock] = None,
    ):
        self.stream = stream
        self.level_no = LEVELS.get(level, 20)
        self.use_color = use_color and not os.getenv("NO_COLOR")
        self.show_time = show_time
        self.time_fmt = time_fmt
        self.level_colors = {"DEBUG": DIM, "INFO": BLUE, "WARN": YELLOW, "ERROR": RED, "SUCCESS": GREEN}
        self._context: Dict[str, Any] = dict(_context or {})
        self._json_stream: Optional[TextIO] = _json_stream
        self._lock = _lock or threading.Lock()

    # Configuration
    def set_level(self, level: str) -> None:
        self.level_no = LEVELS.get(str(level).lower(), self.level_no)

    def enable_color(self, on: bool = True) -> None:
        self.use_color = on

    def enable_json(self, file_path: str | Path) -> None:
        p = Path(file_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        self._json_stream = open(p, "a", encoding="utf-8")

    def configure(self, cfg: Mapping[str, Any], logs_dir: Path | None = None) -> "Logger":
        """Apply the `runtime` section of a loaded config."""
        rt = dict((cfg or {}).get("runtime") or {})
        self.set_level(str(rt.get("log_level") or "info"))
        _DEBUG["on"] = bool(rt.get("debug"))
        if rt.get("log_json") and logs_dir is not None and self._json_stream is None:
            self.enable_json(logs_dir / "mediasync.jsonl")
        return self

    def close(self) -> None:
        with self._lock:
            if self._json_stream is not None:
                self._json_stream.close()
                self._json_stream = None

    # Context
    def bind(self, **ctx: Any) -> "Logger":
        new_ctx = dict(self._context); new_ctx.update(ctx)
        out = Logger(
            stream=self.stream,
            level=self.level_name,
            use_color=self.use_color,
            show_time=self.show_time,
            time_fmt=self.time_fmt,
            _context=new_ctx,
            _json_stream=self._json_stream,
            _lock=self._lock,
        )
        return out

    def child(self, name: str) -> "Logger":
        return self.bind(module=name)

    @property
    def level_name(self) -> str:
        for k, v in LEVELS.items():
            if v == self.level_no:
                return k
        return "info"

    # Formatting
    def _fmt_text(self, label: str, msg: str, extra: Optional[Mapping[str, Any]]) -> str:
        mod = str(self._context.get("module") or "").strip()
        col = self.level_colors.get(label) if self.use_color else None
        lvl = f"{col}{label}{RESET}" if col else label
        ctx = {k: v for k, v in self._context.items() if k != "module"}
        tail = " ".join(x for x in (_fmt_extra(ctx), _fmt_extra(extra)) if x)
        line = " ".join(x for x in (f"[{mod}]" if mod else "", lvl, msg, tail) if x)
        if self.show_time:
            ts = datetime.datetime.now().strftime(self.time_fmt)
            return f"{DIM}[{ts}]{RESET} {line}" if self.use_color else f"[{ts}] {line}"
        return line

    def _emit(self, severity: str, label: str, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if severity == "debug":
            if not _debug_enabled():
                return
        elif self.level_no > LEVELS.get(severity, 20):
            return
        msg = " ".join(str(p) for p in parts)
        text = self._fmt_text(label, msg, extra)
        with self._lock:
            self.stream.write(text + "\n")
            self.stream.flush()
            if self._json_stream:
                payload: Dict[str, Any] = {
                    "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                    "level": label,
                    "msg": msg,
                    "ctx": self._context,
                }
                if extra:
                    payload["extra"] = dict(extra)
                self._json_stream.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
                self._json_stream.flush()

    # Public API
    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("debug", "DEBUG", *parts, extra=extra)

    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("info", "INFO", *parts, extra=extra)

    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("warn", "WARN", *parts, extra=extra)

    warning = warn

    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("error", "ERROR", *parts, extra=extra)

    def success(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("info", "SUCCESS", *parts, extra=extra)

# default instance
log = Logger()

__all__ = ["Logger", "log", "LEVELS"]
