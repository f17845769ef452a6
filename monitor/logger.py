"""
Logging for the arbitrage engine.

Console lines go to stderr, every record also lands in a DEBUG file under
log_dir, and --json-log adds an ndjson stream that carries trade context
(market, outcome status) for post-trade analysis.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone


_RESET = "\033[0m"
_DIM = "\033[2m"
_RED = "\033[31m"

# levelname -> (tag, color)
_LEVELS = {
    "DEBUG": ("DBG", _DIM),
    "INFO": ("INF", "\033[36m"),
    "WARNING": ("WRN", "\033[33m"),
    "ERROR": ("ERR", _RED),
    "CRITICAL": ("CRT", "\033[1;31m"),
}

# Record attributes passed via `extra=` that the JSON stream keeps.
TRADE_CONTEXT_FIELDS = ("market", "status")

_NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "py_clob_client")


class ConsoleFormatter(logging.Formatter):
    """HH:MM:SS TAG module message"""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color and _supports_color()

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        tag, color = _LEVELS.get(record.levelname, (record.levelname[:3], ""))
        source = record.name.rsplit(".", 1)[-1]
        if self._use_color:
            line = f"{_DIM}{ts}{_RESET} {color}{tag}{_RESET} {_DIM}{source:<12}{_RESET} {record.getMessage()}"
        else:
            line = f"{ts} {tag} {source:<12} {record.getMessage()}"

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            exc_line = f"     {type(exc).__name__}: {exc}"
            line += f"\n{_RED}{exc_line}{_RESET}" if self._use_color else f"\n{exc_line}"
        return line


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in TRADE_CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = repr(record.exc_info[1])
        return json.dumps(entry, separators=(",", ":"), default=str)


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str = "logs",
) -> str:
    """
    Install the console, verbose file and optional JSON handlers on the root
    logger. Returns the path of the verbose log file.
    """
    root = logging.getLogger()
    # Root must be DEBUG so the file handler captures everything
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"run_{stamp}.log")
    verbose = logging.FileHandler(log_path, mode="a")
    verbose.setLevel(logging.DEBUG)
    verbose.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(verbose)

    if json_log_file:
        trades = logging.FileHandler(json_log_file, mode="a")
        trades.setFormatter(JSONFormatter())
        root.addHandler(trades)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
