from __future__ import annotations

import json
import logging
import os
import platform
import socket
import sys
import threading
import traceback
from collections import deque
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from receiptparse.utils.forensic_context import get_forensic_fields

if os.name == "nt":
    import msvcrt
else:
    import fcntl

_FALSY = {"0", "false", "False", "FALSE", "no", "NO"}
_TRUTHY = {"1", "true", "TRUE", "yes", "YES"}

TEXT_LOG_NAME = "receiptparse.log"
TRACE_LOG_NAME = "receiptparse_forensic.jsonl"
DETAIL_VALUE_LIMIT = 400

TEXT_FORMAT = (
    "%(asctime)s.%(msecs)03d %(levelname)s tid=%(threadName)s "
    "cid=%(correlation_id)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
)


@contextmanager
def _file_lock(lock_path: Path) -> Iterator[None]:
    """
    Exclusive lock on a side file, held across processes.

    Several CLI runs or batch workers may share one log directory; the tail
    rewrite in LineCappedFileHandler must not interleave with their appends.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a+b") as fh:
        if os.name == "nt":
            # msvcrt locks a byte range, so the file needs at least one byte
            if fh.seek(0, os.SEEK_END) == 0:
                fh.write(b"\0")
                fh.flush()
            fh.seek(0)
            msvcrt.locking(fh.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                fh.seek(0)
                msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


class LineCappedFileHandler(logging.Handler):
    """
    Append-only log file that never holds much more than ``max_lines`` lines.

    Once the file runs ``trim_chunk`` lines past the cap it is rewritten with
    its tail, so a long batch of receipts cannot fill the disk. Writes and the
    rewrite hold ``<file>.lock`` so processes sharing the file do not lose lines.
    """

    def __init__(self, filename: Path, *, max_lines: int = 5000, encoding: str = "utf-8"):
        super().__init__()
        self.filename = Path(filename)
        self.encoding = encoding
        self.max_lines = int(max_lines)
        self.trim_chunk = max(10, self.max_lines // 100)
        self.lock_path = self.filename.with_name(self.filename.name + ".lock")
        self._mtx = threading.RLock()
        self._stream = None
        self._line_count = 0
        self._reopen()

    def _reopen(self) -> None:
        self.filename.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.filename, "r", encoding=self.encoding, errors="ignore") as rf:
                self._line_count = sum(1 for _ in rf)
        except FileNotFoundError:
            self._line_count = 0
        self._stream = open(self.filename, "a", encoding=self.encoding, errors="backslashreplace")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record).rstrip("\n") + "\n"
            with self._mtx, _file_lock(self.lock_path):
                if self._stream is None:
                    self._reopen()
                self._stream.write(msg)
                self._stream.flush()
                self._line_count += msg.count("\n")
                if self._line_count >= self.max_lines + self.trim_chunk:
                    self._keep_tail()
        except Exception:
            self.handleError(record)

    def _keep_tail(self) -> None:
        self._stream.close()
        self._stream = None
        with open(self.filename, "r", encoding=self.encoding, errors="ignore") as rf:
            tail = deque(rf, maxlen=self.max_lines)
        with open(self.filename, "w", encoding=self.encoding, errors="backslashreplace") as wf:
            wf.writelines(tail)
        self._line_count = len(tail)
        self._stream = open(self.filename, "a", encoding=self.encoding, errors="backslashreplace")

    def close(self) -> None:
        with self._mtx:
            if self._stream is not None:
                self._stream.close()
                self._stream = None
        super().close()


class ForensicContextFilter(logging.Filter):
    """Stamps the host and the current parse context (correlation id, type key, template) onto records."""

    def __init__(self) -> None:
        super().__init__()
        self._hostname = socket.gethostname()
        self._platform = platform.platform(terse=True)
        self._python = platform.python_version()

    def filter(self, record: logging.LogRecord) -> bool:
        fields = get_forensic_fields()
        record.hostname = self._hostname
        record.platform = self._platform
        record.python = self._python
        record.forensic = fields
        record.correlation_id = fields.get("correlation_id") or "-"
        return True


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: the parse trace a reviewer replays a receipt from."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event_name": getattr(record, "event_name", None),
            "message": record.getMessage(),
            "funcName": record.funcName,
            "line": record.lineno,
            "threadName": record.threadName,
            "hostname": getattr(record, "hostname", None),
            "platform": getattr(record, "platform", None),
            "python": getattr(record, "python", None),
            "forensic": getattr(record, "forensic", None) or get_forensic_fields(),
        }
        extra_obj = getattr(record, "extra_payload", None)
        if extra_obj:
            payload["extra"] = extra_obj
        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


def _compute_max_lines(configured: Optional[int] = None) -> int:
    """
    Line cap of the text log, first hit wins:
      RECEIPTPARSE_LOG_MAX_LINES, then ``logging.max_lines`` from the config,
      then RECEIPTPARSE_LOG_RETENTION_DAYS * RECEIPTPARSE_LOG_LINES_PER_DAY_ESTIMATE.
    """
    env_max = _env_int("RECEIPTPARSE_LOG_MAX_LINES", 0)
    if env_max > 0:
        return env_max
    if configured:
        return int(configured)
    retention_days = _env_int("RECEIPTPARSE_LOG_RETENTION_DAYS", 7)
    lines_per_day = _env_int("RECEIPTPARSE_LOG_LINES_PER_DAY_ESTIMATE", 50000)
    return max(1000, retention_days * lines_per_day)


def _flag(env_name: str, configured: Any, default: bool) -> bool:
    raw = os.environ.get(env_name, "").strip()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default if configured is None else bool(configured)


_SETUP_LOCK = threading.Lock()
_installed: List[logging.Handler] = []
_installed_dir: Optional[Path] = None


def setup_logging(
    log_dir: Path,
    name: str = "receiptparse",
    settings: Optional[Mapping[str, Any]] = None,
) -> logging.Logger:
    """
    Attach the text log and the JSONL trace under ``log_dir`` to the root logger.

    ``settings`` is the ``logging`` config section (``level``, ``console``,
    ``detail``, ``max_lines``); the RECEIPTPARSE_LOG_* variables override it.
    Calling again with the same directory keeps its handlers and only
    updates level and detail; a different directory replaces them.
    """
    global _installed_dir

    s = dict(settings or {})
    log_dir = Path(log_dir)
    level = logging.getLevelName(str(os.environ.get("RECEIPTPARSE_LOG_LEVEL") or s.get("level") or "DEBUG").upper())
    if not isinstance(level, int):
        level = logging.DEBUG
    max_lines = _compute_max_lines(s.get("max_lines"))
    detail = _flag("RECEIPTPARSE_LOG_DETAIL", s.get("detail"), True)
    console = _flag("RECEIPTPARSE_LOG_CONSOLE", s.get("console"), False)

    root = logging.getLogger()
    with _SETUP_LOCK:
        if _installed_dir != log_dir.resolve():
            for h in _installed:
                root.removeHandler(h)
                h.close()
            _installed.clear()

            log_dir.mkdir(parents=True, exist_ok=True)
            forensic_filter = ForensicContextFilter()
            text_fmt = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

            text_handler = LineCappedFileHandler(log_dir / TEXT_LOG_NAME, max_lines=max_lines)
            text_handler.setFormatter(text_fmt)
            trace_handler = LineCappedFileHandler(log_dir / TRACE_LOG_NAME, max_lines=max_lines * 2)
            trace_handler.setFormatter(JsonLineFormatter())
            _installed.extend([text_handler, trace_handler])

            if console:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.INFO)
                console_handler.setFormatter(text_fmt)
                _installed.append(console_handler)

            for h in _installed:
                h.addFilter(forensic_filter)
                root.addHandler(h)
            _installed_dir = log_dir.resolve()

        root.setLevel(level)
        setattr(root, "_receiptparse_log_detail", detail)

    logger = logging.getLogger(name)
    log_event(
        logger,
        "logging.start",
        "logging initialized",
        log_dir=str(log_dir),
        max_lines=max_lines,
        detail=int(detail),
        log_level=logging.getLevelName(level),
    )
    return logger


def log_event(
    logger: logging.Logger,
    event_name: str,
    message: str,
    *,
    level: int = logging.INFO,
    **extra: Any,
) -> None:
    """
    Log ``message`` as event ``event_name``.

    Keyword arguments become the JSONL ``extra`` object and a sorted
    ``key=value`` suffix on the text line. With detail off, values whose repr
    is longer than DETAIL_VALUE_LIMIT are dropped.
    """
    payload: Dict[str, Any] = dict(extra)
    if not getattr(logging.getLogger(), "_receiptparse_log_detail", True):
        payload = {k: v for k, v in payload.items() if len(repr(v)) <= DETAIL_VALUE_LIMIT}

    suffix = ""
    if payload:
        suffix = " | " + " ".join(f"{k}={payload[k]!r}" for k in sorted(payload))
    logger.log(
        level,
        f"{message}{suffix}",
        extra={
            "event_name": event_name,
            "extra_payload": payload,
            "forensic": get_forensic_fields(),
        },
    )
