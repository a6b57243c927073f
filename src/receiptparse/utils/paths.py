from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

APP_NAME = "receiptparse"


def default_data_dir() -> Path:
    env = os.environ.get("RECEIPTPARSE_DATA_DIR")
    if env:
        return Path(env)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    base = os.environ.get("LOCALAPPDATA") or os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_NAME


@dataclass(frozen=True)
class AppPaths:
    data_dir: Path
    log_dir: Path
    config_path: Path


def ensure_dirs(*paths: Path) -> None:
    for p in paths:
        p.mkdir(parents=True, exist_ok=True)


def resolve_app_paths(data_dir: str | None, log_dir: str | None, config_path: str | None = None) -> AppPaths:
    dd = Path(data_dir) if data_dir else default_data_dir()
    ld = Path(log_dir) if log_dir else dd / "logs"
    cp = Path(config_path) if config_path else dd / "receiptparse.yaml"
    ensure_dirs(dd, ld)
    return AppPaths(data_dir=dd, log_dir=ld, config_path=cp)
