from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_CONFIG_NAME = "receiptparse.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "app": {
        "data_dir": None,
        "log_dir": None,
    },
    "logging": {
        "level": "DEBUG",
        "console": False,
        "detail": True,
        "max_lines": None,
    },
    "engine": {
        "timeout_sec": 10,
        "default_type": None,
        "strict": False,
        "review_quality_threshold": 0.35,
        "tolerance_floor": 10,
        "tolerance_rel": 0.02,
    },
}


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data or {}


def save_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")


def deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def deep_set(d: Dict[str, Any], keys: list[str], value: Any) -> None:
    cur = d
    for k in keys[:-1]:
        if k not in cur or not isinstance(cur[k], dict):
            cur[k] = {}
        cur = cur[k]
    cur[keys[-1]] = value


def load_config(path: Path | None) -> Dict[str, Any]:
    """Load YAML config and fill every missing section/key with defaults."""
    cfg = load_yaml(path) if path is not None else {}
    for section, defaults in DEFAULT_CONFIG.items():
        sec = cfg.setdefault(section, {})
        if not isinstance(sec, dict):
            sec = cfg[section] = {}
        for key, value in defaults.items():
            sec.setdefault(key, copy.deepcopy(value))
    return cfg
