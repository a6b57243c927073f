from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

# Per-thread / per-task parse context stamped onto every log record.
correlation_id_var = contextvars.ContextVar("correlation_id", default=None)
document_id_var = contextvars.ContextVar("document_id", default=None)
type_key_var = contextvars.ContextVar("type_key", default=None)
template_var = contextvars.ContextVar("template", default=None)
phase_var = contextvars.ContextVar("phase", default=None)
mode_var = contextvars.ContextVar("mode", default=None)

_VARS: Dict[str, contextvars.ContextVar] = {
    "correlation_id": correlation_id_var,
    "document_id": document_id_var,
    "type_key": type_key_var,
    "template": template_var,
    "phase": phase_var,
    "mode": mode_var,
}


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_forensic_fields() -> Dict[str, Any]:
    """Current value of every forensic contextvar as a dict."""
    return {name: var.get() for name, var in _VARS.items()}


@contextmanager
def forensic_scope(**fields: Any) -> Iterator[None]:
    """
    Temporarily set selected contextvars; previous values are restored on exit.
    Unknown field names are ignored.
    """
    tokens: Dict[str, Any] = {}
    try:
        for key, value in fields.items():
            var = _VARS.get(key)
            if var is None:
                continue
            tokens[key] = var.set(value)
        yield
    finally:
        for key, tok in tokens.items():
            try:
                _VARS[key].reset(tok)
            except ValueError:
                # token created in another context (e.g. a worker thread copy)
                pass
