"""Entry point for `python -m receiptparse`."""

from __future__ import annotations

from receiptparse.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
