from __future__ import annotations

import datetime as dt


def local_today() -> dt.date:
    """Current local date; year-less receipt dates take their year from here."""
    return dt.date.today()


def current_year() -> int:
    return local_today().year
