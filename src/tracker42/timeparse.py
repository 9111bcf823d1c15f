from __future__ import annotations

import re
from datetime import date, timedelta

from ._util import _today, day_for_date


def parse_day(value: str | None, start: date, total_days: int, today: date | None = None) -> int:
    """
    Resolve a user day reference to a 0-based index inside the window.
    Accepts:
      - None / "" / "today" -> today
      - "12", "day12", "d12" -> 1-based day number
      - "yesterday", "tomorrow"
      - relative: "3 days ago", "1 day ago", "in 2 days"
      - ISO date: "2025-02-20"
    Raises SystemExit when the reference is unparseable or outside the window.
    """
    today = today or _today()
    s = (value or "").strip().lower()

    # --- 1) Day number ---
    m = re.fullmatch(r"(?:day|d)?\s*(\d+)", s)
    if m:
        n = int(m.group(1))
        if not 1 <= n <= total_days:
            raise SystemExit(f"Day {n} is outside the window (1–{total_days}).")
        return n - 1

    target = _parse_date(s, value, today)
    idx = day_for_date(start, total_days, target)
    if idx is None:
        end = start + timedelta(days=total_days - 1)
        raise SystemExit(
            f"{target.isoformat()} is outside the window "
            f"({start.isoformat()} → {end.isoformat()})."
        )
    return idx


def _parse_date(s: str, raw: str | None, today: date) -> date:
    # --- 2) Keywords ---
    if s in ("", "today"):
        return today
    if s == "yesterday":
        return today - timedelta(days=1)
    if s == "tomorrow":
        return today + timedelta(days=1)

    # --- 3) Relative like "3 days ago", "in 2 days" ---
    m = re.fullmatch(r"(\d+)\s*(day|days)\s*ago", s)
    if m:
        return today - timedelta(days=int(m.group(1)))
    m = re.fullmatch(r"in\s*(\d+)\s*(day|days)", s)
    if m:
        return today + timedelta(days=int(m.group(1)))

    # --- 4) ISO date ---
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass

    raise SystemExit(
        f"Could not parse day {raw!r}. Try a day number like '12' or 'day12', "
        f"'today', 'yesterday', '3 days ago' or a date like '2025-02-20'."
    )
