"""Shared low-level helpers used by cli.py, metrics.py and timeparse.py."""

from __future__ import annotations

from datetime import date, datetime, timedelta


def _now_local() -> datetime:
    return datetime.now().astimezone()


def _today() -> date:
    return _now_local().date()


def day_date(start: date, index: int) -> date:
    return start + timedelta(days=index)


def day_for_date(start: date, total_days: int, d: date) -> int | None:
    idx = (d - start).days
    return idx if 0 <= idx < total_days else None


def _fmt_day(d: date) -> str:
    # "Feb 18"; %-d is not portable
    return f"{d:%b} {d.day}"
