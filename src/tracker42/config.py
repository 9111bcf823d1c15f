"""Runtime settings.

Precedence for every value: explicit argument (CLI flag) > environment > default.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from .model import CANONICAL, LEGACY, TOTAL_DAYS
from .paths import resolve_data_path

DEFAULT_START_DATE = date(2025, 2, 18)  # Feb 18 -> Mar 31 2025 inclusive
DEFAULT_TIMEOUT = 15.0

ENV_REMOTE_URL = "TRACKER42_REMOTE_URL"
ENV_START_DATE = "TRACKER42_START_DATE"
ENV_TOTAL_DAYS = "TRACKER42_TOTAL_DAYS"
ENV_SCHEMA = "TRACKER42_SCHEMA"
ENV_TIMEOUT = "TRACKER42_TIMEOUT"


@dataclass(frozen=True)
class TrackerConfig:
    data_path: Path
    start_date: date = DEFAULT_START_DATE
    total_days: int = TOTAL_DAYS
    remote_url: str | None = None
    schema: str = CANONICAL
    timeout: float = DEFAULT_TIMEOUT

    @property
    def notes_synced(self) -> bool:
        return self.schema == CANONICAL


def _pick(arg: object, env: Mapping[str, str], name: str) -> str | None:
    if arg is not None:
        return str(arg)
    v = env.get(name)
    return v if v and v.strip() else None


def _parse_start(value: str | None) -> date:
    if value is None:
        return DEFAULT_START_DATE
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise SystemExit(f"start date must be YYYY-MM-DD (got {value!r})")


def _parse_days(value: str | None) -> int:
    if value is None:
        return TOTAL_DAYS
    s = value.strip()
    if not s.isdigit() or int(s) < 1:
        raise SystemExit(f"window length must be a positive integer (got {value!r})")
    return int(s)


def _parse_schema(value: str | None) -> str:
    if value is None:
        return CANONICAL
    s = value.strip().lower()
    if s not in (CANONICAL, LEGACY):
        raise SystemExit(f"schema must be {CANONICAL!r} or {LEGACY!r} (got {value!r})")
    return s


def _parse_timeout(value: str | None) -> float:
    if value is None:
        return DEFAULT_TIMEOUT
    try:
        t = float(value)
    except ValueError:
        raise SystemExit(f"timeout must be a number of seconds (got {value!r})")
    if t <= 0:
        raise SystemExit(f"timeout must be > 0 (got {value!r})")
    return t


def load_config(
    data_arg: str | None = None,
    profile: str | None = None,
    remote_url: str | None = None,
    offline: bool = False,
    start_date: str | None = None,
    total_days: int | str | None = None,
    schema: str | None = None,
    timeout: float | str | None = None,
    env: Mapping[str, str] | None = None,
) -> TrackerConfig:
    env = os.environ if env is None else env
    url = None if offline else _pick(remote_url, env, ENV_REMOTE_URL)
    return TrackerConfig(
        data_path=resolve_data_path(data_arg, profile),
        start_date=_parse_start(_pick(start_date, env, ENV_START_DATE)),
        total_days=_parse_days(_pick(total_days, env, ENV_TOTAL_DAYS)),
        remote_url=url.strip() if url else None,
        schema=_parse_schema(_pick(schema, env, ENV_SCHEMA)),
        timeout=_parse_timeout(_pick(timeout, env, ENV_TIMEOUT)),
    )
