from __future__ import annotations

import os
from pathlib import Path

from .storage import STORAGE_NAME

DATA_ENV = "TRACKER42_DATA"


def default_data_path(profile: str | None = None) -> Path:
    base = Path.home() / ".config" / STORAGE_NAME
    name = f"{profile}.json" if profile else f"{STORAGE_NAME}.json"
    return base / name


def resolve_data_path(data_arg: str | None, profile: str | None) -> Path:
    if data_arg:
        return Path(data_arg).expanduser().resolve()
    env = os.environ.get(DATA_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return default_data_path(profile).expanduser().resolve()


def data_path_reason(data_arg: str | None, profile: str | None) -> str:
    if data_arg:
        return "because you passed --data"
    if os.environ.get(DATA_ENV):
        return f"because {DATA_ENV} is set"
    if profile:
        return f"because you used --profile {profile!r}"
    return "default XDG config location"
