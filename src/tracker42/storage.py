from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from .errors import LocalCacheCorrupt
from .model import TOTAL_DAYS, Dataset

log = logging.getLogger(__name__)

STORAGE_NAME = "tracker42"


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def read_json(path: Path) -> dict[str, Any]:
    """
    Strict load:
    - missing/empty file -> {}
    - non-object JSON -> {}
    - corrupt -> backs up raw text next to the file, raises LocalCacheCorrupt
    """
    path = Path(path)
    if not path.exists():
        return {}

    txt = path.read_text(encoding="utf-8").strip()
    if not txt:
        return {}

    try:
        data = json.loads(txt)
    except json.JSONDecodeError as e:
        backup = path.with_suffix(f".corrupt-{int(time.time())}.json")
        try:
            backup.write_text(txt, encoding="utf-8")
        except OSError:
            log.debug("could not back up corrupt cache to %s", backup)
        raise LocalCacheCorrupt(f"{path}: {e}") from e

    return data if isinstance(data, dict) else {}


def save_json(path: Path, data: Any) -> None:
    """
    Atomic-ish save:
    - write to temp file in same directory
    - flush + fsync
    - os.replace to target
    - chmod 0600 best-effort
    """
    path = Path(path)
    _ensure_parent(path)

    tmp = path.with_name(path.name + ".tmp")

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
    ) + "\n"

    with open(tmp, "w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())

    os.replace(tmp, path)

    try:
        os.chmod(path, 0o600)
    except OSError:
        pass


class LocalCache:
    """Durable mirror of the whole dataset. Never raises to its caller."""

    def __init__(self, data_path: Path, total_days: int = TOTAL_DAYS):
        self.data_path = Path(data_path)
        self.total_days = total_days

    def load(self) -> Dataset:
        try:
            raw = read_json(self.data_path)
        except LocalCacheCorrupt as e:
            log.debug("local cache corrupt, starting empty: %s", e)
            raw = {}
        except OSError as e:
            log.warning("local cache unreadable, starting empty: %s", e)
            raw = {}
        ds = Dataset.from_raw(raw, self.total_days)
        log.debug("loaded %d day records from %s", ds.record_count(), self.data_path)
        return ds

    def save(self, dataset: Dataset) -> bool:
        try:
            save_json(self.data_path, dataset.to_dict())
        except (OSError, TypeError, ValueError) as e:
            log.warning("local cache write failed (%s); previous cache kept", e)
            return False
        return True
