"""Day records, the dataset that owns them, and the schema migration.

Two stored shapes exist for a day:

    legacy     "day3": ["pushup", "journal"]
    canonical  "day3": {"tasks": ["pushup", "journal"], "note": "tired"}

Everything that enters memory, whether from the local cache or the remote
payload, goes through ``normalize`` so the in-memory dataset is always
canonical. An absent day and an empty day read the same.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .tasks import TASK_IDS

TOTAL_DAYS = 42

LEGACY = "legacy"
CANONICAL = "canonical"
UNKNOWN = "unknown"

_DAY_KEY_RE = re.compile(r"day(\d+)")


@dataclass
class DayRecord:
    tasks: list[str] = field(default_factory=list)
    note: str = ""

    def copy(self) -> DayRecord:
        return DayRecord(tasks=list(self.tasks), note=self.note)

    def to_dict(self) -> dict[str, Any]:
        return {"tasks": list(self.tasks), "note": self.note}


# -------------------------
# Migration
# -------------------------

def schema_of(raw: Any) -> str:
    """Classify a stored day value as legacy, canonical or unknown."""
    if isinstance(raw, (list, tuple)):
        return LEGACY
    if isinstance(raw, (Mapping, DayRecord)):
        return CANONICAL
    return UNKNOWN


def _clean_ids(seq: Any) -> list[str]:
    if not isinstance(seq, (list, tuple)):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for x in seq:
        if x is None:
            continue
        tid = str(x)
        if not tid or tid in seen:
            continue
        seen.add(tid)
        out.append(tid)
    return out


def _clean_note(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def normalize(raw: Any) -> DayRecord:
    """
    Total migration to a canonical DayRecord:
    - bare sequence -> {tasks: sequence, note: ""}
    - object -> tasks (default []) and note (default ""), missing fields tolerated
    - anything else -> empty record
    Unknown task ids are kept; duplicates are dropped (first one wins).
    """
    shape = schema_of(raw)
    if shape == LEGACY:
        return DayRecord(tasks=_clean_ids(raw))
    if shape == CANONICAL:
        if isinstance(raw, DayRecord):
            return DayRecord(tasks=_clean_ids(raw.tasks), note=_clean_note(raw.note))
        return DayRecord(tasks=_clean_ids(raw.get("tasks")), note=_clean_note(raw.get("note")))
    return DayRecord()


def normalize_all(raw: Any) -> dict[str, DayRecord]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(k): normalize(v) for k, v in raw.items()}


def day_key(index: int) -> str:
    if index < 0:
        raise IndexError(f"day index must be >= 0 (got {index})")
    return f"day{index + 1}"


def day_index(key: str) -> int | None:
    m = _DAY_KEY_RE.fullmatch(str(key))
    if not m or int(m.group(1)) < 1:
        return None
    return int(m.group(1)) - 1


# -------------------------
# Dataset
# -------------------------

class Dataset:
    """The session's day records. Single writer: the sync engine."""

    def __init__(self, total_days: int = TOTAL_DAYS, records: Mapping[str, DayRecord] | None = None):
        if total_days < 1:
            raise ValueError(f"total_days must be >= 1 (got {total_days})")
        self.total_days = total_days
        self._records: dict[str, DayRecord] = dict(records or {})

    @classmethod
    def from_raw(cls, raw: Any, total_days: int = TOTAL_DAYS) -> Dataset:
        return cls(total_days, normalize_all(raw))

    def _key(self, index: int) -> str:
        if not 0 <= index < self.total_days:
            raise IndexError(f"day index {index} outside window of {self.total_days} days")
        return day_key(index)

    def get(self, index: int) -> DayRecord:
        """Read a day without creating it; absent days read as empty."""
        rec = self._records.get(self._key(index))
        return rec if rec is not None else DayRecord()

    def ensure(self, index: int) -> DayRecord:
        key = self._key(index)
        rec = self._records.get(key)
        if rec is None:
            rec = self._records[key] = DayRecord()
        return rec

    def tasks(self, index: int) -> list[str]:
        return self.get(index).tasks

    def note(self, index: int) -> str:
        return self.get(index).note

    def replace(self, records: Mapping[str, DayRecord]) -> None:
        self._records = {k: v.copy() for k, v in records.items()}

    def record_for_key(self, key: str) -> DayRecord | None:
        return self._records.get(key)

    def put_key(self, key: str, record: DayRecord) -> None:
        self._records[key] = record

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {k: v.to_dict() for k, v in self._records.items()}

    def copy(self) -> Dataset:
        return Dataset(self.total_days, {k: v.copy() for k, v in self._records.items()})

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.total_days))

    def record_count(self) -> int:
        """Stored records, including empty ones and keys outside the window."""
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __repr__(self) -> str:
        return f"Dataset(total_days={self.total_days}, records={len(self._records)})"


# -------------------------
# Mutations
# -------------------------

@dataclass(frozen=True)
class Toggle:
    task_id: str

    def apply(self, dataset: Dataset, index: int) -> DayRecord:
        if self.task_id not in TASK_IDS:
            raise ValueError(f"unknown task id {self.task_id!r}")
        rec = dataset.ensure(index)
        if self.task_id in rec.tasks:
            rec.tasks.remove(self.task_id)
        else:
            rec.tasks.append(self.task_id)
        return rec


@dataclass(frozen=True)
class ClearDay:
    """Untick every task of a day. The note survives."""

    def apply(self, dataset: Dataset, index: int) -> DayRecord:
        rec = dataset.ensure(index)
        rec.tasks.clear()
        return rec


@dataclass(frozen=True)
class SaveNote:
    text: str

    def apply(self, dataset: Dataset, index: int) -> DayRecord:
        rec = dataset.ensure(index)
        rec.note = (self.text or "").strip()
        return rec


DayOp = Union[Toggle, ClearDay, SaveNote]
