"""Error kinds raised by the storage tiers.

None of these is fatal: the sync engine catches them and degrades to whatever
dataset it still has (possibly empty). They never reach the rendering side.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker42 errors."""


class RemoteUnavailable(TrackerError):
    """Remote read failed: transport, HTTP status, bad JSON, or ``ok: false``."""


class RemoteWriteFailed(TrackerError):
    """Remote per-day write failed. The local mutation is kept."""


class LocalCacheCorrupt(TrackerError):
    """The persisted local blob could not be parsed."""
