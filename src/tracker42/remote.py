"""Client for the remote store of record (a spreadsheet-backed web app).

Wire contract:

    GET  <url>                       -> {"ok": true, "data": {"day1": ..., ...}}
                                        {"ok": false, "error": "..."}
    POST <url> {"day", "tasks", "note"} -> {"ok": true} | {"ok": false, "error": "..."}

The legacy deployment only understands {"day", "tasks"}.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import requests

from .errors import RemoteUnavailable, RemoteWriteFailed
from .model import CANONICAL, LEGACY, DayRecord, day_key, normalize_all

log = logging.getLogger(__name__)

SCHEMAS = (CANONICAL, LEGACY)
DEFAULT_TIMEOUT = 15.0


def build_payload(index: int, record: DayRecord, schema: str = CANONICAL) -> dict[str, Any]:
    payload: dict[str, Any] = {"day": day_key(index), "tasks": list(record.tasks)}
    if schema == CANONICAL:
        payload["note"] = record.note
    return payload


def _extract_error(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        msg = body.get("error") or body.get("message")
        if msg:
            return str(msg)
    return fallback


class RemoteClient:
    def __init__(
        self,
        url: str,
        schema: str = CANONICAL,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        if schema not in SCHEMAS:
            raise ValueError(f"schema must be one of {SCHEMAS} (got {schema!r})")
        self.url = url
        self.schema = schema
        self.timeout = timeout
        self.session = session or requests.Session()

    def _json(self, response: requests.Response) -> dict[str, Any]:
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    def fetch_all(self) -> dict[str, DayRecord]:
        """Read every day. Any failure at all is RemoteUnavailable."""
        try:
            body = self._json(self.session.get(self.url, timeout=self.timeout))
        except (requests.RequestException, ValueError) as e:
            raise RemoteUnavailable(str(e)) from e

        if not body.get("ok"):
            raise RemoteUnavailable(_extract_error(body, "Unknown error"))

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise RemoteUnavailable(f"'data' is {type(data).__name__}, expected an object")

        records = normalize_all(data)
        log.info("remote returned %d day records", len(records))
        return records

    def save_day(self, index: int, record: DayRecord) -> None:
        payload = build_payload(index, record, self.schema)
        body_text = json.dumps(payload, ensure_ascii=False)
        log.debug("POST %s (%d bytes)", payload["day"], len(body_text))
        try:
            body = self._json(
                self.session.post(
                    self.url,
                    data=body_text.encode("utf-8"),
                    headers={"Content-Type": "text/plain;charset=utf-8"},
                    timeout=self.timeout,
                )
            )
        except (requests.RequestException, ValueError) as e:
            raise RemoteWriteFailed(f"{payload['day']}: {e}") from e

        if not body.get("ok"):
            raise RemoteWriteFailed(f"{payload['day']}: {_extract_error(body, 'Save failed')}")
