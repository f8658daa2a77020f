from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..redaction import SecretFilter
from .trace_store_jsonl import TraceStoreJSONL


class TraceEmitter:
    """
    Writes run diagnostics as JSONL events.

    Every string in an event goes through the secret filter before it reaches
    the store, including values registered after the emitter was created.
    """

    def __init__(self, store: TraceStoreJSONL, run_id: str, secret_filter: SecretFilter | None = None):
        self._store = store
        self._run_id = run_id
        self._filter = secret_filter if secret_filter is not None else SecretFilter()

    @property
    def secret_filter(self) -> SecretFilter:
        return self._filter

    def emit(
        self,
        event_type: str,
        *,
        script: str | None = None,
        level: str = "info",
        message: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        event: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "run_id": self._run_id,
            "event_type": event_type,
            "level": level,
        }
        if script is not None:
            event["script"] = script
        if message is not None:
            event["message"] = message
        if data is not None:
            event["data"] = data

        self._store.append(self._filter.redact_obj(event))
